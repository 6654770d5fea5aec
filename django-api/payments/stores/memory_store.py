"""In-process CustomerIdentityStore for tests and local tooling."""

import threading

from payments.domain import CustomerIdentity
from payments.stores.interfaces import CustomerIdentityStore


class InMemoryCustomerIdentityStore(CustomerIdentityStore):
    def __init__(self) -> None:
        self._items: dict[tuple[str, str], CustomerIdentity] = {}
        self._lock = threading.Lock()

    def get(self, vendor: str, account_id: str) -> CustomerIdentity | None:
        with self._lock:
            return self._items.get((vendor, account_id))

    def save(self, identity: CustomerIdentity) -> CustomerIdentity:
        with self._lock:
            return self._items.setdefault((identity.vendor, identity.account_id), identity)
