"""Store interface for vendor customer mappings."""

from abc import ABC, abstractmethod

from payments.domain import CustomerIdentity


class CustomerIdentityStore(ABC):
    """Persistence for (vendor, account) -> vendor customer mappings."""

    @abstractmethod
    def get(self, vendor: str, account_id: str) -> CustomerIdentity | None:
        """Return the stored mapping, or None if the account has none for this vendor."""
        ...

    @abstractmethod
    def save(self, identity: CustomerIdentity) -> CustomerIdentity:
        """Store the mapping unless one already exists; return the stored one."""
        ...
