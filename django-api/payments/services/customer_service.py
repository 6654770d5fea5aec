"""Customer identity resolution.

The vendor customer for an account is created lazily on the first payment
attempt and then reused by every adapter call for that vendor.
"""

import logging

from payments.domain import CustomerIdentity
from payments.gateways import PaymentGateway
from payments.stores.interfaces import CustomerIdentityStore

logger = logging.getLogger(__name__)


class CustomerService:
    """Maps internal accounts to vendor customers."""

    def __init__(self, store: CustomerIdentityStore) -> None:
        self._store = store

    def resolve(
        self,
        vendor: str,
        gateway: PaymentGateway,
        account_id: str,
        email: str,
        name: str = "",
    ) -> CustomerIdentity:
        """Return the stored mapping or create the vendor customer.

        Concurrent first attempts may both reach the vendor; the adapter's
        email lookup makes that a rare duplicate customer record at worst,
        and the store keeps whichever mapping was saved first.
        """
        identity = self._store.get(vendor, account_id)
        if identity is not None:
            return identity

        identity = gateway.get_or_create_customer(account_id, email, name)
        stored = self._store.save(identity)
        if stored.customer_ref != identity.customer_ref:
            logger.warning(
                "Concurrent customer creation for account %s on %s; keeping %s, discarding %s",
                account_id,
                vendor,
                stored.customer_ref,
                identity.customer_ref,
            )
        return stored
