"""Django ORM implementation of the CustomerIdentityStore."""

from django.db import IntegrityError, transaction

from payments import models
from payments.domain import CustomerIdentity
from payments.stores.interfaces import CustomerIdentityStore


def _to_domain(row: models.CustomerIdentity) -> CustomerIdentity:
    return CustomerIdentity(
        vendor=row.vendor,
        account_id=row.account_id,
        customer_ref=row.customer_ref,
        email=row.email,
        name=row.name,
    )


class DjangoCustomerIdentityStore(CustomerIdentityStore):
    """Customer mappings stored in the customer identity table."""

    def get(self, vendor: str, account_id: str) -> CustomerIdentity | None:
        row = models.CustomerIdentity.objects.filter(vendor=vendor, account_id=account_id).first()
        return _to_domain(row) if row else None

    def save(self, identity: CustomerIdentity) -> CustomerIdentity:
        try:
            with transaction.atomic():
                row, _ = models.CustomerIdentity.objects.get_or_create(
                    vendor=identity.vendor,
                    account_id=identity.account_id,
                    defaults={
                        "customer_ref": identity.customer_ref,
                        "email": identity.email,
                        "name": identity.name,
                    },
                )
        except IntegrityError:
            # Lost a concurrent insert for the same account; keep the winner.
            row = models.CustomerIdentity.objects.get(
                vendor=identity.vendor, account_id=identity.account_id
            )
        return _to_domain(row)
