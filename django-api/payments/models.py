"""Django ORM models (persistence layer) for vendor customer mappings."""

from django.db import models


class CustomerIdentity(models.Model):
    """Vendor customer record for an internal account, one per (vendor, account)."""

    vendor = models.CharField(max_length=32)
    account_id = models.CharField(max_length=64)
    customer_ref = models.CharField(max_length=255)
    email = models.EmailField()
    name = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "customer identities"
        constraints = [
            models.UniqueConstraint(
                fields=["vendor", "account_id"], name="unique_customer_per_vendor_account"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.vendor}:{self.account_id} -> {self.customer_ref}"
