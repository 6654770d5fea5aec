"""Gateway contract (ports pattern).

Every vendor adapter implements PaymentGateway and returns only the value
types from payments.domain. Every method may raise VendorUnavailableError,
VendorRejectedError or ConfigurationError.
"""

from abc import ABC, abstractmethod
from typing import Any, Mapping

from payments.domain import (
    CustomerIdentity,
    Page,
    PaymentHistoryItem,
    PaymentIntentView,
    PaymentMethod,
    SetupIntentView,
    WebhookEvent,
)


class PaymentGateway(ABC):
    """Interface implemented by every payment vendor adapter."""

    name: str
    display_name: str
    # HTTP header carrying the webhook signature.
    signature_header: str

    # Payment intents

    @abstractmethod
    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_ref: str | None,
        description: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> PaymentIntentView:
        """Create an intent for `amount` minor units. Nothing is charged yet."""
        ...

    @abstractmethod
    def get_payment_intent(self, ref: str) -> PaymentIntentView:
        """Fetch the authoritative state of an intent from the vendor."""
        ...

    @abstractmethod
    def confirm_payment_intent(
        self, ref: str, confirmation: Mapping[str, Any]
    ) -> PaymentIntentView:
        """Complete an intent with client-supplied confirmation data."""
        ...

    @abstractmethod
    def cancel_payment_intent(self, ref: str) -> PaymentIntentView:
        """Void an intent that has not moved money."""
        ...

    # Customers

    @abstractmethod
    def get_or_create_customer(
        self, account_id: str, email: str, name: str = ""
    ) -> CustomerIdentity:
        """Resolve the vendor customer by exact email, creating one if absent."""
        ...

    @abstractmethod
    def get_customer(self, customer_ref: str) -> CustomerIdentity:
        ...

    # Payment methods

    @abstractmethod
    def list_payment_methods(self, customer_ref: str) -> list[PaymentMethod]:
        ...

    @abstractmethod
    def attach_payment_method(
        self, payment_method_ref: str, customer_ref: str
    ) -> PaymentMethod:
        ...

    @abstractmethod
    def detach_payment_method(
        self, payment_method_ref: str, customer_ref: str
    ) -> PaymentMethod:
        ...

    @abstractmethod
    def set_default_payment_method(
        self, payment_method_ref: str, customer_ref: str
    ) -> CustomerIdentity:
        ...

    @abstractmethod
    def create_setup_intent(
        self, customer_ref: str, return_url: str | None = None
    ) -> SetupIntentView:
        ...

    @abstractmethod
    def get_payment_history(
        self, customer_ref: str, limit: int = 50
    ) -> list[PaymentHistoryItem]:
        ...

    # Webhooks

    @abstractmethod
    def process_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """Verify the signature and normalize the event.

        Raises:
            WebhookSignatureError: If verification fails. No side effects occur.
        """
        ...

    # Admin listings

    @abstractmethod
    def list_intents(self, filters: Mapping[str, Any]) -> Page:
        ...

    @abstractmethod
    def list_customers(self, filters: Mapping[str, Any]) -> Page:
        ...

    @abstractmethod
    def list_invoices(self, filters: Mapping[str, Any]) -> Page:
        ...

    @abstractmethod
    def check_connection(self) -> None:
        """Make a cheap authenticated call. Raises on failure."""
        ...
