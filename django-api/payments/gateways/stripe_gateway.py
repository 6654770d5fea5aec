"""Stripe adapter.

Stripe natively supports payment intents with a client secret, so this adapter
is a thin normalization layer over the official SDK. Each adapter owns its
`StripeClient`, so timeouts and retries never leak into module state. Every
SDK error is mapped onto the gateway error taxonomy before it leaves this
module.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, TypeVar

import stripe

from payments.domain import (
    CardDetails,
    CustomerIdentity,
    GatewayConfig,
    IntentStatus,
    Page,
    PaymentHistoryItem,
    PaymentIntentView,
    PaymentMethod,
    SetupIntentView,
    WebhookEvent,
)
from payments.domain.errors import (
    ConfigurationError,
    VendorRejectedError,
    VendorUnavailableError,
    WebhookSignatureError,
)
from payments.gateways.interfaces import PaymentGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATUS_MAP = {
    "requires_payment_method": IntentStatus.REQUIRES_ACTION,
    "requires_confirmation": IntentStatus.REQUIRES_ACTION,
    "requires_action": IntentStatus.REQUIRES_ACTION,
    "processing": IntentStatus.PROCESSING,
    "requires_capture": IntentStatus.PROCESSING,
    "succeeded": IntentStatus.SUCCEEDED,
    "canceled": IntentStatus.FAILED,
}

_PAYMENT_EVENT_PREFIX = "payment_intent."


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _timestamp(value: int | None) -> datetime:
    return datetime.fromtimestamp(value or 0, tz=timezone.utc)


class StripeGateway(PaymentGateway):
    """Payment gateway backed by the Stripe API."""

    name = "stripe"
    display_name = "Stripe"
    signature_header = "Stripe-Signature"

    def __init__(
        self,
        config: GatewayConfig,
        timeout: float = 10.0,
        client: stripe.StripeClient | None = None,
    ) -> None:
        if not config.secret_key:
            raise ConfigurationError(self.name, "STRIPE_SECRET_KEY is not configured")
        self._webhook_secret = config.webhook_secret
        self._client = client or stripe.StripeClient(
            config.secret_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
            logger.warning("Stripe %s unavailable: %s", operation, exc)
            raise VendorUnavailableError(self.name) from exc
        except (stripe.AuthenticationError, stripe.PermissionError) as exc:
            logger.error("Stripe %s rejected credentials: %s", operation, exc)
            raise ConfigurationError(self.name, "Stripe credentials were rejected") from exc
        except stripe.CardError as exc:
            raise VendorRejectedError(self.name, exc.user_message or "Card was declined") from exc
        except (stripe.InvalidRequestError, stripe.IdempotencyError) as exc:
            logger.warning("Stripe %s invalid request: %s", operation, exc)
            raise VendorRejectedError(self.name, exc.user_message or "Payment request was rejected") from exc
        except stripe.StripeError as exc:
            logger.warning("Stripe %s failed: %s", operation, exc)
            raise VendorUnavailableError(self.name) from exc

    @staticmethod
    def _status(data: Mapping[str, Any]) -> IntentStatus:
        # A declined attempt returns the intent to requires_payment_method.
        if data.get("status") == "requires_payment_method" and data.get("last_payment_error"):
            return IntentStatus.FAILED
        return _STATUS_MAP.get(data.get("status"), IntentStatus.REQUIRES_ACTION)

    def _intent_view(self, obj: Any) -> PaymentIntentView:
        data = _as_dict(obj)
        customer = data.get("customer")
        if customer is not None and not isinstance(customer, str):
            customer = _as_dict(customer).get("id")
        return PaymentIntentView(
            id=data["id"],
            amount=int(data.get("amount") or 0),
            currency=str(data.get("currency") or "").lower(),
            status=self._status(data),
            customer_ref=customer,
            client_secret=data.get("client_secret"),
            metadata=dict(data.get("metadata") or {}),
            raw=data,
        )

    def _customer(self, obj: Any, account_id: str = "", email: str = "", name: str = "") -> CustomerIdentity:
        data = _as_dict(obj)
        metadata = data.get("metadata") or {}
        return CustomerIdentity(
            vendor=self.name,
            account_id=account_id or metadata.get("account_id", ""),
            customer_ref=data["id"],
            email=data.get("email") or email,
            name=data.get("name") or name,
        )

    @staticmethod
    def _payment_method(obj: Any) -> PaymentMethod:
        data = _as_dict(obj)
        card = _as_dict(data.get("card")) if data.get("card") else None
        return PaymentMethod(
            id=data["id"],
            type=data.get("type") or "card",
            card=CardDetails(
                brand=card.get("brand", ""),
                last4=card.get("last4", ""),
                exp_month=int(card.get("exp_month") or 0),
                exp_year=int(card.get("exp_year") or 0),
                fingerprint=card.get("fingerprint"),
            )
            if card
            else None,
        )

    @staticmethod
    def _page(obj: Any) -> Page:
        data = _as_dict(obj)
        items = tuple(_as_dict(item) for item in data.get("data") or ())
        cursor = items[-1].get("id") if items else None
        return Page(data=items, has_more=bool(data.get("has_more")), cursor=cursor)

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_ref: str | None,
        description: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> PaymentIntentView:
        params: dict[str, Any] = {
            "amount": amount,
            "currency": currency.lower(),
            "description": description,
            "metadata": dict(metadata),
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_ref:
            params["customer"] = customer_ref
            params["setup_future_usage"] = "on_session"
        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        intent = self._call(
            "create_payment_intent", self._client.payment_intents.create, params=params, options=options
        )
        view = self._intent_view(intent)
        logger.info("Created Stripe PaymentIntent %s for customer %s", view.id, customer_ref)
        return view

    def get_payment_intent(self, ref: str) -> PaymentIntentView:
        return self._intent_view(
            self._call("get_payment_intent", self._client.payment_intents.retrieve, ref)
        )

    def confirm_payment_intent(self, ref: str, confirmation: Mapping[str, Any]) -> PaymentIntentView:
        params = {
            key: confirmation[key]
            for key in ("payment_method", "return_url")
            if confirmation.get(key)
        }
        return self._intent_view(
            self._call("confirm_payment_intent", self._client.payment_intents.confirm, ref, params=params)
        )

    def cancel_payment_intent(self, ref: str) -> PaymentIntentView:
        return self._intent_view(
            self._call("cancel_payment_intent", self._client.payment_intents.cancel, ref)
        )

    def get_or_create_customer(self, account_id: str, email: str, name: str = "") -> CustomerIdentity:
        existing = _as_dict(
            self._call("list_customers", self._client.customers.list, params={"email": email, "limit": 1})
        )
        if existing.get("data"):
            return self._customer(existing["data"][0], account_id=account_id, email=email, name=name)

        params: dict[str, Any] = {"email": email, "metadata": {"account_id": account_id}}
        if name:
            params["name"] = name
        customer = self._call(
            "create_customer",
            self._client.customers.create,
            params=params,
            options={"idempotency_key": f"customer-{account_id}-{email}"},
        )
        identity = self._customer(customer, account_id=account_id, email=email, name=name)
        logger.info("Created Stripe customer %s for account %s", identity.customer_ref, account_id)
        return identity

    def get_customer(self, customer_ref: str) -> CustomerIdentity:
        return self._customer(self._call("get_customer", self._client.customers.retrieve, customer_ref))

    def list_payment_methods(self, customer_ref: str) -> list[PaymentMethod]:
        methods = _as_dict(
            self._call(
                "list_payment_methods",
                self._client.payment_methods.list,
                params={"customer": customer_ref, "type": "card"},
            )
        )
        return [self._payment_method(pm) for pm in methods.get("data") or ()]

    def attach_payment_method(self, payment_method_ref: str, customer_ref: str) -> PaymentMethod:
        return self._payment_method(
            self._call(
                "attach_payment_method",
                self._client.payment_methods.attach,
                payment_method_ref,
                params={"customer": customer_ref},
            )
        )

    def detach_payment_method(self, payment_method_ref: str, customer_ref: str) -> PaymentMethod:
        return self._payment_method(
            self._call("detach_payment_method", self._client.payment_methods.detach, payment_method_ref)
        )

    def set_default_payment_method(self, payment_method_ref: str, customer_ref: str) -> CustomerIdentity:
        customer = self._call(
            "set_default_payment_method",
            self._client.customers.update,
            customer_ref,
            params={"invoice_settings": {"default_payment_method": payment_method_ref}},
        )
        return self._customer(customer)

    def create_setup_intent(self, customer_ref: str, return_url: str | None = None) -> SetupIntentView:
        params: dict[str, Any] = {
            "customer": customer_ref,
            "payment_method_types": ["card"],
            "usage": "off_session",
        }
        if return_url:
            params["return_url"] = return_url
        data = _as_dict(self._call("create_setup_intent", self._client.setup_intents.create, params=params))
        return SetupIntentView(id=data["id"], client_secret=data["client_secret"], status=data["status"])

    def get_payment_history(self, customer_ref: str, limit: int = 50) -> list[PaymentHistoryItem]:
        charges = _as_dict(
            self._call(
                "get_payment_history",
                self._client.charges.list,
                params={"customer": customer_ref, "limit": limit},
            )
        )
        history = []
        for charge in charges.get("data") or ():
            charge = _as_dict(charge)
            details = _as_dict(charge.get("payment_method_details"))
            card = _as_dict(details.get("card")) if details.get("card") else None
            method = None
            if card and charge.get("payment_method"):
                method = self._payment_method(
                    {"id": charge["payment_method"], "type": "card", "card": card}
                )
            history.append(
                PaymentHistoryItem(
                    id=charge["id"],
                    amount=int(charge.get("amount") or 0),
                    currency=charge.get("currency", ""),
                    status=charge.get("status", ""),
                    description=charge.get("description") or "Payment",
                    created_at=_timestamp(charge.get("created")),
                    payment_method=method,
                )
            )
        return history

    def process_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret:
            raise ConfigurationError(self.name, "STRIPE_WEBHOOK_SECRET is not configured")
        try:
            event = self._client.construct_event(payload, signature, self._webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            raise WebhookSignatureError(self.name) from exc

        event = _as_dict(event)
        data = _as_dict(event.get("data"))
        obj = _as_dict(data.get("object"))
        event_type = event.get("type", "")
        payment_ref = None
        if event_type.startswith(_PAYMENT_EVENT_PREFIX):
            payment_ref = obj.get("id")
        elif obj.get("payment_intent"):
            payment_ref = obj["payment_intent"]
        return WebhookEvent(
            id=event.get("id", ""),
            type=event_type,
            payment_ref=payment_ref,
            created=_timestamp(event.get("created")),
            data=data,
        )

    @staticmethod
    def _list_params(filters: Mapping[str, Any], *keys: str) -> dict[str, Any]:
        params = {"limit": filters.get("limit", 50)}
        for key in keys:
            if filters.get(key):
                params[key] = filters[key]
        if filters.get("cursor"):
            params["starting_after"] = filters["cursor"]
        return params

    def list_intents(self, filters: Mapping[str, Any]) -> Page:
        params = self._list_params(filters, "customer", "created")
        return self._page(self._call("list_intents", self._client.payment_intents.list, params=params))

    def list_customers(self, filters: Mapping[str, Any]) -> Page:
        params = self._list_params(filters)
        if filters.get("search"):
            params["email"] = filters["search"]
        return self._page(self._call("list_customers", self._client.customers.list, params=params))

    def list_invoices(self, filters: Mapping[str, Any]) -> Page:
        params = self._list_params(filters, "customer", "status")
        return self._page(self._call("list_invoices", self._client.invoices.list, params=params))

    def check_connection(self) -> None:
        self._call("check_connection", self._client.customers.list, params={"limit": 1})
