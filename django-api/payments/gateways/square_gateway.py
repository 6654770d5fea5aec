"""Square adapter.

Square has no reusable payment-intent object. This adapter synthesizes one:
the intent identifier is generated locally and the amount, currency and
customer are base64-encoded into an HMAC-signed token, keyed on the access
token, that stands in for the client secret. Money only moves when the client confirms out of band with a
card nonce from the Square Web Payments SDK; the resulting Square payment
carries the synthesized identifier as its `reference_id`, which is how the
intent is found again.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import requests

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

SQUARE_API_VERSION = "2024-10-17"
SQUARE_BASE_URLS = {
    "production": "https://connect.squareup.com",
    "sandbox": "https://connect.squareupsandbox.com",
}
SIGNATURE_HEADER = "x-square-hmacsha256-signature"

INTENT_PREFIX = "sqpi_"
SETUP_PREFIX = "sqsi_"
# Synthesized intents never confirmed within this window are reported as failed.
INTENT_EXPIRY = timedelta(hours=24)
# Upper bound on payment pages scanned when resolving a synthesized intent.
MAX_LOOKUP_PAGES = 5

_STATUS_MAP = {
    "COMPLETED": IntentStatus.SUCCEEDED,
    "APPROVED": IntentStatus.PROCESSING,
    "PENDING": IntentStatus.PROCESSING,
    "CANCELED": IntentStatus.FAILED,
    "FAILED": IntentStatus.FAILED,
}


def _token_signature(body: str, key: bytes) -> str:
    return hmac.new(key, body.encode(), hashlib.sha256).hexdigest()


def encode_token(payload: Mapping[str, Any], key: bytes) -> str:
    """Serialize a payload as `<base64 json>.<hmac>` so clients cannot alter it."""
    body = base64.urlsafe_b64encode(json.dumps(payload, sort_keys=True).encode()).decode()
    return f"{body}.{_token_signature(body, key)}"


def decode_token(token: str, key: bytes) -> dict[str, Any]:
    body, _, signature = token.partition(".")
    if not signature or not hmac.compare_digest(_token_signature(body, key), signature):
        raise VendorRejectedError("square", "Confirmation token signature is invalid")
    try:
        return json.loads(base64.urlsafe_b64decode(body.encode()))
    except (binascii.Error, ValueError) as exc:
        raise VendorRejectedError("square", "Malformed confirmation token") from exc


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class SquareGateway(PaymentGateway):
    """Payment gateway backed by the Square REST API."""

    name = "square"
    display_name = "Square"
    signature_header = SIGNATURE_HEADER

    def __init__(
        self,
        config: GatewayConfig,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        clock=time.time,
    ) -> None:
        if not config.secret_key:
            raise ConfigurationError(self.name, "SQUARE_ACCESS_TOKEN is not configured")
        environment = config.options.get("environment", "sandbox")
        if environment not in SQUARE_BASE_URLS:
            raise ConfigurationError(self.name, f"Unknown Square environment: {environment}")
        self._base_url = SQUARE_BASE_URLS[environment]
        self._token_key = config.secret_key.encode()
        self._webhook_secret = config.webhook_secret
        self._notification_url = config.options.get("notification_url", "")
        self._location_id = config.options.get("location_id", "")
        self._timeout = timeout
        self._clock = clock
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {config.secret_key}",
                "Square-Version": SQUARE_API_VERSION,
                "Content-Type": "application/json",
            }
        )

    # HTTP

    def _request(
        self,
        method: str,
        path: str,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method, url, json=body, params=params, timeout=self._timeout
            )
        except requests.RequestException as exc:
            logger.warning("Square %s %s unavailable: %s", method, path, exc)
            raise VendorUnavailableError(self.name) from exc

        if response.status_code in (401, 403):
            logger.error("Square rejected credentials on %s %s", method, path)
            raise ConfigurationError(self.name, "Square credentials were rejected")
        if response.status_code == 429 or response.status_code >= 500:
            logger.warning("Square %s %s returned %s", method, path, response.status_code)
            raise VendorUnavailableError(self.name)

        try:
            data = response.json() if response.content else {}
        except ValueError as exc:
            raise VendorUnavailableError(self.name, "Malformed Square response") from exc

        if response.status_code >= 400:
            errors = data.get("errors") or [{}]
            detail = errors[0].get("detail") or errors[0].get("code") or "Square request rejected"
            logger.warning("Square %s %s rejected: %s", method, path, errors)
            raise VendorRejectedError(self.name, detail)
        return data

    # Normalization

    def _customer(self, data: Mapping[str, Any], account_id: str = "", email: str = "", name: str = "") -> CustomerIdentity:
        full_name = f"{data.get('given_name') or ''} {data.get('family_name') or ''}".strip()
        return CustomerIdentity(
            vendor=self.name,
            account_id=account_id or data.get("reference_id") or "",
            customer_ref=data["id"],
            email=data.get("email_address") or email,
            name=full_name or name,
        )

    @staticmethod
    def _card(data: Mapping[str, Any]) -> PaymentMethod:
        return PaymentMethod(
            id=data["id"],
            type="card",
            card=CardDetails(
                brand=(data.get("card_brand") or "").lower(),
                last4=data.get("last_4") or "",
                exp_month=int(data.get("exp_month") or 0),
                exp_year=int(data.get("exp_year") or 0),
                fingerprint=data.get("fingerprint"),
            ),
        )

    def _payment_view(self, payment: Mapping[str, Any], ref: str | None = None) -> PaymentIntentView:
        money = payment.get("amount_money") or {}
        return PaymentIntentView(
            id=ref or payment["id"],
            amount=int(money.get("amount") or 0),
            currency=(money.get("currency") or "").lower(),
            status=_STATUS_MAP.get(payment.get("status"), IntentStatus.PROCESSING),
            customer_ref=payment.get("customer_id"),
            metadata={"square_payment_id": payment["id"]},
            raw=dict(payment),
        )

    # Synthesized intents

    def _new_ref(self, prefix: str) -> str:
        return f"{prefix}{int(self._clock())}_{uuid.uuid4().hex[:16]}"

    @staticmethod
    def _created_at(ref: str) -> datetime:
        try:
            return datetime.fromtimestamp(int(ref.split("_")[1]), tz=timezone.utc)
        except (IndexError, ValueError) as exc:
            raise VendorRejectedError("square", f"Unknown payment reference: {ref}") from exc

    def _find_payment(self, ref: str) -> dict[str, Any] | None:
        params: dict[str, Any] = {
            "begin_time": _rfc3339(self._created_at(ref)),
            "sort_order": "ASC",
            "limit": 100,
        }
        for _ in range(MAX_LOOKUP_PAGES):
            data = self._request("GET", "/v2/payments", params=params)
            for payment in data.get("payments") or ():
                if payment.get("reference_id") == ref:
                    return payment
            if not data.get("cursor"):
                return None
            params = {**params, "cursor": data["cursor"]}
        # An unfinished scan is not evidence the intent was never paid.
        logger.warning("Square lookup for %s stopped after %s pages", ref, MAX_LOOKUP_PAGES)
        raise VendorUnavailableError(self.name, "Square payment lookup did not complete")

    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_ref: str | None,
        description: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> PaymentIntentView:
        ref = self._new_ref(INTENT_PREFIX)
        token = encode_token(
            {
                "intent_id": ref,
                "amount": amount,
                "currency": currency.upper(),
                "customer_id": customer_ref,
                "description": description,
                "metadata": dict(metadata),
            },
            self._token_key,
        )
        logger.info("Synthesized Square intent %s for customer %s", ref, customer_ref)
        return PaymentIntentView(
            id=ref,
            amount=amount,
            currency=currency.lower(),
            status=IntentStatus.REQUIRES_ACTION,
            customer_ref=customer_ref,
            client_secret=token,
            metadata=dict(metadata),
        )

    def get_payment_intent(self, ref: str) -> PaymentIntentView:
        if not ref.startswith(INTENT_PREFIX):
            return self._payment_view(self._request("GET", f"/v2/payments/{ref}")["payment"])

        payment = self._find_payment(ref)
        if payment is not None:
            return self._payment_view(payment, ref=ref)

        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        expired = now - self._created_at(ref) > INTENT_EXPIRY
        return PaymentIntentView(
            id=ref,
            amount=0,
            currency="",
            status=IntentStatus.FAILED if expired else IntentStatus.REQUIRES_ACTION,
        )

    def confirm_payment_intent(self, ref: str, confirmation: Mapping[str, Any]) -> PaymentIntentView:
        source_id = confirmation.get("source_id")
        token = confirmation.get("client_secret")
        if not source_id or not token:
            raise VendorRejectedError(self.name, "Square confirmation requires source_id and client_secret")
        intent = decode_token(token, self._token_key)
        if intent.get("intent_id") != ref:
            raise VendorRejectedError(self.name, "Confirmation token does not match payment")

        body: dict[str, Any] = {
            "idempotency_key": ref,
            "source_id": source_id,
            "amount_money": {"amount": intent["amount"], "currency": intent["currency"]},
            "reference_id": ref,
            "note": (intent.get("description") or "")[:500],
            "autocomplete": True,
        }
        if intent.get("customer_id"):
            body["customer_id"] = intent["customer_id"]
        if self._location_id:
            body["location_id"] = self._location_id
        payment = self._request("POST", "/v2/payments", body=body)["payment"]
        logger.info("Square payment %s created for intent %s", payment.get("id"), ref)
        return self._payment_view(payment, ref=ref)

    def cancel_payment_intent(self, ref: str) -> PaymentIntentView:
        payment = self._find_payment(ref) if ref.startswith(INTENT_PREFIX) else (
            self._request("GET", f"/v2/payments/{ref}")["payment"]
        )
        if payment is None:
            return PaymentIntentView(id=ref, amount=0, currency="", status=IntentStatus.FAILED)
        if payment.get("status") == "APPROVED":
            payment = self._request("POST", f"/v2/payments/{payment['id']}/cancel", body={})["payment"]
        elif payment.get("status") == "COMPLETED":
            raise VendorRejectedError(self.name, "Completed Square payments cannot be voided")
        return self._payment_view(payment, ref=ref)

    # Customers

    def get_or_create_customer(self, account_id: str, email: str, name: str = "") -> CustomerIdentity:
        found = self._request(
            "POST",
            "/v2/customers/search",
            body={"query": {"filter": {"email_address": {"exact": email}}}, "limit": 1},
        )
        if found.get("customers"):
            return self._customer(found["customers"][0], account_id=account_id, email=email, name=name)

        given, _, family = (name or "").partition(" ")
        created = self._request(
            "POST",
            "/v2/customers",
            body={
                "idempotency_key": hashlib.sha256(f"{account_id}:{email}".encode()).hexdigest()[:45],
                "given_name": given,
                "family_name": family,
                "email_address": email,
                "reference_id": account_id,
                "note": f"Account ID: {account_id}",
            },
        )["customer"]
        identity = self._customer(created, account_id=account_id, email=email, name=name)
        logger.info("Created Square customer %s for account %s", identity.customer_ref, account_id)
        return identity

    def get_customer(self, customer_ref: str) -> CustomerIdentity:
        return self._customer(self._request("GET", f"/v2/customers/{customer_ref}")["customer"])

    # Payment methods

    def list_payment_methods(self, customer_ref: str) -> list[PaymentMethod]:
        data = self._request("GET", "/v2/cards", params={"customer_id": customer_ref})
        return [self._card(card) for card in data.get("cards") or ()]

    def attach_payment_method(self, payment_method_ref: str, customer_ref: str) -> PaymentMethod:
        # Square stores a card on file from a single-use nonce.
        card = self._request(
            "POST",
            "/v2/cards",
            body={
                "idempotency_key": uuid.uuid4().hex,
                "source_id": payment_method_ref,
                "card": {"customer_id": customer_ref},
            },
        )["card"]
        return self._card(card)

    def detach_payment_method(self, payment_method_ref: str, customer_ref: str) -> PaymentMethod:
        card = self._request("POST", f"/v2/cards/{payment_method_ref}/disable", body={})["card"]
        return self._card(card)

    def set_default_payment_method(self, payment_method_ref: str, customer_ref: str) -> CustomerIdentity:
        # No default-card concept in Square; record it on the customer note.
        current = self._request("GET", f"/v2/customers/{customer_ref}")["customer"]
        note = (current.get("note") or "").split(" | Default Payment: ")[0]
        updated = self._request(
            "PUT",
            f"/v2/customers/{customer_ref}",
            body={"note": f"{note} | Default Payment: {payment_method_ref}".strip()},
        )["customer"]
        return self._customer(updated)

    def create_setup_intent(self, customer_ref: str, return_url: str | None = None) -> SetupIntentView:
        ref = self._new_ref(SETUP_PREFIX)
        token = encode_token(
            {"setup_id": ref, "customer_id": customer_ref, "return_url": return_url}, self._token_key
        )
        return SetupIntentView(id=ref, client_secret=token, status="requires_payment_method")

    def get_payment_history(self, customer_ref: str, limit: int = 50) -> list[PaymentHistoryItem]:
        data = self._request("GET", "/v2/payments", params={"limit": 100})
        history = []
        for payment in data.get("payments") or ():
            if payment.get("customer_id") != customer_ref:
                continue
            money = payment.get("amount_money") or {}
            details = payment.get("card_details") or {}
            card = details.get("card")
            history.append(
                PaymentHistoryItem(
                    id=payment["id"],
                    amount=int(money.get("amount") or 0),
                    currency=(money.get("currency") or "").lower(),
                    status=(payment.get("status") or "").lower(),
                    description=payment.get("note") or "Payment",
                    created_at=_parse_time(payment.get("created_at")),
                    payment_method=self._card(card) if card and card.get("id") else None,
                )
            )
            if len(history) >= limit:
                break
        return history

    # Webhooks

    def process_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not self._webhook_secret or not self._notification_url:
            raise ConfigurationError(
                self.name, "SQUARE_WEBHOOK_SIGNATURE_KEY and SQUARE_WEBHOOK_URL must be configured"
            )
        digest = hmac.new(
            self._webhook_secret.encode(),
            self._notification_url.encode() + payload,
            hashlib.sha256,
        ).digest()
        expected = base64.b64encode(digest).decode()
        if not signature or not hmac.compare_digest(expected, signature):
            logger.warning("Square webhook signature verification failed")
            raise WebhookSignatureError(self.name)

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise WebhookSignatureError(self.name) from exc

        data = event.get("data") or {}
        payment = (data.get("object") or {}).get("payment") or {}
        payment_ref = payment.get("reference_id") or payment.get("id")
        return WebhookEvent(
            id=event.get("event_id") or "",
            type=event.get("type") or "",
            payment_ref=payment_ref,
            created=_parse_time(event.get("created_at")),
            data=data,
        )

    # Admin listings

    def list_intents(self, filters: Mapping[str, Any]) -> Page:
        params: dict[str, Any] = {"limit": filters.get("limit", 50)}
        if filters.get("cursor"):
            params["cursor"] = filters["cursor"]
        if filters.get("begin_time"):
            params["begin_time"] = filters["begin_time"]
        data = self._request("GET", "/v2/payments", params=params)
        return Page(
            data=tuple(data.get("payments") or ()),
            has_more=bool(data.get("cursor")),
            cursor=data.get("cursor"),
        )

    def list_customers(self, filters: Mapping[str, Any]) -> Page:
        limit = filters.get("limit", 50)
        if filters.get("search"):
            data = self._request(
                "POST",
                "/v2/customers/search",
                body={
                    "query": {"filter": {"email_address": {"fuzzy": filters["search"]}}},
                    "limit": limit,
                },
            )
        else:
            params: dict[str, Any] = {"limit": limit}
            if filters.get("cursor"):
                params["cursor"] = filters["cursor"]
            data = self._request("GET", "/v2/customers", params=params)
        return Page(
            data=tuple(data.get("customers") or ()),
            has_more=bool(data.get("cursor")),
            cursor=data.get("cursor"),
        )

    def list_invoices(self, filters: Mapping[str, Any]) -> Page:
        if not self._location_id:
            raise ConfigurationError(self.name, "SQUARE_LOCATION_ID is required to list invoices")
        params: dict[str, Any] = {"location_id": self._location_id, "limit": filters.get("limit", 50)}
        if filters.get("cursor"):
            params["cursor"] = filters["cursor"]
        data = self._request("GET", "/v2/invoices", params=params)
        return Page(
            data=tuple(data.get("invoices") or ()),
            has_more=bool(data.get("cursor")),
            cursor=data.get("cursor"),
        )

    def check_connection(self) -> None:
        self._request("GET", "/v2/locations")
