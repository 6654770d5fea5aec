"""Vendor-neutral value types returned by every gateway adapter.

Adapters normalize vendor responses into these types at the boundary; nothing
above the adapter layer inspects raw vendor objects except for audit echo.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class IntentStatus(Enum):
    """Normalized payment intent status."""

    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (IntentStatus.SUCCEEDED, IntentStatus.FAILED)


@dataclass(frozen=True)
class PaymentIntentView:
    """Projection of a vendor payment object.

    `client_secret` is an opaque string the client echoes back unmodified.
    Only the adapter that produced it may interpret it.
    """

    id: str
    amount: int
    currency: str
    status: IntentStatus
    customer_ref: str | None = None
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class CustomerIdentity:
    """Mapping of an internal account to a vendor customer record."""

    vendor: str
    account_id: str
    customer_ref: str
    email: str
    name: str = ""


@dataclass(frozen=True)
class CardDetails:
    brand: str
    last4: str
    exp_month: int
    exp_year: int
    fingerprint: str | None = None


@dataclass(frozen=True)
class PaymentMethod:
    id: str
    type: str
    card: CardDetails | None = None


@dataclass(frozen=True)
class SetupIntentView:
    id: str
    client_secret: str
    status: str


@dataclass(frozen=True)
class PaymentHistoryItem:
    id: str
    amount: int
    currency: str
    status: str
    description: str
    created_at: datetime
    payment_method: PaymentMethod | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """Verified webhook event.

    `payment_ref` is the identifier the Confirmation Handler should re-fetch,
    or None when the event does not concern a payment.
    """

    id: str
    type: str
    payment_ref: str | None
    created: datetime
    data: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class Page:
    """One page of an admin listing."""

    data: tuple[dict[str, Any], ...]
    has_more: bool
    cursor: str | None = None
