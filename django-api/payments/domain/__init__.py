from payments.domain.config import (
    GatewayConfig,
    GatewayConfigPatch,
    RegistrySnapshot,
    VendorStatus,
)
from payments.domain.models import (
    CardDetails,
    CustomerIdentity,
    IntentStatus,
    Page,
    PaymentHistoryItem,
    PaymentIntentView,
    PaymentMethod,
    SetupIntentView,
    WebhookEvent,
)

__all__ = [
    "CardDetails",
    "CustomerIdentity",
    "GatewayConfig",
    "GatewayConfigPatch",
    "IntentStatus",
    "Page",
    "PaymentHistoryItem",
    "PaymentIntentView",
    "PaymentMethod",
    "RegistrySnapshot",
    "SetupIntentView",
    "VendorStatus",
    "WebhookEvent",
]
