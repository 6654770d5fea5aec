"""Error codes raised by the payment gateway layer."""

from dataclasses import dataclass
from enum import Enum


class PaymentErrorCode(Enum):
    """Payment gateway error codes."""

    VENDOR_UNAVAILABLE = "VENDOR_UNAVAILABLE"
    VENDOR_REJECTED = "VENDOR_REJECTED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"
    UNKNOWN_VENDOR = "UNKNOWN_VENDOR"


@dataclass(frozen=True)
class PaymentError(Exception):
    """Base gateway error with code and operator-safe message."""

    code: PaymentErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class VendorUnavailableError(PaymentError):
    """Transient vendor failure (timeout, connection, rate limit, 5xx).

    Callers may retry with backoff.
    """

    def __init__(self, vendor: str, message: str = "Payment vendor is unavailable") -> None:
        super().__init__(code=PaymentErrorCode.VENDOR_UNAVAILABLE, message=message)
        self.vendor = vendor


class VendorRejectedError(PaymentError):
    """Permanent rejection by the vendor, e.g. a declined card."""

    def __init__(self, vendor: str, message: str = "Payment was declined") -> None:
        super().__init__(code=PaymentErrorCode.VENDOR_REJECTED, message=message)
        self.vendor = vendor


class ConfigurationError(PaymentError):
    """Missing or invalid vendor configuration. Never retried automatically."""

    def __init__(self, vendor: str, message: str) -> None:
        super().__init__(code=PaymentErrorCode.CONFIGURATION_ERROR, message=message)
        self.vendor = vendor


class WebhookSignatureError(PaymentError):
    """Raised when an inbound webhook fails signature verification."""

    def __init__(self, vendor: str) -> None:
        super().__init__(
            code=PaymentErrorCode.INVALID_WEBHOOK_SIGNATURE,
            message="Invalid webhook signature",
        )
        self.vendor = vendor


class UnknownVendorError(PaymentError):
    """Raised when a vendor name is not registered."""

    def __init__(self, vendor: str) -> None:
        super().__init__(
            code=PaymentErrorCode.UNKNOWN_VENDOR,
            message=f"Unknown payment vendor: {vendor}",
        )
        self.vendor = vendor
