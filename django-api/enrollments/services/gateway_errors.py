"""Translation of gateway failures into enrollment error codes."""

from enrollments.domain.errors import ErrorCode
from payments.domain.errors import PaymentError, PaymentErrorCode

_CODES = {
    PaymentErrorCode.VENDOR_UNAVAILABLE: ErrorCode.VENDOR_UNAVAILABLE,
    PaymentErrorCode.VENDOR_REJECTED: ErrorCode.VENDOR_REJECTED,
    PaymentErrorCode.CONFIGURATION_ERROR: ErrorCode.CONFIGURATION_ERROR,
    PaymentErrorCode.UNKNOWN_VENDOR: ErrorCode.CONFIGURATION_ERROR,
    PaymentErrorCode.INVALID_WEBHOOK_SIGNATURE: ErrorCode.VENDOR_REJECTED,
}


def error_code_for(exc: PaymentError) -> ErrorCode:
    return _CODES[exc.code]
