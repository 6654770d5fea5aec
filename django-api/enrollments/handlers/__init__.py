from enrollments.handlers.views import (
    EnrollmentCancelView,
    EnrollmentConfirmView,
    EnrollmentListView,
    EnrollmentVerifyView,
    VendorWebhookView,
)

__all__ = [
    "EnrollmentCancelView",
    "EnrollmentConfirmView",
    "EnrollmentListView",
    "EnrollmentVerifyView",
    "VendorWebhookView",
]
