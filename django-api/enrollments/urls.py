from django.urls import path

from enrollments.handlers import (
    EnrollmentCancelView,
    EnrollmentConfirmView,
    EnrollmentListView,
    EnrollmentVerifyView,
    VendorWebhookView,
)

urlpatterns = [
    path("enrollments", EnrollmentListView.as_view(), name="enrollment-list"),
    path(
        "enrollments/<str:enrollment_id>/verify",
        EnrollmentVerifyView.as_view(),
        name="enrollment-verify",
    ),
    path(
        "enrollments/<str:enrollment_id>/confirm",
        EnrollmentConfirmView.as_view(),
        name="enrollment-confirm",
    ),
    path(
        "enrollments/<str:enrollment_id>/cancel",
        EnrollmentCancelView.as_view(),
        name="enrollment-cancel",
    ),
    path("webhooks/<str:vendor>", VendorWebhookView.as_view(), name="vendor-webhook"),
]
