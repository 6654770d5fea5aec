from django.urls import path

from payments.handlers import (
    PaymentHistoryView,
    PaymentMethodActionView,
    PaymentMethodListView,
    SetupIntentView,
    VendorActivateView,
    VendorDetailView,
    VendorListingView,
    VendorListView,
    VendorTestConnectionView,
)

urlpatterns = [
    path("admin/payment-vendors", VendorListView.as_view(), name="vendor-list"),
    path("admin/payment-vendors/<str:vendor>", VendorDetailView.as_view(), name="vendor-detail"),
    path(
        "admin/payment-vendors/<str:vendor>/activate",
        VendorActivateView.as_view(),
        name="vendor-activate",
    ),
    path(
        "admin/payment-vendors/<str:vendor>/test",
        VendorTestConnectionView.as_view(),
        name="vendor-test",
    ),
    path(
        "admin/payment-vendors/<str:vendor>/<str:listing>",
        VendorListingView.as_view(),
        name="vendor-listing",
    ),
    path("payment-methods", PaymentMethodListView.as_view(), name="payment-method-list"),
    path("payment-methods/setup-intent", SetupIntentView.as_view(), name="setup-intent"),
    path(
        "payment-methods/<str:action>",
        PaymentMethodActionView.as_view(),
        name="payment-method-action",
    ),
    path("payments/history", PaymentHistoryView.as_view(), name="payment-history"),
]
