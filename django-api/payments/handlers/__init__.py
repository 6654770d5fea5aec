from payments.handlers.views import (
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

__all__ = [
    "PaymentHistoryView",
    "PaymentMethodActionView",
    "PaymentMethodListView",
    "SetupIntentView",
    "VendorActivateView",
    "VendorDetailView",
    "VendorListingView",
    "VendorListView",
    "VendorTestConnectionView",
]
