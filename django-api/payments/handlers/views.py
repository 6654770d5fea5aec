"""HTTP handlers for payment vendors - handle HTTP concerns only.

Admin views manage the Gateway Registry; account views manage the payment
methods stored with the active vendor for the signed-in account. Gateway
exceptions are mapped to status codes here and never leak vendor detail
beyond the adapter's message.
"""

import logging

from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from payments.domain import CustomerIdentity, GatewayConfigPatch
from payments.domain.errors import PaymentError, PaymentErrorCode
from payments.gateways import PaymentGateway
from payments.handlers.serializers import (
    GatewayConfigUpdateSerializer,
    ListFiltersSerializer,
    PageSerializer,
    PaymentHistoryItemSerializer,
    PaymentMethodActionSerializer,
    PaymentMethodSerializer,
    SetupIntentRequestSerializer,
    SetupIntentSerializer,
    VendorStatusSerializer,
)
from payments.registry import get_registry
from payments.services.customer_service import CustomerService
from payments.stores.django_store import DjangoCustomerIdentityStore

logger = logging.getLogger(__name__)

STATUS_FOR_ERROR = {
    PaymentErrorCode.VENDOR_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    PaymentErrorCode.VENDOR_REJECTED: status.HTTP_402_PAYMENT_REQUIRED,
    PaymentErrorCode.CONFIGURATION_ERROR: status.HTTP_400_BAD_REQUEST,
    PaymentErrorCode.UNKNOWN_VENDOR: status.HTTP_404_NOT_FOUND,
    PaymentErrorCode.INVALID_WEBHOOK_SIGNATURE: status.HTTP_400_BAD_REQUEST,
}

LISTINGS = {
    "intents": "list_intents",
    "customers": "list_customers",
    "invoices": "list_invoices",
}


def _error_response(exc: PaymentError) -> Response:
    return Response(
        {"error": exc.code.value, "message": exc.message},
        status=STATUS_FOR_ERROR[exc.code],
    )


class VendorListView(APIView):
    """Handler for GET /api/admin/payment-vendors"""

    permission_classes = [IsAdminUser]

    def get(self, request: Request) -> Response:
        vendors = get_registry().list_vendors()
        return Response({"data": VendorStatusSerializer(vendors, many=True).data})


class VendorDetailView(APIView):
    """Handler for PATCH /api/admin/payment-vendors/{vendor}"""

    permission_classes = [IsAdminUser]

    def patch(self, request: Request, vendor: str) -> Response:
        serializer = GatewayConfigUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            config = get_registry().update_config(
                vendor, GatewayConfigPatch.from_dict(serializer.validated_data)
            )
        except PaymentError as exc:
            return _error_response(exc)
        logger.info("Vendor %s configuration updated by user %s", vendor, request.user.pk)
        return Response(
            {
                "name": config.vendor,
                "is_active": config.is_active,
                "is_default": config.is_default,
                "is_configured": config.is_configured,
            }
        )


class VendorActivateView(APIView):
    """Handler for POST /api/admin/payment-vendors/{vendor}/activate"""

    permission_classes = [IsAdminUser]

    def post(self, request: Request, vendor: str) -> Response:
        try:
            get_registry().set_active_provider(vendor)
        except PaymentError as exc:
            return _error_response(exc)
        return Response({"success": True, "active": vendor})


class VendorTestConnectionView(APIView):
    """Handler for POST /api/admin/payment-vendors/{vendor}/test"""

    permission_classes = [IsAdminUser]

    def post(self, request: Request, vendor: str) -> Response:
        try:
            get_registry().get_provider(vendor).check_connection()
        except PaymentError as exc:
            return Response({"connected": False, "message": exc.message})
        return Response({"connected": True})


class VendorListingView(APIView):
    """Handler for GET /api/admin/payment-vendors/{vendor}/{listing}

    `listing` is one of intents, customers or invoices.
    """

    permission_classes = [IsAdminUser]

    def get(self, request: Request, vendor: str, listing: str) -> Response:
        serializer = ListFiltersSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        if listing not in LISTINGS:
            return Response({"error": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        try:
            gateway = get_registry().get_provider(vendor)
            page = getattr(gateway, LISTINGS[listing])(serializer.validated_data)
        except PaymentError as exc:
            return _error_response(exc)
        return Response(PageSerializer(page).data)


class AccountPaymentView(APIView):
    """Base for views acting on the signed-in account's vendor customer."""

    def _customer(self, request: Request) -> tuple[PaymentGateway, CustomerIdentity]:
        vendor, gateway = get_registry().resolve_active()
        user = request.user
        identity = CustomerService(DjangoCustomerIdentityStore()).resolve(
            vendor,
            gateway,
            str(user.pk),
            user.email,
            user.get_full_name(),
        )
        return gateway, identity


class PaymentMethodListView(AccountPaymentView):
    """Handler for GET /api/payment-methods"""

    def get(self, request: Request) -> Response:
        try:
            gateway, customer = self._customer(request)
            methods = gateway.list_payment_methods(customer.customer_ref)
        except PaymentError as exc:
            return _error_response(exc)
        return Response({"data": PaymentMethodSerializer(methods, many=True).data})


class PaymentMethodActionView(AccountPaymentView):
    """Handler for POST /api/payment-methods/{action}

    `action` is one of attach, detach or default.
    """

    def post(self, request: Request, action: str) -> Response:
        if action not in ("attach", "detach", "default"):
            return Response({"error": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)
        serializer = PaymentMethodActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        pm_ref = serializer.validated_data["payment_method_id"]
        try:
            gateway, customer = self._customer(request)
            if action == "attach":
                method = gateway.attach_payment_method(pm_ref, customer.customer_ref)
            elif action == "detach":
                method = gateway.detach_payment_method(pm_ref, customer.customer_ref)
            else:
                gateway.set_default_payment_method(pm_ref, customer.customer_ref)
                return Response({"success": True})
        except PaymentError as exc:
            return _error_response(exc)
        return Response(PaymentMethodSerializer(method).data)


class SetupIntentView(AccountPaymentView):
    """Handler for POST /api/payment-methods/setup-intent"""

    def post(self, request: Request) -> Response:
        serializer = SetupIntentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            gateway, customer = self._customer(request)
            setup = gateway.create_setup_intent(
                customer.customer_ref, serializer.validated_data.get("return_url")
            )
        except PaymentError as exc:
            return _error_response(exc)
        return Response(SetupIntentSerializer(setup).data, status=status.HTTP_201_CREATED)


class PaymentHistoryView(AccountPaymentView):
    """Handler for GET /api/payments/history"""

    def get(self, request: Request) -> Response:
        serializer = ListFiltersSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        try:
            gateway, customer = self._customer(request)
            history = gateway.get_payment_history(
                customer.customer_ref, serializer.validated_data["limit"]
            )
        except PaymentError as exc:
            return _error_response(exc)
        return Response({"data": PaymentHistoryItemSerializer(history, many=True).data})
