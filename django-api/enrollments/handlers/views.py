"""HTTP handlers (views) - handle HTTP concerns only.

Handlers:
- Parse requests and validate input format
- Call services for business logic
- Map result error codes to HTTP responses
- Never contain business logic
- Never expose internal error details
"""

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from enrollments.domain import AdmissionResult, VerificationResult
from enrollments.domain.errors import ErrorCode
from enrollments.handlers.serializers import (
    ConfirmationRequestSerializer,
    EnrollmentRequestSerializer,
    EnrollmentSerializer,
)
from enrollments.services.factory import build_admission_service, build_confirmation_service
from payments.domain.errors import PaymentError
from payments.registry import get_registry

STATUS_FOR_ERROR = {
    ErrorCode.INVALID_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_PRICE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.SESSION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PARTICIPANT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ENROLLMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.NOT_OWNER: status.HTTP_404_NOT_FOUND,
    ErrorCode.DUPLICATE_ENROLLMENT: status.HTTP_409_CONFLICT,
    ErrorCode.SESSION_FULL: status.HTTP_409_CONFLICT,
    ErrorCode.PRICE_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.VENDOR_REJECTED: status.HTTP_402_PAYMENT_REQUIRED,
    ErrorCode.VENDOR_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.ENROLLMENT_WRITE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CONFIGURATION_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(error: ErrorCode, message: str) -> Response:
    if error is ErrorCode.CONFIGURATION_ERROR:
        message = "Payments are temporarily unavailable"
    return Response({"error": error.value, "message": message}, status=STATUS_FOR_ERROR[error])


def _account_id(request: Request) -> str:
    return str(request.user.pk)


def _verification_response(result: VerificationResult) -> Response:
    if not result.ok:
        return _error_response(result.error, result.message)
    return Response(EnrollmentSerializer(result.enrollment).data)


class EnrollmentListView(APIView):
    """Handler for GET/POST /api/enrollments"""

    def get(self, request: Request) -> Response:
        enrollments = build_admission_service().list_for_account(_account_id(request))
        return Response({"data": EnrollmentSerializer(enrollments, many=True).data})

    def post(self, request: Request) -> Response:
        serializer = EnrollmentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result: AdmissionResult = build_admission_service().request_enrollment(
            participant_id=serializer.validated_data["participant_id"],
            session_id=serializer.validated_data["session_id"],
            price=serializer.validated_data["price"],
            account_id=_account_id(request),
        )
        if not result.ok:
            return _error_response(result.error, result.message)
        return Response(
            {
                "enrollment": EnrollmentSerializer(result.enrollment).data,
                "client_token": result.client_token,
            },
            status=status.HTTP_201_CREATED,
        )


class EnrollmentVerifyView(APIView):
    """Handler for POST /api/enrollments/{enrollment_id}/verify"""

    def post(self, request: Request, enrollment_id: str) -> Response:
        result = build_confirmation_service().verify_enrollment(enrollment_id, _account_id(request))
        return _verification_response(result)


class EnrollmentConfirmView(APIView):
    """Handler for POST /api/enrollments/{enrollment_id}/confirm"""

    def post(self, request: Request, enrollment_id: str) -> Response:
        serializer = ConfirmationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = build_confirmation_service().confirm_with_vendor(
            enrollment_id,
            serializer.validated_data["confirmation"],
            _account_id(request),
        )
        return _verification_response(result)


class EnrollmentCancelView(APIView):
    """Handler for POST /api/enrollments/{enrollment_id}/cancel"""

    def post(self, request: Request, enrollment_id: str) -> Response:
        result = build_admission_service().cancel_enrollment(enrollment_id, _account_id(request))
        return _verification_response(result)


class VendorWebhookView(APIView):
    """Handler for POST /api/webhooks/{vendor}

    Vendors authenticate with a payload signature, not a session, so the raw
    body must reach the adapter untouched.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request: Request, vendor: str) -> Response:
        try:
            header = get_registry().get_provider(vendor).signature_header
        except PaymentError:
            header = None
        signature = request.headers.get(header, "") if header else ""

        result = build_confirmation_service().handle_webhook(vendor, request.body, signature)
        body = {"received": result.status_code == status.HTTP_200_OK}
        if result.message:
            body["message"] = result.message
        return Response(body, status=result.status_code)
