"""Payment confirmation and enrollment reconciliation.

Every path that moves an enrollment out of Pending ends in `_reconcile`:
the synchronous verification call, the vendor-side confirmation, the inbound
webhook and the expiry sweep. The vendor is always queried through the
adapter of the vendor the enrollment was created with, and the store write
that follows runs under the session lock with the enrollment re-read, so
duplicate notifications converge on one transition.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Mapping

from django.utils import timezone

from enrollments.domain import (
    Enrollment,
    EnrollmentId,
    EnrollmentState,
    VerificationResult,
    WebhookResult,
)
from enrollments.domain.errors import EnrollmentWriteError, ErrorCode
from enrollments.services.gateway_errors import error_code_for
from enrollments.stores.interfaces import EnrollmentStore
from payments.domain import IntentStatus, PaymentIntentView
from payments.domain.errors import (
    ConfigurationError,
    PaymentError,
    UnknownVendorError,
    WebhookSignatureError,
)
from payments.gateways import PaymentGateway
from payments.registry import GatewayRegistry

logger = logging.getLogger(__name__)

_RETRYABLE = {
    ErrorCode.VENDOR_UNAVAILABLE,
    ErrorCode.CONFIGURATION_ERROR,
    ErrorCode.ENROLLMENT_WRITE_FAILED,
}


class ConfirmationService:
    """Moves Pending enrollments to Confirmed or Failed from vendor truth."""

    def __init__(
        self,
        store: EnrollmentStore,
        registry: GatewayRegistry,
        currency: str = "usd",
        pending_ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._registry = registry
        self._currency = currency.lower()
        self._pending_ttl = pending_ttl
        self._clock = clock

    def verify_enrollment(self, enrollment_id: str, account_id: str | None = None) -> VerificationResult:
        """Reconcile one enrollment with the state of its payment intent."""
        enrollment, rejection = self._load(enrollment_id, account_id)
        if rejection is not None:
            return rejection
        return self._reconcile(enrollment)

    def verify_payment(self, vendor: str, payment_ref: str) -> VerificationResult:
        """Reconcile whichever enrollment carries `payment_ref`.

        An unknown reference is a successful no-op: vendors notify about
        payments this system never created.
        """
        enrollment = self._store.get_enrollment_by_payment_ref(vendor, payment_ref)
        if enrollment is None:
            logger.info("No enrollment for %s payment %s; ignoring", vendor, payment_ref)
            return VerificationResult.of(None)
        return self._reconcile(enrollment)

    def confirm_with_vendor(
        self,
        enrollment_id: str,
        confirmation: Mapping[str, object],
        account_id: str | None = None,
    ) -> VerificationResult:
        """Complete the payment at the vendor, then reconcile.

        Used by vendors whose client flow hands a payment source back to the
        server (a Square card nonce) instead of confirming directly.
        """
        enrollment, rejection = self._load(enrollment_id, account_id)
        if rejection is not None:
            return rejection
        if enrollment.state is not EnrollmentState.PENDING:
            return VerificationResult.rejected(
                ErrorCode.INVALID_TRANSITION,
                f"Enrollment is {enrollment.state.value}, not pending",
                enrollment,
            )
        try:
            gateway = self._registry.get_provider(enrollment.vendor)
            gateway.confirm_payment_intent(enrollment.external_payment_ref, dict(confirmation))
        except PaymentError as exc:
            logger.warning("Confirming %s at %s failed: %s", enrollment.id, enrollment.vendor, exc)
            return VerificationResult.rejected(error_code_for(exc), exc.message, enrollment)
        return self._reconcile(enrollment)

    def handle_webhook(self, vendor: str, raw_body: bytes, signature: str) -> WebhookResult:
        """Authenticate and apply a vendor notification.

        The status code tells the vendor whether to redeliver: 400 for a bad
        signature, 503 when the outcome could not be determined, 200 otherwise.
        """
        try:
            gateway = self._registry.get_provider(vendor)
        except UnknownVendorError as exc:
            return WebhookResult(status_code=404, message=exc.message)
        except ConfigurationError as exc:
            logger.error("Webhook for %s received but provider is unusable: %s", vendor, exc)
            return WebhookResult(status_code=503, message=exc.message)

        try:
            event = gateway.process_webhook(raw_body, signature)
        except WebhookSignatureError as exc:
            logger.warning("Rejected %s webhook: %s", vendor, exc.message)
            return WebhookResult(status_code=400, message=exc.message)
        except ConfigurationError as exc:
            logger.error("Cannot verify %s webhook: %s", vendor, exc)
            return WebhookResult(status_code=503, message=exc.message)

        if not event.payment_ref:
            logger.debug("Ignoring %s webhook %s (%s)", vendor, event.id, event.type)
            return WebhookResult(status_code=200, message="ignored")

        logger.info("Webhook %s (%s) for %s payment %s", event.id, event.type, vendor, event.payment_ref)
        verification = self.verify_payment(vendor, event.payment_ref)
        if verification.error in _RETRYABLE:
            return WebhookResult(status_code=503, verification=verification, message=verification.message)
        return WebhookResult(status_code=200, verification=verification)

    def expire_stale_enrollments(self, now: datetime | None = None) -> list[VerificationResult]:
        """Reconcile every Pending enrollment older than the pending TTL.

        Paid ones are confirmed, abandoned ones are failed and their intents
        voided so they stop holding a place.
        """
        cutoff = (now or self._clock()) - self._pending_ttl
        results = [self._reconcile(enrollment) for enrollment in self._store.list_stale_pending(cutoff)]
        logger.info("Expiry sweep reconciled %s pending enrollments", len(results))
        return results

    def _load(
        self, enrollment_id: str, account_id: str | None
    ) -> tuple[Enrollment | None, VerificationResult | None]:
        try:
            eid = EnrollmentId.from_string(enrollment_id)
        except ValueError:
            return None, VerificationResult.rejected(ErrorCode.INVALID_ID, "Invalid enrollment ID format")
        enrollment = self._store.get_enrollment(eid)
        if enrollment is None:
            return None, VerificationResult.rejected(ErrorCode.ENROLLMENT_NOT_FOUND, "Enrollment not found")
        if account_id is not None:
            participant = self._store.get_participant(enrollment.participant_id)
            if participant is None or participant.account_id != account_id:
                return None, VerificationResult.rejected(
                    ErrorCode.NOT_OWNER, "Enrollment does not belong to you"
                )
        return enrollment, None

    def _reconcile(self, enrollment: Enrollment) -> VerificationResult:
        if enrollment.state is not EnrollmentState.PENDING:
            return VerificationResult.of(enrollment)

        try:
            gateway = self._registry.get_provider(enrollment.vendor)
            intent = gateway.get_payment_intent(enrollment.external_payment_ref)
        except PaymentError as exc:
            logger.warning(
                "Could not fetch %s intent %s for %s: %s",
                enrollment.vendor,
                enrollment.external_payment_ref,
                enrollment.id,
                exc,
            )
            return VerificationResult.rejected(error_code_for(exc), exc.message, enrollment)

        if intent.id != enrollment.external_payment_ref:
            logger.error(
                "Vendor returned intent %s when asked for %s", intent.id, enrollment.external_payment_ref
            )
            return VerificationResult.rejected(
                ErrorCode.VENDOR_REJECTED, "Payment reference does not match", enrollment
            )

        if intent.status is IntentStatus.SUCCEEDED:
            if (intent.amount, intent.currency.lower()) != (enrollment.price.minor_units(), self._currency):
                return self._reject_charge(enrollment, intent)
            return self._confirm(enrollment)
        if intent.status is IntentStatus.FAILED:
            # Declined intents can still be retried by the client; close them.
            result = self._fail(enrollment, "payment failed")
            if result.state is EnrollmentState.FAILED:
                self._void(gateway, enrollment)
            return result
        if self._is_stale(enrollment) and intent.status is IntentStatus.REQUIRES_ACTION:
            result = self._fail(enrollment, "payment window expired")
            if result.state is EnrollmentState.FAILED:
                self._void(gateway, enrollment)
            return result
        return VerificationResult.of(enrollment)

    def _confirm(self, enrollment: Enrollment) -> VerificationResult:
        try:
            with self._store.lock_session(enrollment.session_id):
                current = self._store.get_enrollment(enrollment.id)
                if current.state is not EnrollmentState.PENDING:
                    return VerificationResult.of(current)
                if not self._store.try_increment_confirmed(current.session_id):
                    failed = self._store.save_enrollment(current.fail())
                    logger.error(
                        "Session %s full at confirmation of %s; %s payment %s was taken, refund required",
                        current.session_id,
                        current.id,
                        current.vendor,
                        current.external_payment_ref,
                    )
                    return VerificationResult.rejected(
                        ErrorCode.SESSION_FULL, "Session filled before payment completed", failed
                    )
                confirmed = self._store.save_enrollment(current.confirm(self._clock()))
        except EnrollmentWriteError as exc:
            logger.error("Could not confirm enrollment %s: %s", enrollment.id, exc)
            return VerificationResult.rejected(exc.code, exc.message, enrollment)

        logger.info("Enrollment %s confirmed", confirmed.id)
        return VerificationResult.of(confirmed)

    def _reject_charge(self, enrollment: Enrollment, intent: PaymentIntentView) -> VerificationResult:
        logger.error(
            "%s payment %s charged %s %s for enrollment %s priced %s %s; refund required",
            enrollment.vendor,
            enrollment.external_payment_ref,
            intent.amount,
            intent.currency,
            enrollment.id,
            enrollment.price.minor_units(),
            self._currency,
        )
        result = self._fail(enrollment, "charged amount does not match price")
        if result.state is not EnrollmentState.FAILED or result.error is not None:
            return result
        return VerificationResult.rejected(
            ErrorCode.PRICE_MISMATCH, "Charged amount does not match the enrollment price", result.enrollment
        )

    def _fail(self, enrollment: Enrollment, reason: str) -> VerificationResult:
        try:
            with self._store.lock_session(enrollment.session_id):
                current = self._store.get_enrollment(enrollment.id)
                if current.state is not EnrollmentState.PENDING:
                    return VerificationResult.of(current)
                failed = self._store.save_enrollment(current.fail())
        except EnrollmentWriteError as exc:
            logger.error("Could not fail enrollment %s: %s", enrollment.id, exc)
            return VerificationResult.rejected(exc.code, exc.message, enrollment)

        logger.info("Enrollment %s failed: %s", failed.id, reason)
        return VerificationResult.of(failed)

    def _is_stale(self, enrollment: Enrollment) -> bool:
        return enrollment.created_at <= self._clock() - self._pending_ttl

    @staticmethod
    def _void(gateway: PaymentGateway, enrollment: Enrollment) -> None:
        try:
            gateway.cancel_payment_intent(enrollment.external_payment_ref)
        except PaymentError as exc:
            logger.warning(
                "Could not void %s intent %s: %s",
                enrollment.vendor,
                enrollment.external_payment_ref,
                exc,
            )
