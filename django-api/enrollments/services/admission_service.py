"""Admission control for payment-gated enrollment.

Services:
- Depend only on interfaces (stores, gateway contract, registry)
- Validate domain invariants
- Perform orchestration and error mapping
- Return results carrying an ErrorCode instead of raising for business rules

The capacity and uniqueness checks run under the store's per-session lock.
The payment vendor is called with no lock held, and the Enrollment is written
only after the intent exists, under the lock again with every check repeated.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from django.utils import timezone

from enrollments.domain import (
    AdmissionResult,
    Enrollment,
    EnrollmentId,
    EnrollmentState,
    Money,
    ParticipantId,
    Session,
    SessionId,
    VerificationResult,
)
from enrollments.domain.errors import (
    EnrollmentWriteError,
    ErrorCode,
    InvalidTransitionError,
)
from enrollments.services.gateway_errors import error_code_for
from enrollments.stores.interfaces import EnrollmentStore
from payments.domain.errors import PaymentError
from payments.gateways import PaymentGateway
from payments.registry import GatewayRegistry
from payments.services.customer_service import CustomerService

logger = logging.getLogger(__name__)


class AdmissionService:
    """Decides whether a participant may be enrolled in a session."""

    def __init__(
        self,
        store: EnrollmentStore,
        registry: GatewayRegistry,
        customers: CustomerService,
        currency: str = "usd",
        pending_ttl: timedelta = timedelta(minutes=30),
        write_attempts: int = 3,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._store = store
        self._registry = registry
        self._customers = customers
        self._currency = currency
        self._pending_ttl = pending_ttl
        self._write_attempts = max(1, write_attempts)
        self._clock = clock

    def request_enrollment(
        self,
        participant_id: str,
        session_id: str,
        price: object,
        account_id: str | None = None,
    ) -> AdmissionResult:
        """Admit a participant into a session pending payment.

        On success the result carries the Pending enrollment and the opaque
        token the client needs to complete payment with the vendor.
        """
        try:
            pid = ParticipantId.from_string(participant_id)
            sid = SessionId.from_string(session_id)
        except ValueError:
            return AdmissionResult.rejected(ErrorCode.INVALID_ID, "Invalid participant or session ID format")
        try:
            requested = Money.parse(price)
        except ValueError:
            return AdmissionResult.rejected(ErrorCode.INVALID_PRICE, "Invalid price")
        if requested.amount <= 0:
            return AdmissionResult.rejected(ErrorCode.INVALID_PRICE, "Invalid price")

        participant = self._store.get_participant(pid)
        if participant is None:
            return AdmissionResult.rejected(ErrorCode.PARTICIPANT_NOT_FOUND, "Participant not found")
        if account_id is not None and participant.account_id != account_id:
            return AdmissionResult.rejected(ErrorCode.NOT_OWNER, "Participant does not belong to you")

        with self._store.lock_session(sid) as session:
            rejection = self._check(session, pid, requested)
        if rejection is not None:
            logger.info("Enrollment of %s in %s rejected: %s", pid, sid, rejection.error.value)
            return rejection

        enrollment_id = EnrollmentId.new()
        try:
            vendor, gateway = self._registry.resolve_active()
            customer = self._customers.resolve(
                vendor,
                gateway,
                participant.account_id,
                participant.email,
                participant.display_name,
            )
            intent = gateway.create_payment_intent(
                amount=requested.minor_units(),
                currency=self._currency,
                customer_ref=customer.customer_ref,
                description=f"Enrollment: {session.name} ({participant.display_name})",
                metadata={
                    "enrollment_id": str(enrollment_id),
                    "session_id": str(sid),
                    "participant_id": str(pid),
                },
                idempotency_key=f"enrollment-{enrollment_id}",
            )
        except PaymentError as exc:
            logger.warning("Payment intent for %s in %s failed: %s", pid, sid, exc)
            return AdmissionResult.rejected(error_code_for(exc), exc.message)

        enrollment = Enrollment(
            id=enrollment_id,
            session_id=sid,
            participant_id=pid,
            price=requested,
            state=EnrollmentState.PENDING,
            vendor=vendor,
            external_payment_ref=intent.id,
            created_at=self._clock(),
        )
        return self._record(enrollment, gateway, intent.client_secret or "")

    def _check(
        self, session: Session | None, participant_id: ParticipantId, price: Money
    ) -> AdmissionResult | None:
        if session is None:
            return AdmissionResult.rejected(ErrorCode.SESSION_NOT_FOUND, "Session not found")
        if price.amount != session.price.amount:
            return AdmissionResult.rejected(
                ErrorCode.PRICE_MISMATCH, f"Session price is {session.price}; please refresh"
            )
        if self._store.find_active_enrollment(participant_id, session.id) is not None:
            return AdmissionResult.rejected(
                ErrorCode.DUPLICATE_ENROLLMENT, "Participant is already enrolled in this session"
            )
        held = self._store.count_pending(session.id, self._clock() - self._pending_ttl)
        if not session.has_room(held):
            return AdmissionResult.rejected(ErrorCode.SESSION_FULL, "Session is full")
        return None

    def _record(self, enrollment: Enrollment, gateway: PaymentGateway, client_token: str) -> AdmissionResult:
        rejection = None
        for attempt in range(1, self._write_attempts + 1):
            try:
                with self._store.lock_session(enrollment.session_id) as session:
                    if self._store.get_enrollment(enrollment.id) is not None:
                        break
                    rejection = self._check(session, enrollment.participant_id, enrollment.price)
                    if rejection is None:
                        self._store.save_enrollment(enrollment)
                break
            except EnrollmentWriteError:
                logger.warning(
                    "Saving enrollment %s failed (attempt %s/%s)",
                    enrollment.id,
                    attempt,
                    self._write_attempts,
                )
        else:
            self._void_intent(gateway, enrollment, "local write failed")
            return AdmissionResult.rejected(
                ErrorCode.ENROLLMENT_WRITE_FAILED, "Enrollment could not be saved; no payment was taken"
            )

        if rejection is not None:
            self._void_intent(gateway, enrollment, f"lost admission race: {rejection.error.value}")
            return rejection

        logger.info(
            "Enrollment %s pending for participant %s in session %s (%s %s)",
            enrollment.id,
            enrollment.participant_id,
            enrollment.session_id,
            enrollment.vendor,
            enrollment.external_payment_ref,
        )
        return AdmissionResult.admitted(enrollment, client_token)

    @staticmethod
    def _void_intent(gateway: PaymentGateway, enrollment: Enrollment, reason: str) -> None:
        try:
            gateway.cancel_payment_intent(enrollment.external_payment_ref)
        except PaymentError as exc:
            logger.error(
                "Could not void %s intent %s (%s): %s; manual review required",
                enrollment.vendor,
                enrollment.external_payment_ref,
                reason,
                exc,
            )
            return
        logger.warning(
            "Voided %s intent %s: %s", enrollment.vendor, enrollment.external_payment_ref, reason
        )

    def cancel_enrollment(self, enrollment_id: str, account_id: str | None = None) -> VerificationResult:
        """Cancel a Pending or Confirmed enrollment.

        A Confirmed enrollment releases its place. A Pending one has its
        intent voided so the client can no longer pay for it.
        """
        try:
            eid = EnrollmentId.from_string(enrollment_id)
        except ValueError:
            return VerificationResult.rejected(ErrorCode.INVALID_ID, "Invalid enrollment ID format")
        enrollment = self._store.get_enrollment(eid)
        if enrollment is None:
            return VerificationResult.rejected(ErrorCode.ENROLLMENT_NOT_FOUND, "Enrollment not found")
        if account_id is not None and not self._owns(account_id, enrollment):
            return VerificationResult.rejected(ErrorCode.NOT_OWNER, "Enrollment does not belong to you")

        try:
            with self._store.lock_session(enrollment.session_id):
                current = self._store.get_enrollment(eid)
                cancelled = current.cancel()
                self._store.save_enrollment(cancelled)
                if current.state is EnrollmentState.CONFIRMED:
                    self._store.decrement_confirmed(current.session_id)
        except InvalidTransitionError as exc:
            return VerificationResult.rejected(exc.code, exc.message, enrollment)
        except EnrollmentWriteError as exc:
            return VerificationResult.rejected(exc.code, exc.message, enrollment)

        logger.info("Enrollment %s cancelled (was %s)", eid, current.state.value)
        if current.state is EnrollmentState.PENDING:
            try:
                gateway = self._registry.get_provider(current.vendor)
            except PaymentError as exc:
                logger.error("Cannot void intent %s after cancellation: %s", current.external_payment_ref, exc)
            else:
                self._void_intent(gateway, current, "enrollment cancelled")
        return VerificationResult.of(cancelled)

    def list_for_account(self, account_id: str) -> list[Enrollment]:
        return self._store.list_enrollments_for_account(account_id)

    def _owns(self, account_id: str, enrollment: Enrollment) -> bool:
        participant = self._store.get_participant(enrollment.participant_id)
        return participant is not None and participant.account_id == account_id
