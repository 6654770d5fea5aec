"""Unit tests for AdmissionService.

These run against the in-memory store and a scripted gateway.
Run with: pytest tests/test_admission_service.py -v
"""

import uuid
from datetime import timedelta

import pytest

from enrollments.domain import EnrollmentState
from enrollments.domain.errors import EnrollmentWriteError, ErrorCode
from enrollments.services.admission_service import AdmissionService
from enrollments.stores.memory_store import InMemoryEnrollmentStore
from payments.domain.errors import (
    ConfigurationError,
    VendorRejectedError,
    VendorUnavailableError,
)
from payments.services.customer_service import CustomerService
from payments.stores.memory_store import InMemoryCustomerIdentityStore
from tests.fakes import PENDING_TTL


class FlakyStore(InMemoryEnrollmentStore):
    """Fails the first `failures` enrollment writes."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def save_enrollment(self, enrollment):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise EnrollmentWriteError(str(enrollment.id))
        return super().save_enrollment(enrollment)


class TestRequestEnrollment:
    def test_admits_pending_enrollment_with_client_token(self, admission, gateway, store, make_session, make_participant):
        session = make_session(price="25.00")
        participant = make_participant()

        result = admission.request_enrollment(str(participant.id), str(session.id), "25.00")

        assert result.ok
        enrollment = result.enrollment
        assert enrollment.state is EnrollmentState.PENDING
        assert enrollment.vendor == "fake"
        assert result.client_token == f"{enrollment.external_payment_ref}_secret"
        assert store.get_enrollment(enrollment.id) == enrollment
        intent = gateway.intents[enrollment.external_payment_ref]
        assert intent.amount == 2500
        assert intent.currency == "usd"
        assert intent.metadata["enrollment_id"] == str(enrollment.id)
        assert gateway.idempotency_keys == [f"enrollment-{enrollment.id}"]

    def test_confirmed_count_is_untouched_until_payment(self, admission, store, make_session, make_participant):
        session = make_session()
        admission.request_enrollment(str(make_participant().id), str(session.id), "25.00")
        assert store.get_session(session.id).confirmed_count == 0

    def test_reuses_vendor_customer_for_the_account(self, admission, gateway, make_session, make_participant):
        first, second = make_session(), make_session()
        participant = make_participant()

        admission.request_enrollment(str(participant.id), str(first.id), "25.00")
        admission.request_enrollment(str(participant.id), str(second.id), "25.00")

        assert gateway.count("get_or_create_customer") == 1
        assert len({i.customer_ref for i in gateway.intents.values()}) == 1

    @pytest.mark.parametrize("price", ["24.99", "25.01", "0.25"])
    def test_price_mismatch(self, admission, gateway, make_session, make_participant, price):
        session = make_session(price="25.00")
        result = admission.request_enrollment(str(make_participant().id), str(session.id), price)
        assert result.error is ErrorCode.PRICE_MISMATCH
        assert gateway.intents == {}

    def test_equal_prices_with_different_precision_match(self, admission, make_session, make_participant):
        session = make_session(price="25.00")
        assert admission.request_enrollment(str(make_participant().id), str(session.id), "25").ok

    @pytest.mark.parametrize("price", ["abc", "-5", "0", "NaN"])
    def test_invalid_price(self, admission, make_session, make_participant, price):
        session = make_session()
        result = admission.request_enrollment(str(make_participant().id), str(session.id), price)
        assert result.error is ErrorCode.INVALID_PRICE

    def test_invalid_ids(self, admission):
        result = admission.request_enrollment("nope", str(uuid.uuid4()), "25.00")
        assert result.error is ErrorCode.INVALID_ID

    def test_unknown_session(self, admission, make_participant):
        result = admission.request_enrollment(str(make_participant().id), str(uuid.uuid4()), "25.00")
        assert result.error is ErrorCode.SESSION_NOT_FOUND

    def test_unknown_participant(self, admission, make_session):
        result = admission.request_enrollment(str(uuid.uuid4()), str(make_session().id), "25.00")
        assert result.error is ErrorCode.PARTICIPANT_NOT_FOUND

    def test_participant_of_another_account(self, admission, make_session, make_participant):
        participant = make_participant(account_id="acct-2")
        result = admission.request_enrollment(
            str(participant.id), str(make_session().id), "25.00", account_id="acct-1"
        )
        assert result.error is ErrorCode.NOT_OWNER

    def test_duplicate_while_pending(self, admission, gateway, make_session, make_participant):
        session, participant = make_session(), make_participant()
        admission.request_enrollment(str(participant.id), str(session.id), "25.00")

        result = admission.request_enrollment(str(participant.id), str(session.id), "25.00")

        assert result.error is ErrorCode.DUPLICATE_ENROLLMENT
        assert len(gateway.intents) == 1

    def test_reenrollment_after_failure_is_allowed(self, admission, store, make_session, make_participant):
        session, participant = make_session(), make_participant()
        first = admission.request_enrollment(str(participant.id), str(session.id), "25.00").enrollment
        store.save_enrollment(first.fail())

        assert admission.request_enrollment(str(participant.id), str(session.id), "25.00").ok

    def test_full_session(self, admission, gateway, make_session, make_participant):
        session = make_session(capacity=2, confirmed=2)
        result = admission.request_enrollment(str(make_participant().id), str(session.id), "25.00")
        assert result.error is ErrorCode.SESSION_FULL
        assert gateway.intents == {}

    def test_live_pending_holds_count_against_capacity(self, admission, make_session, make_participant):
        session = make_session(capacity=1)
        assert admission.request_enrollment(str(make_participant().id), str(session.id), "25.00").ok

        result = admission.request_enrollment(
            str(make_participant(email="other@example.com").id), str(session.id), "25.00"
        )

        assert result.error is ErrorCode.SESSION_FULL

    def test_stale_pending_holds_are_not_counted(self, admission, clock, make_session, make_participant):
        session = make_session(capacity=1)
        admission.request_enrollment(str(make_participant().id), str(session.id), "25.00")
        clock.advance(PENDING_TTL + timedelta(seconds=1))

        result = admission.request_enrollment(
            str(make_participant(email="other@example.com").id), str(session.id), "25.00"
        )

        assert result.ok


class TestVendorFailures:
    @pytest.mark.parametrize(
        "error, code",
        [
            (VendorUnavailableError("fake"), ErrorCode.VENDOR_UNAVAILABLE),
            (VendorRejectedError("fake", "Card declined"), ErrorCode.VENDOR_REJECTED),
            (ConfigurationError("fake", "no key"), ErrorCode.CONFIGURATION_ERROR),
        ],
    )
    def test_intent_creation_failure_leaves_no_enrollment(
        self, admission, gateway, store, make_session, make_participant, error, code
    ):
        gateway.fail("create_payment_intent", error)
        session = make_session()

        result = admission.request_enrollment(str(make_participant().id), str(session.id), "25.00")

        assert result.error is code
        assert store.enrollments == {}

    def test_customer_resolution_failure(self, admission, gateway, store, make_session, make_participant):
        gateway.fail("get_or_create_customer", VendorUnavailableError("fake"))
        result = admission.request_enrollment(str(make_participant().id), str(make_session().id), "25.00")
        assert result.error is ErrorCode.VENDOR_UNAVAILABLE
        assert gateway.count("create_payment_intent") == 0


class TestLocalWriteReconciliation:
    def _service(self, store, registry, clock):
        return AdmissionService(
            store=store,
            registry=registry,
            customers=CustomerService(InMemoryCustomerIdentityStore()),
            pending_ttl=PENDING_TTL,
            write_attempts=3,
            clock=clock,
        )

    def test_transient_write_failure_is_retried(self, registry, clock, gateway, make_session, make_participant):
        flaky = FlakyStore(failures=2)
        session = flaky.add_session(make_session())
        participant = flaky.add_participant(make_participant())

        result = self._service(flaky, registry, clock).request_enrollment(
            str(participant.id), str(session.id), "25.00"
        )

        assert result.ok
        assert flaky.attempts == 3
        assert gateway.count("create_payment_intent") == 1
        assert gateway.cancelled == []

    def test_exhausted_writes_void_the_intent(self, registry, clock, gateway, make_session, make_participant):
        flaky = FlakyStore(failures=10)
        session = flaky.add_session(make_session())
        participant = flaky.add_participant(make_participant())

        result = self._service(flaky, registry, clock).request_enrollment(
            str(participant.id), str(session.id), "25.00"
        )

        assert result.error is ErrorCode.ENROLLMENT_WRITE_FAILED
        assert flaky.enrollments == {}
        assert gateway.cancelled == list(gateway.intents)

    def test_void_failure_is_reported_not_raised(self, registry, clock, gateway, make_session, make_participant):
        flaky = FlakyStore(failures=10)
        session = flaky.add_session(make_session())
        participant = flaky.add_participant(make_participant())
        gateway.fail("cancel_payment_intent", VendorUnavailableError("fake"))

        result = self._service(flaky, registry, clock).request_enrollment(
            str(participant.id), str(session.id), "25.00"
        )

        assert result.error is ErrorCode.ENROLLMENT_WRITE_FAILED


class TestCancelEnrollment:
    def test_cancel_pending_voids_intent(self, admission, gateway, make_session, make_participant):
        session, participant = make_session(), make_participant()
        enrollment = admission.request_enrollment(str(participant.id), str(session.id), "25.00").enrollment

        result = admission.cancel_enrollment(str(enrollment.id), account_id="acct-1")

        assert result.state is EnrollmentState.CANCELLED
        assert gateway.cancelled == [enrollment.external_payment_ref]

    def test_cancel_confirmed_releases_place(self, admission, store, clock, make_session, make_participant):
        session = make_session(capacity=1)
        enrollment = admission.request_enrollment(
            str(make_participant().id), str(session.id), "25.00"
        ).enrollment
        store.try_increment_confirmed(session.id)
        store.save_enrollment(enrollment.confirm(clock()))

        result = admission.cancel_enrollment(str(enrollment.id))

        assert result.state is EnrollmentState.CANCELLED
        assert store.get_session(session.id).confirmed_count == 0

    def test_cancel_twice_is_an_invalid_transition(self, admission, make_session, make_participant):
        enrollment = admission.request_enrollment(
            str(make_participant().id), str(make_session().id), "25.00"
        ).enrollment
        admission.cancel_enrollment(str(enrollment.id))

        result = admission.cancel_enrollment(str(enrollment.id))

        assert result.error is ErrorCode.INVALID_TRANSITION
        assert result.enrollment is not None

    def test_cancel_requires_ownership(self, admission, make_session, make_participant):
        enrollment = admission.request_enrollment(
            str(make_participant().id), str(make_session().id), "25.00"
        ).enrollment
        result = admission.cancel_enrollment(str(enrollment.id), account_id="acct-9")
        assert result.error is ErrorCode.NOT_OWNER

    def test_cancel_unknown(self, admission):
        assert admission.cancel_enrollment(str(uuid.uuid4())).error is ErrorCode.ENROLLMENT_NOT_FOUND
        assert admission.cancel_enrollment("bad").error is ErrorCode.INVALID_ID


def test_list_for_account_returns_only_own_enrollments(admission, make_session, make_participant):
    mine = make_participant()
    theirs = make_participant(account_id="acct-2", email="other@example.com")
    session = make_session()
    admission.request_enrollment(str(mine.id), str(session.id), "25.00")
    admission.request_enrollment(str(theirs.id), str(session.id), "25.00")

    listed = admission.list_for_account("acct-1")

    assert [e.participant_id for e in listed] == [mine.id]
