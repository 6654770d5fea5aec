"""Pytest configuration and shared fixtures."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from enrollments.domain import (
    Capacity,
    Money,
    Participant,
    ParticipantId,
    Session,
    SessionId,
)
from enrollments.services.admission_service import AdmissionService
from enrollments.services.confirmation_service import ConfirmationService
from enrollments.stores.memory_store import InMemoryEnrollmentStore
from payments.domain import GatewayConfig
from payments.registry import GatewayRegistry, reset_registry
from payments.services.customer_service import CustomerService
from payments.stores.memory_store import InMemoryCustomerIdentityStore
from tests.fakes import PENDING_TTL, FakeGateway


class Clock:
    """Settable clock shared by services under test."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture(autouse=True)
def clear_registry():
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def clock() -> Clock:
    return Clock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def registry(gateway: FakeGateway) -> GatewayRegistry:
    config = GatewayConfig(
        vendor="fake", is_active=True, is_default=True, options={"secret_key": "sk_fake"}
    )
    return GatewayRegistry([config], {"fake": lambda _config: gateway})


@pytest.fixture
def store() -> InMemoryEnrollmentStore:
    return InMemoryEnrollmentStore()


@pytest.fixture
def make_session(store: InMemoryEnrollmentStore):
    def _make(capacity: int = 10, price: str = "25.00", confirmed: int = 0) -> Session:
        return store.add_session(
            Session(
                id=SessionId(uuid.uuid4()),
                name="Saturday Skills",
                capacity=Capacity(capacity),
                price=Money(Decimal(price)),
                confirmed_count=confirmed,
            )
        )

    return _make


@pytest.fixture
def make_participant(store: InMemoryEnrollmentStore):
    def _make(account_id: str = "acct-1", email: str = "parent@example.com") -> Participant:
        return store.add_participant(
            Participant(
                id=ParticipantId(uuid.uuid4()),
                email=email,
                display_name="Sam Player",
                account_id=account_id,
            )
        )

    return _make


@pytest.fixture
def admission(store, registry, clock) -> AdmissionService:
    return AdmissionService(
        store=store,
        registry=registry,
        customers=CustomerService(InMemoryCustomerIdentityStore()),
        currency="usd",
        pending_ttl=PENDING_TTL,
        write_attempts=3,
        clock=clock,
    )


@pytest.fixture
def confirmation(store, registry, clock) -> ConfirmationService:
    return ConfirmationService(
        store=store, registry=registry, currency="usd", pending_ttl=PENDING_TTL, clock=clock
    )
