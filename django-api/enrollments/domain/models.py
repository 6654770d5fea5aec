"""Domain models representing persisted state.

These are pure domain objects with no API input rules.
Django ORM models are in enrollments/models.py (persistence layer).
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Self

from enrollments.domain.errors import InvalidTransitionError
from enrollments.domain.value_objects import (
    Capacity,
    EnrollmentId,
    Money,
    ParticipantId,
    SessionId,
)


class EnrollmentState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def holds_place(self) -> bool:
        """Pending and Confirmed enrollments count against uniqueness."""
        return self in (EnrollmentState.PENDING, EnrollmentState.CONFIRMED)


_TRANSITIONS = {
    EnrollmentState.PENDING: {
        EnrollmentState.CONFIRMED,
        EnrollmentState.FAILED,
        EnrollmentState.CANCELLED,
    },
    EnrollmentState.CONFIRMED: {EnrollmentState.CANCELLED},
    EnrollmentState.FAILED: set(),
    EnrollmentState.CANCELLED: set(),
}


@dataclass(frozen=True)
class Session:
    """Bookable session as seen by admission control. Read-only here."""

    id: SessionId
    name: str
    capacity: Capacity
    price: Money
    confirmed_count: int

    def has_room(self, held: int = 0) -> bool:
        """True if a place is left once `held` pending places are counted."""
        return self.confirmed_count + held < self.capacity.value


@dataclass(frozen=True)
class Participant:
    """Person who can be enrolled, owned by an account."""

    id: ParticipantId
    email: str
    display_name: str
    account_id: str


@dataclass(frozen=True)
class Enrollment:
    """Binding of a participant, a session and one payment attempt."""

    id: EnrollmentId
    session_id: SessionId
    participant_id: ParticipantId
    price: Money
    state: EnrollmentState
    vendor: str
    external_payment_ref: str
    created_at: datetime
    confirmed_at: datetime | None = None

    def _move(self, target: EnrollmentState, **changes) -> Self:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(str(self.id), self.state.value, target.value)
        return replace(self, state=target, **changes)

    def confirm(self, at: datetime) -> Self:
        return self._move(EnrollmentState.CONFIRMED, confirmed_at=at)

    def fail(self) -> Self:
        return self._move(EnrollmentState.FAILED)

    def cancel(self) -> Self:
        return self._move(EnrollmentState.CANCELLED)
