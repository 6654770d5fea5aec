"""Store interfaces (repository pattern).

Stores must be swappable and return domain models.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime

from enrollments.domain import (
    Enrollment,
    EnrollmentId,
    Participant,
    ParticipantId,
    Session,
    SessionId,
)


class EnrollmentStore(ABC):
    """Interface for session, participant and enrollment persistence."""

    @abstractmethod
    def get_session(self, session_id: SessionId) -> Session | None:
        """Return a session by ID, or None if not found."""
        ...

    @abstractmethod
    def get_participant(self, participant_id: ParticipantId) -> Participant | None:
        """Return a participant by ID, or None if not found."""
        ...

    @abstractmethod
    def lock_session(self, session_id: SessionId) -> AbstractContextManager[Session | None]:
        """Serialize admission for one session.

        Yields the session as read under the lock. Everything done through
        the store inside the block commits or rolls back together. The lock
        must never be held across a vendor call.
        """
        ...

    @abstractmethod
    def find_active_enrollment(
        self, participant_id: ParticipantId, session_id: SessionId
    ) -> Enrollment | None:
        """Return the Pending or Confirmed enrollment for the pair, if any."""
        ...

    @abstractmethod
    def count_pending(self, session_id: SessionId, created_after: datetime) -> int:
        """Count Pending enrollments for a session created after `created_after`."""
        ...

    @abstractmethod
    def get_enrollment(self, enrollment_id: EnrollmentId) -> Enrollment | None:
        ...

    @abstractmethod
    def get_enrollment_by_payment_ref(self, vendor: str, payment_ref: str) -> Enrollment | None:
        ...

    @abstractmethod
    def list_enrollments_for_account(self, account_id: str) -> list[Enrollment]:
        """Return enrollments of every participant owned by the account, newest first."""
        ...

    @abstractmethod
    def list_stale_pending(self, created_before: datetime) -> list[Enrollment]:
        """Return Pending enrollments created before `created_before`."""
        ...

    @abstractmethod
    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        """Insert or update an enrollment by ID.

        Raises:
            EnrollmentWriteError: If the write could not be persisted.
        """
        ...

    @abstractmethod
    def try_increment_confirmed(self, session_id: SessionId) -> bool:
        """Atomically increment the confirmed count if it is below capacity."""
        ...

    @abstractmethod
    def decrement_confirmed(self, session_id: SessionId) -> None:
        """Release one confirmed place, never going below zero."""
        ...
