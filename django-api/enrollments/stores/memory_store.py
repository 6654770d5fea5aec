"""In-process EnrollmentStore for tests and local tooling.

Sessions and participants are seeded directly; per-session locks provide the
same serialization guarantee as row locks in the Django store.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator

from enrollments.domain import (
    Enrollment,
    EnrollmentId,
    EnrollmentState,
    Participant,
    ParticipantId,
    Session,
    SessionId,
)
from enrollments.stores.interfaces import EnrollmentStore


class InMemoryEnrollmentStore(EnrollmentStore):
    def __init__(self) -> None:
        self.sessions: dict[SessionId, Session] = {}
        self.participants: dict[ParticipantId, Participant] = {}
        self.enrollments: dict[EnrollmentId, Enrollment] = {}
        self._lock = threading.RLock()
        self._session_locks: dict[SessionId, threading.RLock] = defaultdict(threading.RLock)

    def add_session(self, session: Session) -> Session:
        with self._lock:
            self.sessions[session.id] = session
        return session

    def add_participant(self, participant: Participant) -> Participant:
        with self._lock:
            self.participants[participant.id] = participant
        return participant

    def get_session(self, session_id: SessionId) -> Session | None:
        with self._lock:
            return self.sessions.get(session_id)

    def get_participant(self, participant_id: ParticipantId) -> Participant | None:
        with self._lock:
            return self.participants.get(participant_id)

    @contextmanager
    def lock_session(self, session_id: SessionId) -> Iterator[Session | None]:
        with self._lock:
            session_lock = self._session_locks[session_id]
        with session_lock:
            yield self.get_session(session_id)

    def find_active_enrollment(
        self, participant_id: ParticipantId, session_id: SessionId
    ) -> Enrollment | None:
        with self._lock:
            for enrollment in self.enrollments.values():
                if (
                    enrollment.participant_id == participant_id
                    and enrollment.session_id == session_id
                    and enrollment.state.holds_place
                ):
                    return enrollment
        return None

    def count_pending(self, session_id: SessionId, created_after: datetime) -> int:
        with self._lock:
            return sum(
                1
                for e in self.enrollments.values()
                if e.session_id == session_id
                and e.state is EnrollmentState.PENDING
                and e.created_at > created_after
            )

    def get_enrollment(self, enrollment_id: EnrollmentId) -> Enrollment | None:
        with self._lock:
            return self.enrollments.get(enrollment_id)

    def get_enrollment_by_payment_ref(self, vendor: str, payment_ref: str) -> Enrollment | None:
        with self._lock:
            for enrollment in self.enrollments.values():
                if enrollment.vendor == vendor and enrollment.external_payment_ref == payment_ref:
                    return enrollment
        return None

    def list_enrollments_for_account(self, account_id: str) -> list[Enrollment]:
        with self._lock:
            owned = {p.id for p in self.participants.values() if p.account_id == account_id}
            found = [e for e in self.enrollments.values() if e.participant_id in owned]
        return sorted(found, key=lambda e: e.created_at, reverse=True)

    def list_stale_pending(self, created_before: datetime) -> list[Enrollment]:
        with self._lock:
            stale = [
                e
                for e in self.enrollments.values()
                if e.state is EnrollmentState.PENDING and e.created_at < created_before
            ]
        return sorted(stale, key=lambda e: e.created_at)

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        with self._lock:
            self.enrollments[enrollment.id] = enrollment
        return enrollment

    def try_increment_confirmed(self, session_id: SessionId) -> bool:
        with self._lock:
            session = self.sessions[session_id]
            if not session.has_room():
                return False
            self.sessions[session_id] = replace(session, confirmed_count=session.confirmed_count + 1)
            return True

    def decrement_confirmed(self, session_id: SessionId) -> None:
        with self._lock:
            session = self.sessions[session_id]
            if session.confirmed_count > 0:
                self.sessions[session_id] = replace(session, confirmed_count=session.confirmed_count - 1)
