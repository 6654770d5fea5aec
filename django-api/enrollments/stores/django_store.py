"""Django ORM implementation of the EnrollmentStore."""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from django.db import DatabaseError, transaction
from django.db.models import F

from enrollments import models
from enrollments.domain import (
    Capacity,
    Enrollment,
    EnrollmentId,
    EnrollmentState,
    Money,
    Participant,
    ParticipantId,
    Session,
    SessionId,
)
from enrollments.domain.errors import EnrollmentWriteError
from enrollments.stores.interfaces import EnrollmentStore

logger = logging.getLogger(__name__)

ACTIVE_STATES = [EnrollmentState.PENDING.value, EnrollmentState.CONFIRMED.value]


def _session(row: models.Session) -> Session:
    return Session(
        id=SessionId(row.id),
        name=row.name,
        capacity=Capacity(row.capacity),
        price=Money(row.price),
        confirmed_count=row.confirmed_count,
    )


def _participant(row: models.Participant) -> Participant:
    return Participant(
        id=ParticipantId(row.id),
        email=row.email,
        display_name=row.display_name,
        account_id=row.account_id,
    )


def _enrollment(row: models.Enrollment) -> Enrollment:
    return Enrollment(
        id=EnrollmentId(row.id),
        session_id=SessionId(row.session_id),
        participant_id=ParticipantId(row.participant_id),
        price=Money(row.price),
        state=EnrollmentState(row.state),
        vendor=row.vendor,
        external_payment_ref=row.external_payment_ref,
        created_at=row.created_at,
        confirmed_at=row.confirmed_at,
    )


class DjangoEnrollmentStore(EnrollmentStore):
    """Relational enrollment store. Per-session serialization uses SELECT ... FOR UPDATE."""

    def get_session(self, session_id: SessionId) -> Session | None:
        row = models.Session.objects.filter(pk=session_id.value).first()
        return _session(row) if row else None

    def get_participant(self, participant_id: ParticipantId) -> Participant | None:
        row = models.Participant.objects.filter(pk=participant_id.value).first()
        return _participant(row) if row else None

    @contextmanager
    def lock_session(self, session_id: SessionId) -> Iterator[Session | None]:
        try:
            with transaction.atomic():
                row = models.Session.objects.select_for_update().filter(pk=session_id.value).first()
                yield _session(row) if row else None
        except DatabaseError as exc:
            logger.error("Transaction on session %s failed: %s", session_id, exc)
            raise EnrollmentWriteError(str(session_id)) from exc

    def find_active_enrollment(
        self, participant_id: ParticipantId, session_id: SessionId
    ) -> Enrollment | None:
        row = models.Enrollment.objects.filter(
            participant_id=participant_id.value,
            session_id=session_id.value,
            state__in=ACTIVE_STATES,
        ).first()
        return _enrollment(row) if row else None

    def count_pending(self, session_id: SessionId, created_after: datetime) -> int:
        return models.Enrollment.objects.filter(
            session_id=session_id.value,
            state=EnrollmentState.PENDING.value,
            created_at__gt=created_after,
        ).count()

    def get_enrollment(self, enrollment_id: EnrollmentId) -> Enrollment | None:
        row = models.Enrollment.objects.filter(pk=enrollment_id.value).first()
        return _enrollment(row) if row else None

    def get_enrollment_by_payment_ref(self, vendor: str, payment_ref: str) -> Enrollment | None:
        row = models.Enrollment.objects.filter(vendor=vendor, external_payment_ref=payment_ref).first()
        return _enrollment(row) if row else None

    def list_enrollments_for_account(self, account_id: str) -> list[Enrollment]:
        rows = models.Enrollment.objects.filter(participant__account_id=account_id).order_by("-created_at")
        return [_enrollment(row) for row in rows]

    def list_stale_pending(self, created_before: datetime) -> list[Enrollment]:
        rows = models.Enrollment.objects.filter(
            state=EnrollmentState.PENDING.value, created_at__lt=created_before
        ).order_by("created_at")
        return [_enrollment(row) for row in rows]

    def save_enrollment(self, enrollment: Enrollment) -> Enrollment:
        try:
            with transaction.atomic():
                models.Enrollment.objects.update_or_create(
                    pk=enrollment.id.value,
                    defaults={
                        "session_id": enrollment.session_id.value,
                        "participant_id": enrollment.participant_id.value,
                        "price": enrollment.price.amount,
                        "state": enrollment.state.value,
                        "vendor": enrollment.vendor,
                        "external_payment_ref": enrollment.external_payment_ref,
                        "created_at": enrollment.created_at,
                        "confirmed_at": enrollment.confirmed_at,
                    },
                )
        except DatabaseError as exc:
            logger.error("Failed to save enrollment %s: %s", enrollment.id, exc)
            raise EnrollmentWriteError(str(enrollment.id)) from exc
        return enrollment

    def try_increment_confirmed(self, session_id: SessionId) -> bool:
        updated = models.Session.objects.filter(
            pk=session_id.value, confirmed_count__lt=F("capacity")
        ).update(confirmed_count=F("confirmed_count") + 1)
        return updated == 1

    def decrement_confirmed(self, session_id: SessionId) -> None:
        models.Session.objects.filter(pk=session_id.value, confirmed_count__gt=0).update(
            confirmed_count=F("confirmed_count") - 1
        )
