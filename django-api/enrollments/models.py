"""Django ORM models (persistence layer).

These models handle database concerns. Domain logic lives in domain/models.py.
Session and Participant rows are owned by the catalog and family layers; the
admission code only reads them and maintains `confirmed_count`.
"""

import uuid

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Session(models.Model):
    """Persistence model for bookable sessions."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    capacity = models.PositiveIntegerField()
    price = models.DecimalField(max_digits=10, decimal_places=2)
    confirmed_count = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(confirmed_count__lte=F("capacity")),
                name="session_confirmed_within_capacity",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class Participant(models.Model):
    """Persistence model for participants (players) owned by an account."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    account_id = models.CharField(max_length=64, db_index=True)
    email = models.EmailField()
    display_name = models.CharField(max_length=255)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.display_name


class Enrollment(models.Model):
    """Persistence model for enrollments."""

    class State(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        FAILED = "failed", "Failed"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    session = models.ForeignKey(Session, on_delete=models.PROTECT, related_name="enrollments")
    participant = models.ForeignKey(
        Participant, on_delete=models.PROTECT, related_name="enrollments"
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)
    state = models.CharField(max_length=16, choices=State.choices, default=State.PENDING)
    vendor = models.CharField(max_length=32)
    external_payment_ref = models.CharField(max_length=255)
    created_at = models.DateTimeField(default=timezone.now)
    confirmed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["state", "created_at"], name="enrollment_state_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["vendor", "external_payment_ref"],
                name="unique_enrollment_payment_ref",
            ),
            models.UniqueConstraint(
                fields=["participant", "session"],
                condition=Q(state__in=["pending", "confirmed"]),
                name="unique_active_enrollment_per_participant",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} @ {self.session_id} ({self.state})"
