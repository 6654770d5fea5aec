from enrollments.domain.models import Enrollment, EnrollmentState, Participant, Session
from enrollments.domain.results import AdmissionResult, VerificationResult, WebhookResult
from enrollments.domain.value_objects import (
    Capacity,
    EnrollmentId,
    Money,
    ParticipantId,
    SessionId,
)

__all__ = [
    "AdmissionResult",
    "Capacity",
    "Enrollment",
    "EnrollmentId",
    "EnrollmentState",
    "Money",
    "Participant",
    "ParticipantId",
    "Session",
    "SessionId",
    "VerificationResult",
    "WebhookResult",
]
