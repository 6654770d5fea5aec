"""Operation results.

Business-rule outcomes are values, not exceptions: every caller receives
either the successful payload or exactly one ErrorCode.
"""

from dataclasses import dataclass
from typing import Self

from enrollments.domain.errors import ErrorCode
from enrollments.domain.models import Enrollment, EnrollmentState


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of an enrollment request."""

    enrollment: Enrollment | None = None
    client_token: str | None = None
    error: ErrorCode | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def admitted(cls, enrollment: Enrollment, client_token: str) -> Self:
        return cls(enrollment=enrollment, client_token=client_token)

    @classmethod
    def rejected(cls, error: ErrorCode, message: str) -> Self:
        return cls(error=error, message=message)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of reconciling an enrollment with its payment.

    `enrollment` is None when no enrollment matches the payment reference,
    which is a successful no-op.
    """

    enrollment: Enrollment | None = None
    error: ErrorCode | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def state(self) -> EnrollmentState | None:
        return self.enrollment.state if self.enrollment else None

    @classmethod
    def of(cls, enrollment: Enrollment | None) -> Self:
        return cls(enrollment=enrollment)

    @classmethod
    def rejected(cls, error: ErrorCode, message: str, enrollment: Enrollment | None = None) -> Self:
        return cls(enrollment=enrollment, error=error, message=message)


@dataclass(frozen=True)
class WebhookResult:
    """Outcome of an inbound vendor webhook, with the HTTP status to answer."""

    status_code: int
    verification: VerificationResult | None = None
    message: str = ""
