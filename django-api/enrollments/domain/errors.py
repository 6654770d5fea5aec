"""Domain error codes for the enrollments module."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Closed set of outcomes an enrollment operation can report."""

    PRICE_MISMATCH = "PRICE_MISMATCH"
    DUPLICATE_ENROLLMENT = "DUPLICATE_ENROLLMENT"
    SESSION_FULL = "SESSION_FULL"
    VENDOR_UNAVAILABLE = "VENDOR_UNAVAILABLE"
    VENDOR_REJECTED = "VENDOR_REJECTED"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PARTICIPANT_NOT_FOUND = "PARTICIPANT_NOT_FOUND"
    ENROLLMENT_NOT_FOUND = "ENROLLMENT_NOT_FOUND"
    NOT_OWNER = "NOT_OWNER"
    INVALID_ID = "INVALID_ID"
    INVALID_PRICE = "INVALID_PRICE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    ENROLLMENT_WRITE_FAILED = "ENROLLMENT_WRITE_FAILED"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidTransitionError(DomainError):
    """Raised when an enrollment is moved to a state its lifecycle forbids."""

    def __init__(self, enrollment_id: str, current: str, target: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Enrollment cannot move from {current} to {target}",
        )
        self.enrollment_id = enrollment_id


class EnrollmentWriteError(DomainError):
    """Raised by stores when an enrollment write could not be persisted."""

    def __init__(self, enrollment_id: str) -> None:
        super().__init__(
            code=ErrorCode.ENROLLMENT_WRITE_FAILED,
            message="Enrollment state could not be saved",
        )
        self.enrollment_id = enrollment_id
