from enrollments.stores.interfaces import EnrollmentStore

__all__ = ["EnrollmentStore"]
