"""Service construction from Django settings.

Only handlers and management commands call these; services themselves
receive every collaborator explicitly.
"""

from datetime import timedelta

from django.conf import settings

from enrollments.services.admission_service import AdmissionService
from enrollments.services.confirmation_service import ConfirmationService
from enrollments.stores.django_store import DjangoEnrollmentStore
from payments.registry import get_registry
from payments.services.customer_service import CustomerService
from payments.stores.django_store import DjangoCustomerIdentityStore


def _pending_ttl() -> timedelta:
    return timedelta(seconds=settings.ENROLLMENT_PENDING_TTL)


def build_admission_service() -> AdmissionService:
    return AdmissionService(
        store=DjangoEnrollmentStore(),
        registry=get_registry(),
        customers=CustomerService(DjangoCustomerIdentityStore()),
        currency=settings.PAYMENT_CURRENCY,
        pending_ttl=_pending_ttl(),
        write_attempts=settings.ENROLLMENT_WRITE_ATTEMPTS,
    )


def build_confirmation_service() -> ConfirmationService:
    return ConfirmationService(
        store=DjangoEnrollmentStore(),
        registry=get_registry(),
        currency=settings.PAYMENT_CURRENCY,
        pending_ttl=_pending_ttl(),
    )
