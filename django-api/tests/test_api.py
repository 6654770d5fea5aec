"""Integration tests for the HTTP handlers.

Requests go through DRF against the Django store and a scripted gateway
installed as the process-wide registry.
Run with: pytest tests/test_api.py -v
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.management import call_command
from rest_framework.test import APIClient

from enrollments import models
from enrollments.domain import EnrollmentState
from payments.domain import IntentStatus
from payments.domain.errors import VendorRejectedError
from tests.fakes import sign, webhook_payload


@pytest.fixture(autouse=True)
def installed_registry(monkeypatch, registry):
    monkeypatch.setattr("payments.registry._registry", registry)
    return registry


@pytest.fixture
def user(db):
    return get_user_model().objects.create_user(
        username="parent", email="parent@example.com", password="pw", first_name="Pat"
    )


@pytest.fixture
def member(api_client: APIClient, user) -> APIClient:
    api_client.force_authenticate(user)
    return api_client


@pytest.fixture
def ops_client(db) -> APIClient:
    admin = get_user_model().objects.create_user(username="ops", password="pw", is_staff=True)
    client = APIClient()
    client.force_authenticate(admin)
    return client


@pytest.fixture
def session_row(db) -> models.Session:
    return models.Session.objects.create(name="Skills", capacity=1, price=Decimal("25.00"))


@pytest.fixture
def participant_row(user) -> models.Participant:
    return models.Participant.objects.create(
        account_id=str(user.pk), email=user.email, display_name="Sam"
    )


def _enroll(member, session_row, participant_row, price="25.00"):
    return member.post(
        "/api/enrollments",
        {"participant_id": str(participant_row.id), "session_id": str(session_row.id), "price": price},
        format="json",
    )


@pytest.mark.django_db
class TestEnrollmentEndpoints:
    def test_requires_authentication(self, api_client, session_row):
        response = api_client.post("/api/enrollments", {}, format="json")
        assert response.status_code in (401, 403)

    def test_request_enrollment(self, member, session_row, participant_row):
        response = _enroll(member, session_row, participant_row)

        assert response.status_code == 201
        body = response.json()
        assert body["enrollment"]["state"] == "pending"
        assert body["enrollment"]["price"] == "25.00"
        assert body["client_token"].endswith("_secret")
        assert models.Enrollment.objects.get().state == "pending"

    def test_missing_fields(self, member):
        assert member.post("/api/enrollments", {}, format="json").status_code == 400

    @pytest.mark.parametrize(
        "price, status_code, error",
        [("30.00", 409, "PRICE_MISMATCH"), ("abc", 400, "INVALID_PRICE")],
    )
    def test_price_errors(self, member, session_row, participant_row, price, status_code, error):
        response = _enroll(member, session_row, participant_row, price=price)
        assert response.status_code == status_code
        assert response.json()["error"] == error

    def test_full_session(self, member, session_row, participant_row):
        models.Session.objects.filter(pk=session_row.pk).update(confirmed_count=1)
        response = _enroll(member, session_row, participant_row)
        assert response.status_code == 409
        assert response.json()["error"] == "SESSION_FULL"

    def test_duplicate(self, member, session_row, participant_row):
        models.Session.objects.filter(pk=session_row.pk).update(capacity=5)
        _enroll(member, session_row, participant_row)
        response = _enroll(member, session_row, participant_row)
        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_ENROLLMENT"

    def test_vendor_decline(self, member, gateway, session_row, participant_row):
        gateway.fail("create_payment_intent", VendorRejectedError("fake", "Card declined"))
        response = _enroll(member, session_row, participant_row)
        assert response.status_code == 402
        assert response.json()["message"] == "Card declined"

    def test_other_accounts_participant_is_hidden(self, member, session_row):
        stranger = models.Participant.objects.create(account_id="999", email="x@y.z", display_name="X")
        response = member.post(
            "/api/enrollments",
            {"participant_id": str(stranger.id), "session_id": str(session_row.id), "price": "25.00"},
            format="json",
        )
        assert response.status_code == 404

    def test_verify_confirms_paid_enrollment(self, member, gateway, session_row, participant_row):
        enrollment = _enroll(member, session_row, participant_row).json()["enrollment"]
        gateway.set_status(enrollment["external_payment_ref"], IntentStatus.SUCCEEDED)

        response = member.post(f"/api/enrollments/{enrollment['id']}/verify")

        assert response.status_code == 200
        assert response.json()["state"] == "confirmed"
        session_row.refresh_from_db()
        assert session_row.confirmed_count == 1

    def test_confirm_with_vendor(self, member, session_row, participant_row):
        enrollment = _enroll(member, session_row, participant_row).json()["enrollment"]

        response = member.post(
            f"/api/enrollments/{enrollment['id']}/confirm",
            {"confirmation": {"source_id": "cnon:ok"}},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["state"] == "confirmed"

    def test_cancel_and_list(self, member, gateway, session_row, participant_row):
        enrollment = _enroll(member, session_row, participant_row).json()["enrollment"]

        cancelled = member.post(f"/api/enrollments/{enrollment['id']}/cancel")
        listed = member.get("/api/enrollments")

        assert cancelled.status_code == 200
        assert cancelled.json()["state"] == "cancelled"
        assert gateway.cancelled == [enrollment["external_payment_ref"]]
        assert [e["state"] for e in listed.json()["data"]] == ["cancelled"]

    def test_verify_unknown(self, member):
        response = member.post("/api/enrollments/00000000-0000-0000-0000-000000000000/verify")
        assert response.status_code == 404


@pytest.mark.django_db
class TestWebhookEndpoint:
    def _post(self, payload: bytes, signature: str, vendor: str = "fake"):
        return APIClient().post(
            f"/api/webhooks/{vendor}",
            data=payload,
            content_type="application/json",
            HTTP_X_FAKE_SIGNATURE=signature,
        )

    def test_confirms_without_a_user_session(self, member, gateway, session_row, participant_row):
        enrollment = _enroll(member, session_row, participant_row).json()["enrollment"]
        gateway.set_status(enrollment["external_payment_ref"], IntentStatus.SUCCEEDED)
        payload = webhook_payload(enrollment["external_payment_ref"])

        response = self._post(payload, sign(payload))

        assert response.status_code == 200
        assert models.Enrollment.objects.get().state == EnrollmentState.CONFIRMED.value

    def test_bad_signature_is_rejected(self, member, gateway, session_row, participant_row):
        enrollment = _enroll(member, session_row, participant_row).json()["enrollment"]
        gateway.set_status(enrollment["external_payment_ref"], IntentStatus.SUCCEEDED)

        response = self._post(webhook_payload(enrollment["external_payment_ref"]), "forged")

        assert response.status_code == 400
        assert models.Enrollment.objects.get().state == "pending"

    def test_unknown_vendor(self):
        assert self._post(b"{}", "sig", vendor="paypal").status_code == 404


@pytest.mark.django_db
class TestAdminEndpoints:
    def test_regular_users_are_forbidden(self, member):
        assert member.get("/api/admin/payment-vendors").status_code == 403

    def test_list_vendors(self, ops_client):
        response = ops_client.get("/api/admin/payment-vendors")
        assert response.status_code == 200
        [vendor] = response.json()["data"]
        assert vendor == {
            "name": "fake",
            "is_active": True,
            "is_default": True,
            "is_configured": True,
            "is_loaded": False,
        }

    def test_update_config_rejects_deactivating_default(self, ops_client):
        response = ops_client.patch(
            "/api/admin/payment-vendors/fake", {"is_active": False}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["error"] == "CONFIGURATION_ERROR"

    def test_update_unknown_vendor(self, ops_client):
        response = ops_client.patch("/api/admin/payment-vendors/nope", {"is_active": True}, format="json")
        assert response.status_code == 404

    def test_activate(self, ops_client, gateway):
        response = ops_client.post("/api/admin/payment-vendors/fake/activate")
        assert response.status_code == 200
        assert gateway.count("check_connection") == 1

    def test_connection_test(self, ops_client):
        response = ops_client.post("/api/admin/payment-vendors/fake/test")
        assert response.json() == {"connected": True}

    def test_listings(self, ops_client, member, session_row, participant_row):
        _enroll(member, session_row, participant_row)

        response = ops_client.get("/api/admin/payment-vendors/fake/intents?limit=10")

        assert response.status_code == 200
        assert len(response.json()["data"]) == 1
        assert ops_client.get("/api/admin/payment-vendors/fake/refunds").status_code == 404


@pytest.mark.django_db
class TestPaymentMethodEndpoints:
    def test_attach_list_detach(self, member):
        attached = member.post("/api/payment-methods/attach", {"payment_method_id": "pm_1"}, format="json")
        listed = member.get("/api/payment-methods")
        detached = member.post("/api/payment-methods/detach", {"payment_method_id": "pm_1"}, format="json")

        assert attached.status_code == 200
        assert attached.json()["card"]["last4"] == "4242"
        assert [m["id"] for m in listed.json()["data"]] == ["pm_1"]
        assert detached.status_code == 200

    def test_customer_is_created_once_per_account(self, member, gateway):
        member.get("/api/payment-methods")
        member.get("/api/payment-methods")
        assert gateway.count("get_or_create_customer") == 1

    def test_setup_intent(self, member):
        response = member.post("/api/payment-methods/setup-intent", {}, format="json")
        assert response.status_code == 201
        assert response.json()["client_secret"].endswith("_secret")

    def test_set_default(self, member):
        member.post("/api/payment-methods/attach", {"payment_method_id": "pm_1"}, format="json")
        response = member.post("/api/payment-methods/default", {"payment_method_id": "pm_1"}, format="json")
        assert response.json() == {"success": True}

    def test_history(self, member):
        response = member.get("/api/payments/history?limit=5")
        assert response.status_code == 200
        assert response.json() == {"data": []}


@pytest.mark.django_db
def test_expire_enrollments_command(member, gateway, session_row, participant_row, settings, capsys):
    settings.ENROLLMENT_PENDING_TTL = 0
    _enroll(member, session_row, participant_row)

    call_command("expire_enrollments")

    assert models.Enrollment.objects.get().state == "failed"
    assert "Reconciled 1 pending enrollments" in capsys.readouterr().out
