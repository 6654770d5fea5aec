"""Serializers for enrollment requests and responses.

Input serializers only check shape; identifier and price validity are
decided by the services so the error codes stay in one place.
"""

from rest_framework import serializers


class EnrollmentRequestSerializer(serializers.Serializer):
    participant_id = serializers.CharField()
    session_id = serializers.CharField()
    price = serializers.CharField()


class ConfirmationRequestSerializer(serializers.Serializer):
    """Vendor-specific confirmation data, passed through to the adapter."""

    confirmation = serializers.DictField(child=serializers.CharField(), allow_empty=False)


class EnrollmentSerializer(serializers.Serializer):
    """Serializer for the Enrollment domain model."""

    id = serializers.CharField()
    session_id = serializers.CharField()
    participant_id = serializers.CharField()
    price = serializers.CharField()
    state = serializers.CharField(source="state.value")
    vendor = serializers.CharField()
    external_payment_ref = serializers.CharField()
    created_at = serializers.DateTimeField()
    confirmed_at = serializers.DateTimeField()
