"""Serializers for payment vendor administration and payment methods."""

from rest_framework import serializers


class VendorStatusSerializer(serializers.Serializer):
    name = serializers.CharField()
    is_active = serializers.BooleanField()
    is_default = serializers.BooleanField()
    is_configured = serializers.BooleanField()
    is_loaded = serializers.BooleanField()


class GatewayConfigUpdateSerializer(serializers.Serializer):
    """Partial vendor configuration update. Omitted fields are left unchanged."""

    is_active = serializers.BooleanField(required=False)
    is_default = serializers.BooleanField(required=False)
    options = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)


class ListFiltersSerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=100, default=50)
    cursor = serializers.CharField(required=False)
    customer = serializers.CharField(required=False)
    search = serializers.CharField(required=False)
    status = serializers.CharField(required=False)


class PageSerializer(serializers.Serializer):
    data = serializers.ListField(child=serializers.DictField())
    has_more = serializers.BooleanField()
    cursor = serializers.CharField(allow_null=True)


class CardDetailsSerializer(serializers.Serializer):
    brand = serializers.CharField()
    last4 = serializers.CharField()
    exp_month = serializers.IntegerField()
    exp_year = serializers.IntegerField()


class PaymentMethodSerializer(serializers.Serializer):
    id = serializers.CharField()
    type = serializers.CharField()
    card = CardDetailsSerializer(allow_null=True)


class PaymentMethodActionSerializer(serializers.Serializer):
    payment_method_id = serializers.CharField()


class SetupIntentRequestSerializer(serializers.Serializer):
    return_url = serializers.URLField(required=False)


class SetupIntentSerializer(serializers.Serializer):
    id = serializers.CharField()
    client_secret = serializers.CharField()
    status = serializers.CharField()


class PaymentHistoryItemSerializer(serializers.Serializer):
    id = serializers.CharField()
    amount = serializers.IntegerField()
    currency = serializers.CharField()
    status = serializers.CharField()
    description = serializers.CharField(allow_blank=True)
    created_at = serializers.DateTimeField()
    payment_method = PaymentMethodSerializer(allow_null=True)
