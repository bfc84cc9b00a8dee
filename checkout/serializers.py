"""Checkout request and response shapes."""

from common.choices import PaymentMethod
from django.core.validators import RegexValidator
from orders.serializers import ShippingAddressSerializer
from rest_framework import serializers

wallet_number_validator = RegexValidator(r"^01[0125]\d{8}$", "Enter a valid Egyptian mobile wallet number.")


class CheckoutInitSerializer(serializers.Serializer):
    shipping_address = ShippingAddressSerializer()
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    wallet_number = serializers.CharField(
        max_length=11, required=False, allow_blank=True, default="", validators=[wallet_number_validator]
    )
    promo_code = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    customer_note = serializers.CharField(max_length=1000, required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["payment_method"] == PaymentMethod.WALLET and not attrs.get("wallet_number"):
            raise serializers.ValidationError({"wallet_number": "A wallet number is required for wallet payments."})
        return attrs


class CheckoutRetrySerializer(serializers.Serializer):
    wallet_number = serializers.CharField(
        max_length=11, required=False, allow_blank=True, default="", validators=[wallet_number_validator]
    )


class CheckoutResultSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    order_number = serializers.CharField()
    tracking_token = serializers.CharField()
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.CharField()
    provider_order_id = serializers.CharField(allow_null=True)
    iframe_url = serializers.URLField(required=False)
    redirect_url = serializers.URLField(required=False)
