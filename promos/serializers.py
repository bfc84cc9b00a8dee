"""Promo serializers: the storefront apply payload and admin CRUD shapes."""

from decimal import Decimal

from rest_framework import serializers

from .models import PromoCode


class ApplyPromoSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=40)


class PromoValidationSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    message = serializers.CharField()


class PromoCodeAdminSerializer(serializers.ModelSerializer):
    remaining_uses = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = PromoCode
        fields = [
            "id",
            "code",
            "description",
            "discount_type",
            "discount_value",
            "min_cart_value",
            "max_discount_amount",
            "max_uses",
            "max_uses_per_account",
            "starts_at",
            "expires_at",
            "use_count",
            "remaining_uses",
            "is_active",
            "created_at",
        ]
        read_only_fields = ["id", "use_count", "is_active", "created_at"]
        extra_kwargs = {"discount_value": {"min_value": Decimal("0.01")}}

    def validate_code(self, value: str) -> str:
        value = value.strip().upper()
        if PromoCode.objects.filter(code=value).exists():
            raise serializers.ValidationError("Promo code already exists.")
        return value

    def validate(self, attrs):
        if attrs.get("discount_type") == PromoCode.TYPE_PERCENTAGE and attrs.get("discount_value", 0) > 100:
            raise serializers.ValidationError({"discount_value": "Percentage discounts cannot exceed 100."})
        starts_at = attrs.get("starts_at")
        expires_at = attrs.get("expires_at")
        if starts_at and expires_at and expires_at <= starts_at:
            raise serializers.ValidationError({"expires_at": "Expiry must be after the start."})
        return attrs
