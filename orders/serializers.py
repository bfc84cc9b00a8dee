"""DRF serializers for Orders.

Totals are read straight from the order; they were frozen at checkout and are
never recomputed from the catalog. The public tracking shape deliberately
omits account, billing and payment data.
"""

from common.choices import OrderStatus
from rest_framework import serializers

from .models import Order, OrderItem, OrderStatusHistory


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "variant_id",
            "product_title",
            "variant_name",
            "variant_sku",
            "quantity",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ["status", "note", "created_at"]
        read_only_fields = fields


class TrackingHistorySerializer(serializers.ModelSerializer):
    """Status timeline for anonymous tracking; notes stay with the owner and staff."""

    class Meta:
        model = OrderStatusHistory
        fields = ["status", "created_at"]
        read_only_fields = fields


class ShippingAddressSerializer(serializers.Serializer):
    """Shipping address as accepted at checkout and echoed on orders."""

    name = serializers.CharField(max_length=120)
    phone = serializers.CharField(max_length=32)
    street = serializers.CharField(max_length=255)
    building = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    floor = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    apartment = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    city = serializers.CharField(max_length=120)
    governorate = serializers.CharField(max_length=120)
    postal_code = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")


class OrderSerializer(serializers.ModelSerializer):
    """Owner and admin view of an order."""

    items = OrderItemSerializer(many=True, read_only=True)
    history = OrderStatusHistorySerializer(many=True, read_only=True)
    shipping_address = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "number",
            "status",
            "email",
            "created_at",
            "items",
            "subtotal",
            "discount",
            "shipping_cost",
            "total",
            "currency",
            "promo_code",
            "payment_method",
            "shipping_address",
            "customer_note",
            "tracking_token",
            "tracking_number",
            "tracking_url",
            "estimated_delivery",
            "paid_at",
            "delivered_at",
            "history",
        ]
        read_only_fields = fields

    def get_shipping_address(self, obj: Order) -> dict:
        return {name: getattr(obj, f"shipping_{name}") for name in ShippingAddressSerializer().fields}


class AdminOrderSerializer(OrderSerializer):
    user_id = serializers.IntegerField(read_only=True)
    provider_transaction_id = serializers.CharField(read_only=True)

    class Meta(OrderSerializer.Meta):
        fields = OrderSerializer.Meta.fields + ["user_id", "provider_transaction_id"]
        read_only_fields = fields


class OrderTrackingSerializer(serializers.ModelSerializer):
    """Public, token-addressed view of an order."""

    items = serializers.SerializerMethodField()
    history = TrackingHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "number",
            "status",
            "created_at",
            "paid_at",
            "delivered_at",
            "tracking_number",
            "tracking_url",
            "estimated_delivery",
            "shipping_city",
            "shipping_governorate",
            "items",
            "history",
        ]
        read_only_fields = fields

    def get_items(self, obj: Order) -> list[dict]:
        return [
            {"product_title": i.product_title, "variant_name": i.variant_name, "quantity": i.quantity}
            for i in obj.items.all()
        ]


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    note = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class TrackingInfoSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(max_length=120)
    tracking_url = serializers.URLField(required=False, allow_blank=True, default="")
    estimated_delivery = serializers.DateField(required=False, allow_null=True, default=None)
