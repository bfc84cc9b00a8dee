"""Cart serializers for read and write operations."""

from rest_framework import serializers

from .selectors import CartSnapshot


class CartLineSerializer(serializers.Serializer):
    """Read serializer for a priced cart line."""

    variant_id = serializers.IntegerField()
    sku = serializers.CharField()
    product_title = serializers.CharField()
    variant_name = serializers.CharField()
    quantity = serializers.IntegerField()
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    in_stock = serializers.BooleanField()


class CartReadSerializer(serializers.Serializer):
    """Read serializer for the cart summary and items."""

    items = CartLineSerializer(many=True, source="lines")
    item_count = serializers.IntegerField()
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    stale_variant_ids = serializers.ListField(child=serializers.IntegerField())

    @classmethod
    def from_snapshot(cls, snapshot: CartSnapshot):
        return cls(snapshot)


class AddItemSerializer(serializers.Serializer):
    variant_id = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1, default=1)


class SetItemQuantitySerializer(serializers.Serializer):
    """Zero or negative removes the entry."""

    quantity = serializers.IntegerField()
