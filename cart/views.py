"""DRF views for cart operations.

Every endpoint resolves the caller's account from JWT/session credentials or
the guest cookie; anonymous callers get a guest account on first contact.
"""

from drf_spectacular.utils import OpenApiExample, extend_schema, inline_serializer
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from users.identity import IdentityMixin

from .selectors import cart_snapshot
from .serializers import AddItemSerializer, CartReadSerializer, SetItemQuantitySerializer
from .services import add_item, clear_cart, remove_item, set_or_remove_item

CART_EXAMPLE = {
    "items": [
        {
            "variant_id": 100,
            "sku": "TEE-BLK-M",
            "product_title": "Cotton Tee",
            "variant_name": "Black / M",
            "quantity": 2,
            "unit_price": "500.00",
            "line_total": "1000.00",
            "in_stock": True,
        }
    ],
    "item_count": 2,
    "subtotal": "1000.00",
    "stale_variant_ids": [],
}


def _cart_response(user, code=status.HTTP_200_OK) -> Response:
    return Response(CartReadSerializer.from_snapshot(cart_snapshot(user=user)).data, status=code)


class CartDetailView(IdentityMixin, APIView):
    """Return or clear the caller's cart."""

    permission_classes = [AllowAny]

    def get_throttles(self):
        self.throttle_scope = "cart" if self.request.method == "GET" else "cart_write"
        return super().get_throttles()

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Get cart",
        description="Returns the caller's cart priced against the live catalog.",
        examples=[OpenApiExample("Cart", value=CART_EXAMPLE)],
    )
    def get(self, request):
        return _cart_response(self.identity.user)

    @extend_schema(tags=["Cart Endpoints"], summary="Clear cart", responses={204: None})
    def delete(self, request):
        clear_cart(user=self.identity.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartAddItemView(IdentityMixin, APIView):
    """Add an item to the cart."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Add item to cart",
        description="Increments the quantity of a variant in the caller's cart.",
        request=AddItemSerializer,
        responses={
            201: CartReadSerializer,
            400: inline_serializer(
                name="CartMutationError",
                fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
            ),
            404: inline_serializer(
                name="CartNotFoundError",
                fields={"detail": rf_serializers.CharField(), "code": rf_serializers.CharField()},
            ),
        },
        examples=[OpenApiExample("Add", value={"variant_id": 100, "quantity": 2}, request_only=True)],
    )
    def post(self, request):
        serializer = AddItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        add_item(user=self.identity.user, **serializer.validated_data)
        return _cart_response(self.identity.user, status.HTTP_201_CREATED)


class CartItemView(IdentityMixin, APIView):
    """Set or remove a single variant entry."""

    permission_classes = [AllowAny]
    throttle_scope = "cart_write"

    @extend_schema(
        tags=["Cart Endpoints"],
        summary="Set item quantity",
        description="Sets the quantity for a variant; zero or a negative quantity removes it.",
        request=SetItemQuantitySerializer,
        responses={200: CartReadSerializer},
    )
    def put(self, request, variant_id: int):
        serializer = SetItemQuantitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        set_or_remove_item(user=self.identity.user, variant_id=variant_id, **serializer.validated_data)
        return _cart_response(self.identity.user)

    @extend_schema(tags=["Cart Endpoints"], summary="Remove item", responses={204: None})
    def delete(self, request, variant_id: int):
        remove_item(user=self.identity.user, variant_id=variant_id)
        return Response(status=status.HTTP_204_NO_CONTENT)
