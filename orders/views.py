"""Orders API endpoints.

Owner endpoints resolve the caller the same way the cart does (JWT or guest
cookie), so guest orders are visible to the guest that placed them. The
tracking endpoint is public and addressed by an unguessable token. Admin
endpoints are staff-only.
"""

from django_filters import rest_framework as filters
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema, extend_schema_view
from rest_framework import filters as drf_filters
from rest_framework import generics, permissions
from rest_framework.exceptions import NotAuthenticated
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from users.identity import resolve_identity

from .models import Order
from .serializers import (
    AdminOrderSerializer,
    OrderCancelSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    OrderTrackingSerializer,
    TrackingInfoSerializer,
)
from .services import add_tracking_info, cancel_order_for_customer, get_order_by_tracking_token, update_status

ORDER_EXAMPLE = {
    "id": 123,
    "number": "ORD-M1ABCDEF-1A2B3C4D",
    "status": "pending",
    "items": [
        {
            "id": 10,
            "variant_id": 555,
            "product_title": "Cotton Tee",
            "variant_name": "Black / M",
            "variant_sku": "TEE-BLK-M",
            "quantity": 2,
            "unit_price": "500.00",
            "line_total": "1000.00",
        }
    ],
    "subtotal": "1000.00",
    "discount": "100.00",
    "shipping_cost": "50.00",
    "total": "950.00",
    "currency": "EGP",
    "promo_code": "SAVE10",
    "payment_method": "card",
}


class OwnerMixin:
    """Resolve the order owner without minting a guest account."""

    def get_owner(self):
        identity = resolve_identity(self.request, create=False)
        if identity is None:
            raise NotAuthenticated()
        return identity.user


class DefaultPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"


class OrderFilterSet(filters.FilterSet):
    start = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    end = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = ["status", "number", "start", "end"]


@extend_schema_view(
    get=extend_schema(
        tags=["Orders"],
        summary="List orders",
        description="List the caller's orders with optional filters and pagination.",
        parameters=[
            OpenApiParameter(name="status", description="Order status filter", required=False, type=str),
            OpenApiParameter(name="number", description="Order number exact match", required=False, type=str),
            OpenApiParameter(name="start", description="Created at >= start (ISO)", required=False, type=str),
            OpenApiParameter(name="end", description="Created at <= end (ISO)", required=False, type=str),
        ],
    )
)
class OrderListView(OwnerMixin, generics.ListAPIView):
    permission_classes = [AllowAny]
    serializer_class = OrderSerializer
    pagination_class = DefaultPagination
    throttle_scope = "orders"
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = OrderFilterSet

    def get_queryset(self):
        return (
            Order.objects.filter(user=self.get_owner())
            .order_by("-id")
            .prefetch_related("items", "history")
        )


class OrderDetailView(OwnerMixin, generics.RetrieveAPIView):
    """Retrieve a single order belonging to the caller."""

    permission_classes = [AllowAny]
    throttle_scope = "orders"
    serializer_class = OrderSerializer
    lookup_url_kwarg = "order_id"

    def get_queryset(self):
        return Order.objects.filter(user=self.get_owner()).prefetch_related("items", "history")

    @extend_schema(tags=["Orders"], summary="Get order detail", examples=[OpenApiExample("Order", value=ORDER_EXAMPLE)])
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class OrderCancelView(OwnerMixin, APIView):
    """Cancel a PENDING or PAID order for its owner."""

    permission_classes = [AllowAny]
    throttle_scope = "orders_write"

    @extend_schema(
        tags=["Orders"],
        summary="Cancel order",
        description="Cancels the order while it is pending or paid. Paid orders have their stock returned.",
        request=OrderCancelSerializer,
        responses={200: OrderSerializer},
        examples=[
            OpenApiExample(
                "Not cancellable",
                value={"detail": "Order cannot be cancelled at this stage.", "code": "not_cancellable"},
                response_only=True,
            ),
        ],
    )
    def post(self, request, order_id: int):
        owner = self.get_owner()
        order = generics.get_object_or_404(Order, pk=order_id, user=owner)
        serializer = OrderCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        updated = cancel_order_for_customer(order=order, user=owner, reason=serializer.validated_data["reason"])
        return Response(OrderSerializer(updated).data)


class OrderTrackingView(APIView):
    """Public order tracking by token."""

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "tracking"

    @extend_schema(tags=["Orders"], summary="Track order", responses={200: OrderTrackingSerializer})
    def get(self, request, token: str):
        order = get_order_by_tracking_token(token)
        return Response(OrderTrackingSerializer(order).data)


# Admin


def _actor(request) -> str:
    return f"admin:{request.user.id}"


def _get_order_or_404(order_id: int) -> Order:
    return generics.get_object_or_404(Order, pk=order_id)


@extend_schema_view(
    get=extend_schema(
        tags=["Admin Endpoints"],
        summary="List orders (admin)",
        description="All orders; `search` matches order number, shipping name and phone.",
    )
)
class AdminOrderListView(generics.ListAPIView):
    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "admin"
    serializer_class = AdminOrderSerializer
    pagination_class = DefaultPagination
    filter_backends = [filters.DjangoFilterBackend, drf_filters.SearchFilter, drf_filters.OrderingFilter]
    filterset_class = OrderFilterSet
    search_fields = ["number", "shipping_name", "shipping_phone"]
    ordering_fields = ["created_at", "total"]
    queryset = Order.objects.all().order_by("-id").prefetch_related("items", "history")


class AdminOrderStatusView(APIView):
    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "admin"

    @extend_schema(
        tags=["Admin Endpoints"],
        summary="Update order status",
        request=OrderStatusUpdateSerializer,
        responses={200: AdminOrderSerializer},
        examples=[
            OpenApiExample(
                "Illegal transition",
                value={
                    "detail": "Cannot change order status from delivered to pending.",
                    "code": "illegal_transition",
                },
                response_only=True,
            )
        ],
    )
    def patch(self, request, order_id: int):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = update_status(
            order=_get_order_or_404(order_id),
            new_status=serializer.validated_data["status"],
            note=serializer.validated_data["note"],
            actor=_actor(request),
        )
        return Response(AdminOrderSerializer(order).data)


class AdminOrderTrackingView(APIView):
    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "admin"

    @extend_schema(
        tags=["Admin Endpoints"],
        summary="Add tracking info",
        description="Records carrier tracking and moves a processing order to shipped.",
        request=TrackingInfoSerializer,
        responses={200: AdminOrderSerializer},
    )
    def post(self, request, order_id: int):
        serializer = TrackingInfoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = add_tracking_info(order=_get_order_or_404(order_id), actor=_actor(request), **serializer.validated_data)
        return Response(AdminOrderSerializer(order).data)

