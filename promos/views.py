"""Promo API endpoints.

- apply: validates a code against the caller's current cart (advisory only).
- admin: list/create codes and deactivate a code; staff only.
"""

from cart.selectors import cart_snapshot
from common.errors import EmptyCart
from django.conf import settings
from drf_spectacular.utils import OpenApiExample, extend_schema, extend_schema_view
from rest_framework import generics, permissions, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from users.identity import IdentityMixin

from .models import PromoCode
from .serializers import ApplyPromoSerializer, PromoCodeAdminSerializer, PromoValidationSerializer
from .services import create_promo, deactivate_promo, validate_promo


class ApplyPromoView(IdentityMixin, APIView):
    """Validate a promo code against the current cart without consuming it."""

    permission_classes = [AllowAny]
    throttle_scope = "promo"

    @extend_schema(
        tags=["Promo Endpoints"],
        summary="Apply promo code to cart",
        description=(
            "Returns whether the code applies to the caller's current cart and the discount it would give. "
            "The code is only consumed when an order is paid."
        ),
        request=ApplyPromoSerializer,
        responses={200: PromoValidationSerializer},
        examples=[
            OpenApiExample(
                "Applied",
                value={
                    "valid": True,
                    "discount_amount": "100.00",
                    "message": "Promo code applied! You save 100.00 EGP",
                },
                response_only=True,
            ),
            OpenApiExample(
                "Expired",
                value={"valid": False, "discount_amount": "0.00", "message": "This promo code has expired"},
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        serializer = ApplyPromoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        snapshot = cart_snapshot(user=self.identity.user)
        if not snapshot.lines:
            raise EmptyCart()
        result = validate_promo(
            code=serializer.validated_data["code"],
            subtotal=snapshot.subtotal,
            user=self.identity.user,
            currency=settings.CHECKOUT_CURRENCY,
        )
        return Response(PromoValidationSerializer(result).data, status=status.HTTP_200_OK)


class AdminPagination(PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"


@extend_schema_view(
    get=extend_schema(tags=["Admin Endpoints"], summary="List promo codes (admin)"),
    post=extend_schema(tags=["Admin Endpoints"], summary="Create promo code"),
)
class AdminPromoListCreateView(generics.ListCreateAPIView):
    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "admin"
    serializer_class = PromoCodeAdminSerializer
    pagination_class = AdminPagination

    def get_queryset(self):
        qs = PromoCode.objects.all().order_by("-created_at")
        if self.request.query_params.get("active") in ("1", "true"):
            qs = qs.filter(is_active=True)
        return qs

    def perform_create(self, serializer):
        serializer.instance = create_promo(**serializer.validated_data)


class AdminPromoDeactivateView(APIView):
    """Deactivate a promo code; deactivated codes validate as not found."""

    permission_classes = [permissions.IsAdminUser]
    throttle_scope = "admin"

    @extend_schema(tags=["Admin Endpoints"], summary="Deactivate promo code", responses={200: PromoCodeAdminSerializer})
    def post(self, request, promo_id: int):
        promo = deactivate_promo(promo_id=promo_id)
        return Response(PromoCodeAdminSerializer(promo).data)
