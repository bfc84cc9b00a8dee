"""Checkout API endpoints.

- init: turns the caller's cart into a pending order and opens a payment.
  Idempotent when an `Idempotency-Key` header is sent; replaying the key after
  a gateway failure retries payment for the order that was already saved.
- retry: opens a new payment attempt for an unpaid order.
- callback: provider server-to-server notification (POST) and browser
  return (GET). Responses never say why a callback was rejected.
"""

from common.errors import PaymentNotStarted
from common.exceptions import error_body
from django.shortcuts import redirect
from drf_spectacular.utils import OpenApiExample, OpenApiParameter, extend_schema
from orders.services import compute_request_hash, with_idempotency
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from users.identity import IdentityMixin

from .serializers import CheckoutInitSerializer, CheckoutResultSerializer, CheckoutRetrySerializer
from .services import initialize_checkout, process_payment_callback, resolve_return_redirect, retry_checkout_payment

SIGNATURE_PARAM = "hmac"

CHECKOUT_EXAMPLE = {
    "order_id": 42,
    "order_number": "ORD-M1ABCDEF-1A2B3C4D",
    "tracking_token": "x1Y2z3...",
    "total": "950.00",
    "payment_method": "card",
    "provider_order_id": "123456",
    "iframe_url": "https://accept.paymob.com/api/acceptance/iframes/777?payment_token=...",
}


class CheckoutInitView(IdentityMixin, APIView):
    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    @extend_schema(
        tags=["Checkout Endpoints"],
        summary="Start checkout",
        description=(
            "Creates a pending order from the caller's cart, holds stock and opens a payment with the provider. "
            "Card payments return an `iframe_url`, wallet payments a `redirect_url`. A promo code is validated "
            "here and only consumed once the payment settles."
        ),
        request=CheckoutInitSerializer,
        responses={201: CheckoutResultSerializer},
        parameters=[
            OpenApiParameter(
                name="Idempotency-Key",
                location=OpenApiParameter.HEADER,
                required=False,
                description="Replays the stored response for a repeated submission",
                type=str,
            )
        ],
        examples=[
            OpenApiExample("Card", value=CHECKOUT_EXAMPLE, response_only=True),
            OpenApiExample(
                "Out of stock",
                value={"detail": "Insufficient stock for: Cotton Tee (Black / M)", "code": "out_of_stock"},
                response_only=True,
            ),
        ],
    )
    def post(self, request):
        serializer = CheckoutInitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = self.identity.user

        def _handler():
            try:
                result = initialize_checkout(user=user, data=serializer.validated_data)
            except PaymentNotStarted as exc:
                return error_body(exc), exc.status_code
            return CheckoutResultSerializer(result).data, status.HTTP_201_CREATED

        def _resume(stored):
            # A replay after a gateway failure pays for the order already saved under this key
            try:
                result = retry_checkout_payment(
                    user=user, order_id=stored["order_id"], wallet_number=serializer.validated_data["wallet_number"]
                )
            except PaymentNotStarted as exc:
                return error_body(exc), exc.status_code
            return CheckoutResultSerializer(result).data, status.HTTP_201_CREATED

        idem_key = request.headers.get("Idempotency-Key")
        if idem_key:
            body, code = with_idempotency(
                key=idem_key,
                user=user,
                path=str(request.path),
                method=str(request.method),
                request_hash=compute_request_hash(getattr(request, "data", None)),
                handler=_handler,
                resume=_resume,
            )
            return Response(body, status=code)

        body, code = _handler()
        return Response(body, status=code)


class CheckoutRetryView(IdentityMixin, APIView):
    permission_classes = [AllowAny]
    throttle_scope = "checkout"

    @extend_schema(
        tags=["Checkout Endpoints"],
        summary="Retry payment",
        description="Opens a new payment attempt for a pending or failed order owned by the caller.",
        request=CheckoutRetrySerializer,
        responses={201: CheckoutResultSerializer},
    )
    def post(self, request, order_id: int):
        serializer = CheckoutRetrySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = retry_checkout_payment(
            user=self.identity.user, order_id=order_id, wallet_number=serializer.validated_data["wallet_number"]
        )
        return Response(CheckoutResultSerializer(result).data, status=status.HTTP_201_CREATED)


class PaymentCallbackView(APIView):
    """Provider notifications and browser returns."""

    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "payment_callback"

    @extend_schema(
        tags=["Checkout Endpoints"],
        summary="Payment callback",
        description=(
            "Server-to-server transaction notification. The HMAC signature is read from the `hmac` query "
            "parameter, the `HMAC` header or the body, and verified before anything else."
        ),
        request=None,
        examples=[OpenApiExample("Acknowledged", value={"received": True}, response_only=True)],
    )
    def post(self, request):
        data = request.data
        payload = data.dict() if hasattr(data, "dict") else dict(data)
        signature = (
            request.query_params.get(SIGNATURE_PARAM)
            or request.headers.get("HMAC")
            or payload.pop(SIGNATURE_PARAM, None)
        )
        payload.pop(SIGNATURE_PARAM, None)
        process_payment_callback(payload=payload, signature=signature)
        return Response({"received": True})

    @extend_schema(
        tags=["Checkout Endpoints"],
        summary="Payment return",
        description="Redirects the browser to the storefront success or failure page. Never changes an order.",
        responses={302: None},
    )
    def get(self, request):
        params = request.query_params.dict()
        signature = params.pop(SIGNATURE_PARAM, None)
        return redirect(resolve_return_redirect(params=params, signature=signature))
