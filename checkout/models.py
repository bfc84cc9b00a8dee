"""Checkout session model: one row per payment attempt for an order."""

from common.choices import CheckoutState, PaymentMethod
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class CheckoutSession(TimeStampedModel):
    """A payment attempt and the provider references it produced.

    `provider_order_id` is the key callbacks are matched on. Attempts that
    never reached the provider keep it null.
    """

    STATE_INITIATED = CheckoutState.INITIATED
    STATE_AWAITING_PAYMENT = CheckoutState.AWAITING_PAYMENT
    STATE_GATEWAY_FAILED = CheckoutState.GATEWAY_FAILED
    STATE_SETTLED = CheckoutState.SETTLED
    STATE_FAILED = CheckoutState.FAILED
    STATE_SUPERSEDED = CheckoutState.SUPERSEDED

    order = models.ForeignKey("orders.Order", related_name="checkout_sessions", on_delete=models.CASCADE)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="checkout_sessions", on_delete=models.CASCADE)
    items = models.JSONField(default=list)
    promo_code = models.CharField(max_length=40, blank=True)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2)
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="EGP")
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices)
    provider_order_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    payment_token = models.TextField(blank=True)
    redirect_url = models.URLField(max_length=1024, blank=True)
    state = models.CharField(max_length=20, choices=CheckoutState.choices, default=STATE_INITIATED, db_index=True)
    error = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"CheckoutSession#{self.id} order={self.order_id} state={self.state}"
