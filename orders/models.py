"""Order models.

An order is created once at checkout in PENDING with a frozen copy of its
line items, totals and shipping address. After that only the lifecycle
services in `orders.services` change it. Status history is append-only.
"""

from decimal import Decimal

from common.choices import OrderStatus, PaymentMethod
from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """Purchase order capturing a snapshot of an account's checkout.

    Totals are denormalized at creation and never recomputed from the catalog.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_PAID = OrderStatus.PAID
    STATUS_PROCESSING = OrderStatus.PROCESSING
    STATUS_SHIPPED = OrderStatus.SHIPPED
    STATUS_DELIVERED = OrderStatus.DELIVERED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_PAYMENT_FAILED = OrderStatus.PAYMENT_FAILED
    STATUS_CHOICES = OrderStatus.choices

    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="orders", on_delete=models.PROTECT)
    number = models.CharField(max_length=40, unique=True)
    tracking_token = models.CharField(max_length=64, unique=True)
    email = models.EmailField(null=True, blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default="EGP")

    promo = models.ForeignKey(
        "promos.PromoCode", null=True, blank=True, related_name="orders", on_delete=models.SET_NULL
    )
    promo_code = models.CharField(max_length=40, blank=True)
    payment_method = models.CharField(max_length=16, choices=PaymentMethod.choices, default=PaymentMethod.CARD)

    # Shipping address snapshot
    shipping_name = models.CharField(max_length=120)
    shipping_phone = models.CharField(max_length=32)
    shipping_street = models.CharField(max_length=255)
    shipping_building = models.CharField(max_length=64, blank=True)
    shipping_floor = models.CharField(max_length=32, blank=True)
    shipping_apartment = models.CharField(max_length=32, blank=True)
    shipping_city = models.CharField(max_length=120)
    shipping_governorate = models.CharField(max_length=120)
    shipping_postal_code = models.CharField(max_length=16, blank=True)
    customer_note = models.TextField(blank=True)

    # Fulfilment
    tracking_number = models.CharField(max_length=120, blank=True)
    tracking_url = models.URLField(blank=True)
    estimated_delivery = models.DateField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    provider_transaction_id = models.CharField(max_length=64, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["user", "status", "created_at"], name="order_user_status_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(name="order_total_non_negative", condition=models.Q(total__gte=0)),
            models.CheckConstraint(name="order_discount_non_negative", condition=models.Q(discount__gte=0)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order {self.number} user={self.user_id} status={self.status}"

    @property
    def stock_reference(self) -> str:
        return f"order:{self.number}"

    def item_quantities(self) -> dict[int, int]:
        lines: dict[int, int] = {}
        for item in self.items.all():
            lines[item.variant_id] = lines.get(item.variant_id, 0) + int(item.quantity)
        return lines


class OrderItem(TimeStampedModel):
    """Line item within an order.

    Name, SKU and unit price are copied at checkout; `variant_id` is kept for
    stock bookkeeping only.
    """

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    variant_id = models.BigIntegerField()
    product_title = models.CharField(max_length=200)
    variant_name = models.CharField(max_length=120, blank=True)
    variant_sku = models.CharField(max_length=64)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(name="orderitem_price_non_negative", condition=models.Q(unit_price__gte=0)),
            models.CheckConstraint(name="orderitem_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderItem#{self.id} order={self.order_id} sku={self.variant_sku} qty={self.quantity}"


class AppendOnlyError(Exception):
    """Raised on attempts to edit or delete a status history entry."""


class OrderStatusHistory(models.Model):
    """One entry in an order's status log; never edited after insert."""

    order = models.ForeignKey(Order, related_name="history", on_delete=models.CASCADE)
    status = models.CharField(max_length=16, choices=OrderStatus.choices)
    note = models.TextField(blank=True)
    actor = models.CharField(max_length=120, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "order status history"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.order_id}:{self.status}@{self.created_at}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise AppendOnlyError("Status history entries cannot be modified")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise AppendOnlyError("Status history entries cannot be deleted")


class IdempotencyKey(TimeStampedModel):
    """Stores idempotent request results to prevent duplicate processing."""

    key = models.CharField(max_length=128)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.CASCADE)
    scope = models.CharField(max_length=128)
    path = models.CharField(max_length=255)
    method = models.CharField(max_length=16)
    request_hash = models.CharField(max_length=64, null=True, blank=True)
    response_code = models.IntegerField(null=True, blank=True)
    response_json = models.JSONField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["key", "scope", "path", "method"], name="uniq_idem_scope_path_method"),
        ]
