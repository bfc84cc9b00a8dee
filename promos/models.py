"""Promo code models.

`use_count` is only ever changed through a conditional UPDATE in
`promos.services.redeem_promo`; never assign it from Python.
"""

from decimal import Decimal

from common.choices import DiscountType
from django.db import models
from django.utils import timezone


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class PromoCode(TimeStampedModel):
    """Discount code with optional limits and validity window.

    Deactivated codes (`is_active=False`) behave as if they did not exist.
    """

    TYPE_PERCENTAGE = DiscountType.PERCENTAGE
    TYPE_FIXED_AMOUNT = DiscountType.FIXED_AMOUNT

    code = models.CharField(max_length=40, unique=True)
    description = models.CharField(max_length=255, blank=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2)
    min_cart_value = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    max_uses_per_account = models.PositiveIntegerField(null=True, blank=True)
    starts_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(null=True, blank=True)
    use_count = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(name="promo_value_positive", condition=models.Q(discount_value__gt=0)),
            models.CheckConstraint(
                name="promo_percentage_le_100",
                condition=~models.Q(discount_type=DiscountType.PERCENTAGE) | models.Q(discount_value__lte=100),
            ),
            models.CheckConstraint(
                name="promo_use_count_within_limit",
                condition=models.Q(max_uses__isnull=True) | models.Q(use_count__lte=models.F("max_uses")),
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.code

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    @property
    def discount(self):
        from .discounts import discount_for

        return discount_for(self)

    @property
    def remaining_uses(self) -> int | None:
        if self.max_uses is None:
            return None
        return max(0, int(self.max_uses) - int(self.use_count))

    def minimum(self) -> Decimal:
        return self.min_cart_value or Decimal("0.00")
