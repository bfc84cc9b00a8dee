"""Discount variants.

Each promo code maps onto exactly one variant with a single `compute`
entry point; callers never branch on the discount type themselves.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from common.choices import DiscountType

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Discount:
    value: Decimal
    cap: Decimal | None = None

    def raw(self, subtotal: Decimal) -> Decimal:  # pragma: no cover
        raise NotImplementedError

    def compute(self, subtotal: Decimal) -> Decimal:
        """Discount for ``subtotal``: capped, never above the subtotal, never negative."""

        subtotal = Decimal(subtotal)
        if subtotal <= 0:
            return Decimal("0.00")
        amount = self.raw(subtotal)
        if self.cap is not None:
            amount = min(amount, Decimal(self.cap))
        return quantize(max(Decimal("0"), min(amount, subtotal)))


@dataclass(frozen=True)
class PercentageDiscount(Discount):
    def raw(self, subtotal: Decimal) -> Decimal:
        return subtotal * Decimal(self.value) / Decimal(100)


@dataclass(frozen=True)
class FixedAmountDiscount(Discount):
    def raw(self, subtotal: Decimal) -> Decimal:
        return min(Decimal(self.value), subtotal)


_VARIANTS = {
    DiscountType.PERCENTAGE: PercentageDiscount,
    DiscountType.FIXED_AMOUNT: FixedAmountDiscount,
}


def discount_for(promo) -> Discount:
    try:
        variant = _VARIANTS[promo.discount_type]
    except KeyError:
        raise ValueError(f"Unknown discount type: {promo.discount_type}")
    return variant(value=promo.discount_value, cap=promo.max_discount_amount)
