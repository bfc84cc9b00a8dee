"""Selectors for read-only cart queries.

The cart stores quantities only; `cart_snapshot` prices it against the live
catalog at read time. Variants that no longer exist or are no longer on sale
are reported as stale and excluded from totals instead of raising.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from catalog.selectors import get_variants_by_ids

from .models import Cart, CartItem


def get_cart(*, user) -> Cart:
    """Return the account's cart, creating it if missing."""

    cart, _ = Cart.objects.get_or_create(user=user)
    return cart


def cart_entries(*, user) -> dict[int, int]:
    """Return the raw variant id -> quantity mapping."""

    return dict(CartItem.objects.filter(cart__user=user).values_list("variant_id", "quantity"))


@dataclass
class CartLine:
    variant_id: int
    sku: str
    product_title: str
    variant_name: str
    unit_price: Decimal
    quantity: int
    available: int

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def in_stock(self) -> bool:
        return self.available >= self.quantity


@dataclass
class CartSnapshot:
    lines: list[CartLine] = field(default_factory=list)
    stale_variant_ids: list[int] = field(default_factory=list)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines and not self.stale_variant_ids


def cart_snapshot(*, user) -> CartSnapshot:
    entries = cart_entries(user=user)
    variants = get_variants_by_ids(entries)
    snapshot = CartSnapshot()
    for variant_id, quantity in sorted(entries.items()):
        variant = variants.get(variant_id)
        if variant is None or not variant.is_active:
            snapshot.stale_variant_ids.append(variant_id)
            continue
        snapshot.lines.append(
            CartLine(
                variant_id=variant_id,
                sku=variant.sku,
                product_title=variant.product.title,
                variant_name=variant.name,
                unit_price=variant.price,
                quantity=quantity,
                available=int(variant.available),
            )
        )
    return snapshot
