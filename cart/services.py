"""Cart services: per-variant atomic mutations.

Every quantity change is a single conditional UPDATE on one (cart, variant)
row, so concurrent requests for the same account never lose increments.
Two requests racing to insert the same variant resolve via the unique
constraint: the loser retries as an increment.
"""

import logging
from datetime import timedelta

from catalog.selectors import get_variant
from common.choices import AccountKind
from common.errors import NotFoundError, ValidationError
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from .models import Cart, CartItem
from .selectors import get_cart

logger = logging.getLogger("bazaar.cart")


def _touch(cart: Cart) -> None:
    Cart.objects.filter(pk=cart.pk).update(updated_at=timezone.now())


def _increment(cart: Cart, variant_id: int, quantity: int) -> None:
    updated = CartItem.objects.filter(cart=cart, variant_id=variant_id).update(
        quantity=F("quantity") + quantity, updated_at=timezone.now()
    )
    if updated:
        return
    try:
        with transaction.atomic():
            CartItem.objects.create(cart=cart, variant_id=variant_id, quantity=quantity)
    except IntegrityError:
        # Lost the first-insert race; the row exists now
        CartItem.objects.filter(cart=cart, variant_id=variant_id).update(
            quantity=F("quantity") + quantity, updated_at=timezone.now()
        )


def _require_active_variant(variant_id: int):
    variant = get_variant(variant_id)
    if variant is None or not variant.is_active:
        raise NotFoundError("Product variant not found.", code="variant_not_found")
    return variant


@transaction.atomic
def add_item(*, user, variant_id: int, quantity: int) -> CartItem:
    """Add ``quantity`` of a variant to the account's cart (atomic increment)."""

    if quantity is None or int(quantity) < 1:
        raise ValidationError("Quantity must be at least 1.", code="invalid_quantity")
    _require_active_variant(variant_id)
    cart = get_cart(user=user)
    _increment(cart, int(variant_id), int(quantity))
    _touch(cart)
    item = CartItem.objects.get(cart=cart, variant_id=variant_id)
    logger.info(
        "cart.item_added",
        extra={
            "event": "cart.item_added",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "variant_id": int(variant_id),
            "quantity": int(quantity),
            "guest": user.is_guest,
        },
    )
    return item


@transaction.atomic
def set_or_remove_item(*, user, variant_id: int, quantity: int) -> CartItem | None:
    """Set the quantity for a variant; zero or negative removes the entry."""

    cart = get_cart(user=user)
    if quantity is None or int(quantity) <= 0:
        remove_item(user=user, variant_id=variant_id)
        return None
    updated = CartItem.objects.filter(cart=cart, variant_id=variant_id).update(
        quantity=int(quantity), updated_at=timezone.now()
    )
    if not updated:
        _require_active_variant(variant_id)
        try:
            with transaction.atomic():
                CartItem.objects.create(cart=cart, variant_id=variant_id, quantity=int(quantity))
        except IntegrityError:
            CartItem.objects.filter(cart=cart, variant_id=variant_id).update(
                quantity=int(quantity), updated_at=timezone.now()
            )
    _touch(cart)
    logger.info(
        "cart.item_updated",
        extra={
            "event": "cart.item_updated",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "variant_id": int(variant_id),
            "quantity": int(quantity),
            "guest": user.is_guest,
        },
    )
    return CartItem.objects.get(cart=cart, variant_id=variant_id)


@transaction.atomic
def remove_item(*, user, variant_id: int) -> None:
    cart = get_cart(user=user)
    deleted, _ = CartItem.objects.filter(cart=cart, variant_id=variant_id).delete()
    if not deleted:
        return
    _touch(cart)
    logger.info(
        "cart.item_removed",
        extra={
            "event": "cart.item_removed",
            "cart_id": cart.id,
            "user_id": getattr(user, "id", None),
            "variant_id": int(variant_id),
            "guest": user.is_guest,
        },
    )


@transaction.atomic
def clear_cart(*, user) -> None:
    """Remove every entry from the account's cart."""

    cart = get_cart(user=user)
    CartItem.objects.filter(cart=cart).delete()
    _touch(cart)
    logger.info(
        "cart.cleared",
        extra={"event": "cart.cleared", "cart_id": cart.id, "user_id": getattr(user, "id", None)},
    )


@transaction.atomic
def merge_carts(*, source_user, dest_user) -> Cart:
    """Fold the source account's cart into the destination's.

    Quantities are added per variant, never overwritten. The source cart is
    emptied in the same transaction, so either every entry moves or none do.
    An empty or missing source cart is a no-op.
    """

    dest = get_cart(user=dest_user)
    try:
        src = Cart.objects.select_for_update().get(user=source_user)
    except Cart.DoesNotExist:
        return dest
    if src.pk == dest.pk:
        return dest
    entries = list(CartItem.objects.select_for_update().filter(cart=src).values_list("variant_id", "quantity"))
    if not entries:
        return dest
    for variant_id, quantity in entries:
        _increment(dest, variant_id, quantity)
    CartItem.objects.filter(cart=src).delete()
    _touch(dest)
    logger.info(
        "cart.merged",
        extra={
            "event": "cart.merged",
            "src_cart_id": src.id,
            "dest_cart_id": dest.id,
            "user_id": getattr(dest_user, "id", None),
            "entries": len(entries),
        },
    )
    return dest


def expire_guest_carts(*, older_than_days: int | None = None) -> int:
    """Delete guest carts untouched for the retention window; returns the count."""

    days = settings.GUEST_CART_RETENTION_DAYS if older_than_days is None else older_than_days
    cutoff = timezone.now() - timedelta(days=days)
    qs = Cart.objects.filter(user__kind=AccountKind.GUEST, updated_at__lt=cutoff)
    count = qs.count()
    qs.delete()
    logger.info("cart.guest_expired", extra={"event": "cart.guest_expired", "count": count})
    return count
