"""Inventory services (single-location): transactional stock movements.

Checkout places soft holds keyed by an order reference (``order:<number>``).
Holds are converted into outbound movements when payment settles, released
when payment fails or the order is cancelled, and restocked when a paid order
is cancelled. Every function locks the StockItem row it changes.
"""

import logging
from typing import Iterable

from django.db import transaction
from django.db.models import F

from .models import StockItem, StockMovement, StockReservation

logger = logging.getLogger("bazaar.inventory")


class MovementError(Exception):
    """A change would leave a variant with negative available stock."""

    def __init__(self, message: str, *, variant_ids: Iterable[int] = ()):
        self.variant_ids = list(variant_ids)
        super().__init__(message)


def _locked_item(variant_id: int, *, create: bool = False) -> StockItem:
    queryset = StockItem.objects.select_for_update()
    if create:
        item, _ = queryset.get_or_create(variant_id=variant_id)
        return item
    return queryset.get(variant_id=variant_id)


def _record(item: StockItem, movement_type: str, quantity: int, reason: str, reference: str) -> StockMovement:
    return StockMovement.objects.create(
        stock_item=item, movement_type=movement_type, quantity=quantity, reason=reason, reference=reference
    )


@transaction.atomic
def apply_movement(*, stock_item_id: int, movement_type: str, quantity: int, reason: str = "", reference: str = ""):
    """Change on-hand stock by a signed ``quantity`` and record it.

    Deductions may only consume available (unheld) stock. A zero quantity is
    a no-op and returns None.
    """
    if quantity == 0:
        return None
    try:
        item = StockItem.objects.select_for_update().get(id=stock_item_id)
    except StockItem.DoesNotExist:
        raise MovementError("StockItem not found")
    if -quantity > item.available:
        raise MovementError("Insufficient available quantity", variant_ids=[item.variant_id])
    item.quantity = int(item.quantity) + int(quantity)
    item.save(update_fields=["quantity", "updated_at"])
    return _record(item, movement_type, quantity, reason, reference)


# Single holds


@transaction.atomic
def create_reservation(*, variant_id: int, quantity: int, reference: str, expires_at=None) -> StockReservation:
    if quantity <= 0:
        raise MovementError("Hold quantity must be positive", variant_ids=[variant_id])
    item = _locked_item(variant_id, create=True)
    if quantity > item.available:
        raise MovementError("Insufficient available quantity to hold", variant_ids=[variant_id])
    item.reserved = int(item.reserved) + quantity
    item.save(update_fields=["reserved", "updated_at"])
    return StockReservation.objects.create(
        variant_id=variant_id, quantity=quantity, reference=reference, expires_at=expires_at
    )


def _active_hold(reservation_id: int) -> StockReservation | None:
    hold = StockReservation.objects.select_for_update().filter(id=reservation_id).first()
    if hold is None or hold.state != StockReservation.STATE_ACTIVE:
        return None
    return hold


@transaction.atomic
def release_reservation(*, reservation_id: int) -> None:
    """Give a hold back to available stock; inactive or missing holds are ignored."""
    hold = _active_hold(reservation_id)
    if hold is None:
        return
    item = _locked_item(hold.variant_id)
    item.reserved = max(0, int(item.reserved) - int(hold.quantity))
    item.save(update_fields=["reserved", "updated_at"])
    hold.state = StockReservation.STATE_RELEASED
    hold.save(update_fields=["state", "updated_at"])


@transaction.atomic
def convert_reservation_to_order(*, reservation_id: int, reason: str = "order", reference: str = "") -> None:
    """Turn a hold into an outbound movement of the same quantity."""
    hold = _active_hold(reservation_id)
    if hold is None:
        return
    item = _locked_item(hold.variant_id)
    if hold.quantity > int(item.quantity):
        raise MovementError("Insufficient stock to fulfil hold", variant_ids=[hold.variant_id])
    item.reserved = max(0, int(item.reserved) - int(hold.quantity))
    item.quantity = int(item.quantity) - int(hold.quantity)
    item.save(update_fields=["quantity", "reserved", "updated_at"])
    _record(item, StockMovement.TYPE_OUTBOUND, -int(hold.quantity), reason, reference or hold.reference)
    hold.state = StockReservation.STATE_CONVERTED
    hold.save(update_fields=["state", "updated_at"])


# Order-level holds


def find_shortages(lines: dict[int, int]) -> list[int]:
    """Return the variant ids whose available stock cannot cover the requested quantity."""

    items = {s.variant_id: s for s in StockItem.objects.filter(variant_id__in=list(lines))}
    return [
        variant_id
        for variant_id, quantity in lines.items()
        if variant_id not in items or quantity > items[variant_id].available
    ]


@transaction.atomic
def hold_stock(*, lines: dict[int, int], reference: str, expires_at=None) -> list[StockReservation]:
    """Place one soft hold per variant; all or nothing.

    Raises MovementError naming every variant that could not be held.
    """

    holds = []
    short = []
    for variant_id, quantity in sorted(lines.items()):
        try:
            with transaction.atomic():
                holds.append(
                    create_reservation(
                        variant_id=variant_id, quantity=quantity, reference=reference, expires_at=expires_at
                    )
                )
        except MovementError:
            short.append(variant_id)
    if short:
        raise MovementError("Insufficient available quantity to hold", variant_ids=short)
    return holds


@transaction.atomic
def release_holds(*, reference: str) -> int:
    """Release every active hold for ``reference``; returns the number released."""

    count = 0
    for res in StockReservation.objects.filter(reference=reference, state=StockReservation.STATE_ACTIVE):
        release_reservation(reservation_id=res.id)
        count += 1
    return count


@transaction.atomic
def commit_stock(*, lines: dict[int, int], reference: str) -> None:
    """Decrement stock for a settled order.

    Active holds are converted. Lines whose hold has expired or was released
    are decremented directly with a conditional update so that concurrent
    settlements can never drive available stock negative. Raises MovementError
    naming every short variant; the caller's transaction must roll back.
    """

    active = {
        r.variant_id: r
        for r in StockReservation.objects.select_for_update().filter(
            reference=reference, state=StockReservation.STATE_ACTIVE
        )
    }
    short = []
    for variant_id, quantity in sorted(lines.items()):
        hold = active.get(variant_id)
        if hold is not None and hold.quantity == quantity:
            try:
                with transaction.atomic():
                    convert_reservation_to_order(reservation_id=hold.id, reason="order paid", reference=reference)
            except MovementError:
                short.append(variant_id)
            continue
        if hold is not None:
            release_reservation(reservation_id=hold.id)
        updated = StockItem.objects.filter(
            variant_id=variant_id, quantity__gte=F("reserved") + quantity
        ).update(quantity=F("quantity") - quantity)
        if not updated:
            short.append(variant_id)
            continue
        item = StockItem.objects.get(variant_id=variant_id)
        _record(item, StockMovement.TYPE_OUTBOUND, -int(quantity), "order paid", reference)
    if short:
        logger.warning(
            "stock_commit_short",
            extra={"event": "stock_commit_short", "reference": reference, "variant_ids": short},
        )
        raise MovementError("Insufficient stock at settlement", variant_ids=short)


@transaction.atomic
def restock(*, lines: dict[int, int], reference: str, reason: str = "order cancelled") -> None:
    """Return previously committed stock with inbound movements."""

    for variant_id, quantity in sorted(lines.items()):
        if quantity <= 0:
            continue
        item = _locked_item(variant_id, create=True)
        apply_movement(
            stock_item_id=item.id,
            movement_type=StockMovement.TYPE_INBOUND,
            quantity=int(quantity),
            reason=reason,
            reference=reference,
        )
