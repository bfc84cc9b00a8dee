"""Order lifecycle: creation, status transitions and payment settlement.

Every status change goes through `_transition`, which checks the transition
table, appends a history entry and logs `order_status_changed`. Callers hold
the order row lock (`select_for_update`) for the whole unit of work.
"""

import hashlib
import json
import logging
import secrets
import string
import time
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Optional, Tuple

from cart.services import clear_cart
from checkout.models import CheckoutSession
from common.choices import CheckoutState, OrderStatus
from common.errors import (
    ConflictError,
    IllegalTransition,
    NotFoundError,
    OutOfStock,
    UnknownPaymentReference,
    UsageLimitReached,
)
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from inventory.services import MovementError, commit_stock, hold_stock, release_holds, restock
from promos.services import redeem_promo

from .emails import send_order_paid_email, send_order_status_email
from .models import IdempotencyKey, Order, OrderItem, OrderStatusHistory

logger = logging.getLogger("bazaar.orders")

TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.PAYMENT_FAILED, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.PENDING}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

# Statuses a customer may still cancel from
CUSTOMER_CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PAID)

# Statuses at which a payment has already been taken into account
SETTLED_STATUSES = (
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

SYSTEM_ACTOR = "system"


def can_transition(current: str, new_status: str) -> bool:
    return new_status in TRANSITIONS.get(current, frozenset())


def _base36(value: int) -> str:
    digits = string.digits + string.ascii_uppercase
    out = ""
    while value:
        value, rem = divmod(value, 36)
        out = digits[rem] + out
    return out or "0"


def generate_order_number() -> str:
    """Return a human-readable order number such as ``ORD-M1ABCDEF-1A2B3C4D``."""

    return f"ORD-{_base36(int(time.time() * 1000))}-{uuid.uuid4().hex[:8].upper()}"


def new_tracking_token() -> str:
    return secrets.token_urlsafe(24)


def _skus(order: Order, variant_ids) -> list[str]:
    wanted = set(variant_ids)
    return [item.variant_sku for item in order.items.all() if item.variant_id in wanted]


@transaction.atomic
def create_order(
    *,
    user,
    lines: list[dict],
    subtotal: Decimal,
    discount: Decimal,
    shipping_cost: Decimal,
    shipping: dict,
    payment_method: str,
    promo=None,
    customer_note: str = "",
    currency: str = "EGP",
) -> Order:
    """Create a PENDING order with its frozen items and first history entry.

    ``lines`` are dicts with variant_id, product_title, variant_name, sku,
    unit_price and quantity, already priced by the caller.
    """

    total = max(subtotal - discount, Decimal("0.00")) + shipping_cost
    order = Order.objects.create(
        user=user,
        number=generate_order_number(),
        tracking_token=new_tracking_token(),
        email=getattr(user, "email", None),
        status=OrderStatus.PENDING,
        subtotal=subtotal,
        discount=discount,
        shipping_cost=shipping_cost,
        total=total,
        currency=currency,
        promo=promo,
        promo_code=promo.code if promo else "",
        payment_method=payment_method,
        customer_note=customer_note or "",
        **{f"shipping_{k}": v or "" for k, v in shipping.items()},
    )
    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                variant_id=line["variant_id"],
                product_title=line["product_title"],
                variant_name=line.get("variant_name", ""),
                variant_sku=line["sku"],
                quantity=line["quantity"],
                unit_price=line["unit_price"],
                line_total=line["unit_price"] * line["quantity"],
            )
            for line in lines
        ]
    )
    OrderStatusHistory.objects.create(order=order, status=order.status, note="Order created", actor=SYSTEM_ACTOR)
    logger.info(
        "order_created",
        extra={
            "event": "order_created",
            "order_id": order.id,
            "order_number": order.number,
            "user_id": getattr(user, "id", None),
            "total": str(order.total),
        },
    )
    return order


def _transition(order: Order, new_status: str, *, note: str = "", actor: str = SYSTEM_ACTOR) -> str:
    """Move a locked order to ``new_status`` and append history; returns the previous status."""

    previous = order.status
    if not can_transition(previous, new_status):
        raise IllegalTransition(previous, new_status)
    order.status = new_status
    update_fields = ["status", "updated_at"]
    if new_status == OrderStatus.DELIVERED:
        order.delivered_at = timezone.now()
        update_fields.append("delivered_at")
    if new_status == OrderStatus.PAID and order.paid_at is None:
        order.paid_at = timezone.now()
        update_fields.append("paid_at")
    order.save(update_fields=update_fields)
    OrderStatusHistory.objects.create(order=order, status=new_status, note=note or "", actor=actor or "")
    logger.info(
        "order_status_changed",
        extra={
            "event": "order_status_changed",
            "order_id": order.id,
            "user_id": order.user_id,
            "status_from": previous,
            "status_to": new_status,
            "actor": actor,
        },
    )
    return previous


def _apply_stock_effects(order: Order, previous: str, new_status: str) -> None:
    reference = order.stock_reference
    if new_status == OrderStatus.CANCELLED and previous == OrderStatus.PAID:
        restock(lines=order.item_quantities(), reference=reference)
    elif new_status in (OrderStatus.CANCELLED, OrderStatus.PAYMENT_FAILED) and previous == OrderStatus.PENDING:
        release_holds(reference=reference)
    elif new_status == OrderStatus.PENDING and previous == OrderStatus.PAYMENT_FAILED:
        expires_at = timezone.now() + timedelta(minutes=settings.CHECKOUT_HOLD_TTL_MINUTES)
        try:
            hold_stock(lines=order.item_quantities(), reference=reference, expires_at=expires_at)
        except MovementError as exc:
            raise OutOfStock(_skus(order, exc.variant_ids))
    elif new_status == OrderStatus.PAID:
        try:
            commit_stock(lines=order.item_quantities(), reference=reference)
        except MovementError as exc:
            raise OutOfStock(_skus(order, exc.variant_ids))


def lock_order(order_id: int) -> Order:
    try:
        return Order.objects.select_for_update().get(pk=order_id)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found.", code="order_not_found")


@transaction.atomic
def update_status(*, order: Order, new_status: str, note: str = "", actor: str = SYSTEM_ACTOR) -> Order:
    """Validate and apply a status change with its stock side effects.

    An illegal transition raises IllegalTransition and leaves the order as it
    was. The customer is notified once the transaction commits.
    """

    locked = lock_order(order.pk)
    previous = _transition(locked, new_status, note=note, actor=actor)
    _apply_stock_effects(locked, previous, new_status)
    transaction.on_commit(lambda: send_order_status_email(locked))
    return locked


@transaction.atomic
def add_tracking_info(
    *, order: Order, tracking_number: str, tracking_url: str = "", estimated_delivery=None, actor: str = SYSTEM_ACTOR
) -> Order:
    """Attach shipment tracking and move a PROCESSING order to SHIPPED."""

    locked = lock_order(order.pk)
    locked.tracking_number = tracking_number
    locked.tracking_url = tracking_url or ""
    locked.estimated_delivery = estimated_delivery
    _transition(locked, OrderStatus.SHIPPED, note=f"Tracking number: {tracking_number}", actor=actor)
    locked.save(update_fields=["tracking_number", "tracking_url", "estimated_delivery", "updated_at"])
    transaction.on_commit(lambda: send_order_status_email(locked))
    return locked


def cancel_order_for_customer(*, order: Order, user, reason: str = "") -> Order:
    """Cancel an order on behalf of its owner; only PENDING and PAID orders qualify."""

    if order.user_id != getattr(user, "id", None):
        raise NotFoundError("Order not found.", code="order_not_found")
    if order.status not in CUSTOMER_CANCELLABLE:
        raise ConflictError("Order cannot be cancelled at this stage.", code="not_cancellable")
    return update_status(
        order=order,
        new_status=OrderStatus.CANCELLED,
        note=reason or "Cancelled by customer",
        actor=f"customer:{user.id}",
    )


def get_order_by_tracking_token(token: str) -> Order:
    try:
        return Order.objects.prefetch_related("items", "history").get(tracking_token=token)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found.", code="order_not_found")


# Payment settlement


def _record_transaction(order: Order, transaction_id: str) -> None:
    if transaction_id and not order.provider_transaction_id:
        order.provider_transaction_id = transaction_id
        order.save(update_fields=["provider_transaction_id", "updated_at"])


def _settle_success(order: Order, transaction_id: str) -> None:
    reference = order.stock_reference
    _record_transaction(order, transaction_id)
    try:
        with transaction.atomic():
            commit_stock(lines=order.item_quantities(), reference=reference)
    except MovementError as exc:
        release_holds(reference=reference)
        skus = ", ".join(_skus(order, exc.variant_ids))
        _transition(
            order, OrderStatus.CANCELLED, note=f"Paid but out of stock at settlement ({skus}); refund required"
        )
        logger.error(
            "settlement_stock_short",
            extra={"event": "settlement_stock_short", "order_id": order.id, "transaction_id": transaction_id},
        )
        return

    note = "Payment received"
    if order.promo_id:
        try:
            redeem_promo(promo_id=order.promo_id)
        except (UsageLimitReached, NotFoundError):
            note += f". Promo code {order.promo_code} could not be redeemed; discounted amount was charged"
    _transition(order, OrderStatus.PAID, note=note)
    clear_cart(user=order.user)
    transaction.on_commit(lambda: send_order_paid_email(order))


def _flag_refund(order: Order, note: str, log_extra: dict) -> None:
    """Keep the status but leave a history entry for a payment that must be refunded."""

    OrderStatusHistory.objects.create(order=order, status=order.status, note=note, actor=SYSTEM_ACTOR)
    logger.error("payment_refund_required", extra={"event": "payment_refund_required", **log_extra})


def _is_live_attempt(order: Order, session: CheckoutSession) -> bool:
    latest_id = order.checkout_sessions.order_by("-id").values_list("id", flat=True).first()
    return session.id == latest_id and session.state == CheckoutState.AWAITING_PAYMENT


def _apply_success(order: Order, session: CheckoutSession, transaction_id: str, log_extra: dict) -> None:
    if order.status == OrderStatus.PENDING:
        _settle_success(order, transaction_id)
    elif order.status == OrderStatus.PAYMENT_FAILED:
        # The card was declined earlier on and then accepted; holds are gone
        _transition(order, OrderStatus.PENDING, note="Payment accepted after a declined attempt")
        _settle_success(order, transaction_id)
    elif order.status == OrderStatus.CANCELLED:
        _flag_refund(order, "Payment received after cancellation; refund required", log_extra)
    else:
        _flag_refund(order, "Second payment received for a paid order; refund required", log_extra)


@transaction.atomic
def apply_payment_outcome(
    *, provider_order_id: str, success: bool, transaction_id: str = "", reason: str = ""
) -> Order:
    """Apply a verified provider outcome to the order it belongs to.

    Each payment attempt (checkout session) is settled at most once, so
    replays change nothing. A success is never dropped: it pays a PENDING
    order, revives a PAYMENT_FAILED one, and otherwise leaves a refund note.
    A failure only fails the order when it comes from the order's live
    attempt. An unknown provider reference raises UnknownPaymentReference.
    """

    try:
        session = CheckoutSession.objects.select_for_update().get(provider_order_id=str(provider_order_id))
    except CheckoutSession.DoesNotExist:
        logger.critical(
            "payment_reference_unknown",
            extra={"event": "payment_reference_unknown", "provider_order_id": str(provider_order_id)},
        )
        raise UnknownPaymentReference(str(provider_order_id))

    order = lock_order(session.order_id)
    log_extra = {
        "order_id": order.id,
        "session_id": session.id,
        "provider_order_id": str(provider_order_id),
        "transaction_id": transaction_id,
        "success": success,
    }
    if session.state == CheckoutState.SETTLED:
        logger.debug("payment_duplicate", extra={"event": "payment_duplicate", **log_extra})
        return order

    if success:
        _apply_success(order, session, transaction_id, log_extra)
        session.state = CheckoutState.SETTLED
    elif order.status == OrderStatus.PENDING and _is_live_attempt(order, session):
        _transition(order, OrderStatus.PAYMENT_FAILED, note=reason or "Payment failed")
        release_holds(reference=order.stock_reference)
        session.state = CheckoutState.FAILED
    else:
        logger.info(
            "payment_attempt_failed", extra={"event": "payment_attempt_failed", "status": order.status, **log_extra}
        )
        session.state = CheckoutState.FAILED
    session.save(update_fields=["state", "updated_at"])
    logger.info("payment_settled", extra={"event": "payment_settled", "status": order.status, **log_extra})
    return order


# Idempotent request handling


def with_idempotency(
    *,
    key: str,
    user,
    path: str,
    method: str,
    handler: Callable[[], Tuple[dict, int]],
    request_hash: Optional[str] = None,
    resume: Optional[Callable[[dict], Tuple[dict, int]]] = None,
) -> Tuple[dict, int]:
    """Run handler idempotently and persist its response for the given key and scope.

    - Scope is derived from the caller: "user:<id>" for any resolved account; otherwise "anon".
    - If a record exists and the stored `request_hash` differs from the provided one, returns 409.
    - If a record exists but response is not yet stored, returns 409 to indicate in-progress.
    - Responses with a 5xx status are not stored so the caller can retry with the same key,
      unless `resume` is given: then a stored 5xx response is handed to `resume` on the next
      request, which continues the work it describes instead of starting over.
    """

    scope = f"user:{getattr(user, 'id', None)}" if getattr(user, "id", None) else "anon"
    method = str(method).upper()
    path = str(path)

    try:
        with transaction.atomic():
            idem = IdempotencyKey.objects.create(
                key=key,
                user=user if getattr(user, "id", None) else None,
                scope=scope,
                path=path,
                method=method,
                request_hash=request_hash,
                expires_at=timezone.now() + timedelta(hours=24),
            )
    except IntegrityError:
        idem = IdempotencyKey.objects.get(key=key, scope=scope, path=path, method=method)
        # Guard against key reuse with different fingerprints
        if idem.request_hash and request_hash and idem.request_hash != request_hash:
            body = {"detail": "Idempotency key reused with different request payload", "code": "idempotency_mismatch"}
            return body, 409
        if idem.response_json is None or idem.response_code is None:
            return {"detail": "Request in progress", "code": "in_progress"}, 409
        if resume is None or int(idem.response_code) < 500:
            return idem.response_json, int(idem.response_code)
        return _resume_stored(idem, resume)

    try:
        body, code = handler()
    except Exception:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        raise

    _store_response(idem, body, code, keep_failures=resume is not None)
    return body, code


def _store_response(idem: IdempotencyKey, body: dict, code: int, *, keep_failures: bool) -> None:
    if code >= 500 and not keep_failures:
        IdempotencyKey.objects.filter(id=idem.id).delete()
        return
    IdempotencyKey.objects.filter(id=idem.id).update(response_json=_json_safe(body), response_code=code)


def _resume_stored(idem: IdempotencyKey, resume: Callable[[dict], Tuple[dict, int]]) -> Tuple[dict, int]:
    stored_body, stored_code = idem.response_json, idem.response_code
    # Claim the record so concurrent replays do not resume twice
    claimed = IdempotencyKey.objects.filter(id=idem.id, response_code=stored_code).update(
        response_json=None, response_code=None
    )
    if not claimed:
        return {"detail": "Request in progress", "code": "in_progress"}, 409
    try:
        body, code = resume(stored_body)
    except Exception:
        IdempotencyKey.objects.filter(id=idem.id).update(response_json=stored_body, response_code=stored_code)
        raise
    _store_response(idem, body, code, keep_failures=True)
    return body, code


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def compute_request_hash(data: Optional[dict]) -> Optional[str]:
    """Compute a canonical SHA256 hash of the request body.

    Uses sorted keys JSON representation to stabilize the hash across equivalent payloads.
    Returns None when data is falsy.
    """
    if not data:
        return None
    try:
        payload = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return None
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def purge_expired_idempotency_keys() -> int:
    qs = IdempotencyKey.objects.filter(expires_at__lt=timezone.now())
    count = qs.count()
    qs.delete()
    return count
