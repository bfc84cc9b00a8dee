"""Checkout orchestration.

`initialize_checkout` turns the caller's cart into a PENDING order with soft
stock holds in one transaction, then opens a payment with the provider
outside of it. No row lock or transaction is held across a gateway call.
Settlement happens later, when a signed provider callback arrives.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from cart.selectors import cart_snapshot
from catalog.selectors import get_variants_by_ids
from common.choices import CheckoutState, OrderStatus, PaymentMethod
from common.errors import (
    ConflictError,
    EmptyCart,
    ItemsUnavailable,
    NotFoundError,
    OutOfStock,
    PaymentNotStarted,
    PromoRejected,
    SignatureMismatch,
    UpstreamError,
    ValidationError,
)
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from inventory.services import MovementError, hold_stock
from orders.models import Order
from orders.services import SETTLED_STATUSES, apply_payment_outcome, create_order, lock_order, update_status
from payments.gateway import billing_data, get_gateway, normalize_callback, parse_outcome, to_cents
from promos.services import validate_promo

from .models import CheckoutSession

logger = logging.getLogger("bazaar.checkout")

# Attempts the provider may still report on
OPEN_SESSION_STATES = (CheckoutState.INITIATED, CheckoutState.AWAITING_PAYMENT, CheckoutState.GATEWAY_FAILED)


def shipping_cost_for(governorate: str) -> Decimal:
    """Flat shipping rate for a governorate, falling back to the default rate."""

    wanted = (governorate or "").strip().lower()
    for name, rate in settings.SHIPPING_RATES.items():
        if name.lower() == wanted:
            return Decimal(str(rate))
    return Decimal(str(settings.SHIPPING_DEFAULT_RATE))


def _describe_variants(variant_ids) -> list[str]:
    variants = get_variants_by_ids(variant_ids)
    names = []
    for variant_id in variant_ids:
        variant = variants.get(variant_id)
        names.append(f"{variant.product.title} ({variant.name})" if variant else f"item #{variant_id}")
    return names


def _priced_lines(user) -> list[dict]:
    """Revalidate the cart against the catalog and freeze its lines.

    Raises EmptyCart, ItemsUnavailable or OutOfStock; nothing is written.
    """

    snapshot = cart_snapshot(user=user)
    if snapshot.is_empty:
        raise EmptyCart()
    if snapshot.stale_variant_ids:
        raise ItemsUnavailable(_describe_variants(snapshot.stale_variant_ids))
    short = [f"{line.product_title} ({line.variant_name})" for line in snapshot.lines if not line.in_stock]
    if short:
        raise OutOfStock(short)
    return [
        {
            "variant_id": line.variant_id,
            "product_title": line.product_title,
            "variant_name": line.variant_name,
            "sku": line.sku,
            "unit_price": line.unit_price,
            "quantity": line.quantity,
        }
        for line in snapshot.lines
    ]


def _hold_expiry():
    return timezone.now() + timedelta(minutes=settings.CHECKOUT_HOLD_TTL_MINUTES)


def _order_shipping(order: Order) -> dict:
    fields = ("name", "phone", "street", "building", "floor", "apartment", "city", "governorate", "postal_code")
    return {name: getattr(order, f"shipping_{name}") for name in fields}


def _provider_items(order: Order) -> list[dict]:
    return [
        {
            "name": item.product_title,
            "amount_cents": to_cents(item.line_total),
            "description": item.variant_name or item.variant_sku,
            "quantity": item.quantity,
        }
        for item in order.items.all()
    ]


def _open_session(order: Order, user) -> CheckoutSession:
    return CheckoutSession.objects.create(
        order=order,
        user=user,
        items=[
            {
                "variant_id": item.variant_id,
                "product_title": item.product_title,
                "variant_name": item.variant_name,
                "sku": item.variant_sku,
                "unit_price": str(item.unit_price),
                "quantity": item.quantity,
            }
            for item in order.items.all()
        ],
        promo_code=order.promo_code,
        subtotal=order.subtotal,
        discount=order.discount,
        shipping_cost=order.shipping_cost,
        total=order.total,
        currency=order.currency,
        payment_method=order.payment_method,
        state=CheckoutState.INITIATED,
    )


def merchant_reference(order: Order, session: CheckoutSession) -> str:
    """Provider-side merchant order id; unique per payment attempt."""

    attempt = order.checkout_sessions.filter(id__lte=session.id).count()
    return order.number if attempt <= 1 else f"{order.number}-{attempt}"


def _start_payment(session: CheckoutSession, order: Order, *, wallet_number: str = "") -> CheckoutSession:
    """Open the provider transaction for a session; must run outside any transaction."""

    gateway = get_gateway()
    amount_cents = to_cents(order.total)
    billing = billing_data(shipping=_order_shipping(order), email=order.email)
    merchant_order_id = merchant_reference(order, session)
    try:
        if session.payment_method == PaymentMethod.WALLET:
            started = gateway.initiate_wallet_checkout(
                amount_cents=amount_cents,
                currency=order.currency,
                billing=billing,
                merchant_order_id=merchant_order_id,
                wallet_number=wallet_number,
            )
        else:
            started = gateway.initiate_payment(
                amount_cents=amount_cents,
                currency=order.currency,
                billing=billing,
                items=_provider_items(order),
                merchant_order_id=merchant_order_id,
            )
    except UpstreamError as exc:
        session.state = CheckoutState.GATEWAY_FAILED
        session.error = exc.message[:255]
        session.save(update_fields=["state", "error", "updated_at"])
        logger.error(
            "checkout_gateway_failed",
            extra={"event": "checkout_gateway_failed", "order_id": order.id, "session_id": session.id},
        )
        raise PaymentNotStarted(order.id, order.number) from exc

    session.provider_order_id = started.provider_order_id
    session.payment_token = started.payment_key
    session.redirect_url = started.iframe_url or started.redirect_url or ""
    session.state = CheckoutState.AWAITING_PAYMENT
    session.save(update_fields=["provider_order_id", "payment_token", "redirect_url", "state", "updated_at"])
    logger.info(
        "checkout_awaiting_payment",
        extra={
            "event": "checkout_awaiting_payment",
            "order_id": order.id,
            "session_id": session.id,
            "provider_order_id": session.provider_order_id,
        },
    )
    return session


def _result(order: Order, session: CheckoutSession) -> dict:
    result = {
        "order_id": order.id,
        "order_number": order.number,
        "tracking_token": order.tracking_token,
        "total": order.total,
        "payment_method": order.payment_method,
        "provider_order_id": session.provider_order_id,
    }
    if order.payment_method == PaymentMethod.WALLET:
        result["redirect_url"] = session.redirect_url
    else:
        result["iframe_url"] = session.redirect_url
    return result


def initialize_checkout(*, user, data: dict) -> dict:
    """Create a PENDING order from the caller's cart and open a payment for it.

    ``data`` holds shipping_address, payment_method and optionally
    wallet_number, promo_code and customer_note. Validation failures raise
    before anything is stored; a gateway failure raises PaymentNotStarted after
    the order is stored so payment can be retried.
    """

    lines = _priced_lines(user)
    subtotal = sum((line["unit_price"] * line["quantity"] for line in lines), Decimal("0.00"))
    currency = settings.CHECKOUT_CURRENCY

    promo = None
    discount = Decimal("0.00")
    code = (data.get("promo_code") or "").strip()
    if code:
        validation = validate_promo(code=code, subtotal=subtotal, user=user, currency=currency)
        if not validation.valid:
            raise PromoRejected(validation.message)
        promo = validation.promo
        discount = validation.discount_amount

    shipping = data["shipping_address"]
    payment_method = data["payment_method"]
    if payment_method == PaymentMethod.WALLET and not data.get("wallet_number"):
        raise ValidationError("A wallet number is required for wallet payments.", code="wallet_number_required")

    with transaction.atomic():
        order = create_order(
            user=user,
            lines=lines,
            subtotal=subtotal,
            discount=discount,
            shipping_cost=shipping_cost_for(shipping.get("governorate")),
            shipping=shipping,
            payment_method=payment_method,
            promo=promo,
            customer_note=data.get("customer_note", ""),
            currency=currency,
        )
        try:
            hold_stock(
                lines={line["variant_id"]: line["quantity"] for line in lines},
                reference=order.stock_reference,
                expires_at=_hold_expiry(),
            )
        except MovementError as exc:
            raise OutOfStock(_describe_variants(exc.variant_ids))
        session = _open_session(order, user)

    logger.info(
        "checkout_initialized",
        extra={
            "event": "checkout_initialized",
            "order_id": order.id,
            "user_id": user.id,
            "payment_method": payment_method,
            "promo_code": order.promo_code,
        },
    )
    _start_payment(session, order, wallet_number=data.get("wallet_number", ""))
    return _result(order, session)


def retry_checkout_payment(*, user, order_id: int, wallet_number: str = "") -> dict:
    """Open a fresh payment attempt for an unpaid order.

    A PAYMENT_FAILED order is moved back to PENDING first, which places new
    stock holds and fails with OutOfStock if they cannot be placed. Earlier
    attempts still open with the provider are marked superseded, so a late
    decline on them no longer fails the order.
    """

    try:
        order = Order.objects.get(pk=order_id, user=user)
    except Order.DoesNotExist:
        raise NotFoundError("Order not found.", code="order_not_found")
    if order.payment_method == PaymentMethod.WALLET and not wallet_number:
        raise ValidationError("A wallet number is required for wallet payments.", code="wallet_number_required")

    with transaction.atomic():
        order = lock_order(order.pk)
        if order.status == OrderStatus.PAYMENT_FAILED:
            order = update_status(
                order=order, new_status=OrderStatus.PENDING, note="Payment retry", actor=f"customer:{user.id}"
            )
        elif order.status != OrderStatus.PENDING:
            raise ConflictError("This order can no longer be paid.", code="not_payable")
        superseded = order.checkout_sessions.filter(state__in=OPEN_SESSION_STATES).update(
            state=CheckoutState.SUPERSEDED, updated_at=timezone.now()
        )
        session = _open_session(order, user)

    logger.info(
        "checkout_retry",
        extra={"event": "checkout_retry", "order_id": order.id, "session_id": session.id, "superseded": superseded},
    )
    _start_payment(session, order, wallet_number=wallet_number)
    return _result(order, session)


def process_payment_callback(*, payload: dict, signature: str | None) -> Order | None:
    """Verify and apply a provider transaction callback.

    The signature is checked before anything else; a mismatch raises
    SignatureMismatch without touching any state. Pending and non-transaction
    notifications are acknowledged and ignored. Returns the affected order.
    """

    flat = normalize_callback(payload)
    if not get_gateway().verify_callback(flat, signature):
        logger.warning(
            "payment_signature_rejected",
            extra={"event": "payment_signature_rejected", "provider_order_id": str(flat.get("order") or "")},
        )
        raise SignatureMismatch()

    if payload.get("type") not in (None, "TRANSACTION"):
        logger.info("payment_callback_ignored", extra={"event": "payment_callback_ignored", "type": payload["type"]})
        return None
    outcome = parse_outcome(flat)
    if outcome.pending:
        logger.info(
            "payment_pending",
            extra={"event": "payment_pending", "provider_order_id": outcome.provider_order_id},
        )
        return None
    return apply_payment_outcome(
        provider_order_id=outcome.provider_order_id,
        success=outcome.success,
        transaction_id=outcome.transaction_id,
        reason=outcome.reason,
    )


def resolve_return_redirect(*, params: dict, signature: str | None) -> str:
    """Pick the storefront page for a browser returning from the provider.

    Read-only. A verified success claim, or an order already settled, leads to
    the success page; anything else to the failure page.
    """

    frontend = settings.FRONTEND_URL.rstrip("/")
    flat = normalize_callback(params)
    outcome = parse_outcome(flat)
    verified = bool(signature) and get_gateway().verify_callback(flat, signature)
    if signature and not verified:
        logger.warning(
            "payment_return_signature_rejected",
            extra={"event": "payment_return_signature_rejected", "provider_order_id": outcome.provider_order_id},
        )
        return f"{frontend}/checkout/failed"

    session = (
        CheckoutSession.objects.select_related("order").filter(provider_order_id=outcome.provider_order_id).first()
        if outcome.provider_order_id
        else None
    )
    if session is None:
        return f"{frontend}/checkout/failed"
    order = session.order
    if (verified and outcome.success) or order.status in SETTLED_STATUSES:
        return f"{frontend}/checkout/success?order={order.number}"
    return f"{frontend}/checkout/failed?order={order.number}"
