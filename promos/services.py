"""Promo engine: advisory validation and authoritative redemption.

`validate_promo` is read-only and may be called as often as the storefront
likes. `redeem_promo` consumes one use with a single conditional UPDATE and
is only invoked when an order settles; it is the only place the use count
changes.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from common.choices import OrderStatus
from common.errors import NotFoundError, UsageLimitReached
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .discounts import quantize
from .models import PromoCode

logger = logging.getLogger("bazaar.promos")

# Orders that count against a per-account limit: the code was actually redeemed
REDEEMED_ORDER_STATUSES = (
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

REASON_MESSAGES = {
    "code_not_found": "Invalid promo code",
    "not_yet_active": "This promo code is not yet active",
    "expired": "This promo code has expired",
    "usage_limit_reached": "This promo code has reached its usage limit",
    "account_limit_reached": "You have already used this promo code",
    "below_minimum": "Minimum order amount is {minimum} {currency}",
}


@dataclass(frozen=True)
class PromoValidation:
    valid: bool
    discount_amount: Decimal
    message: str
    reason: str | None = None
    promo: PromoCode | None = None


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def get_active_promo(code: str) -> PromoCode | None:
    try:
        return PromoCode.objects.get(code=normalize_code(code), is_active=True)
    except PromoCode.DoesNotExist:
        return None


def _reject(reason: str, promo=None, **fmt) -> PromoValidation:
    return PromoValidation(
        valid=False,
        discount_amount=Decimal("0.00"),
        message=REASON_MESSAGES[reason].format(**fmt),
        reason=reason,
        promo=promo,
    )


def _account_uses(promo: PromoCode, user) -> int:
    return user.orders.filter(promo=promo, status__in=REDEEMED_ORDER_STATUSES).count()


def validate_promo(*, code: str, subtotal: Decimal, user=None, currency: str = "EGP", now=None) -> PromoValidation:
    """Check whether ``code`` could be applied to a cart worth ``subtotal``.

    Checks run in order and stop at the first failure: existence, validity
    window, total usage, per-account usage, minimum cart value. The result is
    advisory; a concurrent checkout may still win the last use.
    """

    now = now or timezone.now()
    promo = get_active_promo(code)
    if promo is None:
        return _reject("code_not_found")
    if promo.starts_at and promo.starts_at > now:
        return _reject("not_yet_active", promo)
    if promo.expires_at and promo.expires_at < now:
        return _reject("expired", promo)
    if promo.max_uses is not None and promo.use_count >= promo.max_uses:
        return _reject("usage_limit_reached", promo)
    if user is not None and promo.max_uses_per_account and getattr(user, "pk", None):
        if _account_uses(promo, user) >= promo.max_uses_per_account:
            return _reject("account_limit_reached", promo)
    subtotal = quantize(subtotal)
    if subtotal < promo.minimum():
        return _reject("below_minimum", promo, minimum=promo.minimum(), currency=currency)

    amount = promo.discount.compute(subtotal)
    return PromoValidation(
        valid=True,
        discount_amount=amount,
        message=f"Promo code applied! You save {amount} {currency}",
        promo=promo,
    )


@transaction.atomic
def redeem_promo(*, promo_id: int) -> None:
    """Consume one use of a promo code.

    Single conditional UPDATE: the increment only happens while the count is
    below the limit, so concurrent redemptions can never overshoot. Raises
    UsageLimitReached when the last use was already taken.
    """

    qs = PromoCode.objects.filter(id=promo_id)
    limited = qs.filter(max_uses__isnull=False, use_count__lt=F("max_uses"))
    updated = limited.update(use_count=F("use_count") + 1, updated_at=timezone.now())
    if not updated:
        updated = qs.filter(max_uses__isnull=True).update(use_count=F("use_count") + 1, updated_at=timezone.now())
    if updated:
        logger.info("promo_redeemed", extra={"event": "promo_redeemed", "promo_id": promo_id})
        return
    if not qs.exists():
        raise NotFoundError("Promo code not found.", code="code_not_found")
    logger.warning("promo_race_lost", extra={"event": "promo_race_lost", "promo_id": promo_id})
    raise UsageLimitReached()


def create_promo(**fields) -> PromoCode:
    fields["code"] = normalize_code(fields.get("code"))
    promo = PromoCode.objects.create(**fields)
    logger.info("promo_created", extra={"event": "promo_created", "promo_id": promo.id, "code": promo.code})
    return promo


def deactivate_promo(*, promo_id: int) -> PromoCode:
    try:
        promo = PromoCode.objects.get(id=promo_id)
    except PromoCode.DoesNotExist:
        raise NotFoundError("Promo code not found.", code="code_not_found")
    if promo.is_active:
        promo.is_active = False
        promo.save(update_fields=["is_active", "updated_at"])
        logger.info("promo_deactivated", extra={"event": "promo_deactivated", "promo_id": promo.id})
    return promo
