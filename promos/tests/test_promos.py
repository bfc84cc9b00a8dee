from datetime import timedelta
from decimal import Decimal

import pytest
from catalog.tests.factories import ProductVariantFactory
from common.choices import OrderStatus
from common.errors import NotFoundError, UsageLimitReached
from django.db import IntegrityError, transaction
from django.utils import timezone
from orders.models import Order
from orders.tests.factories import make_order
from promos.discounts import FixedAmountDiscount, PercentageDiscount
from promos.models import PromoCode
from promos.services import deactivate_promo, redeem_promo, validate_promo
from promos.tests.factories import PromoCodeFactory
from users.tests.factories import UserFactory


def test_percentage_discount_caps_and_quantizes():
    assert PercentageDiscount(value=Decimal("10")).compute(Decimal("1000.00")) == Decimal("100.00")
    assert PercentageDiscount(value=Decimal("10"), cap=Decimal("50")).compute(Decimal("1000.00")) == Decimal("50.00")
    assert PercentageDiscount(value=Decimal("15")).compute(Decimal("33.33")) == Decimal("5.00")


def test_fixed_discount_never_exceeds_subtotal():
    assert FixedAmountDiscount(value=Decimal("200")).compute(Decimal("150.00")) == Decimal("150.00")
    assert FixedAmountDiscount(value=Decimal("200")).compute(Decimal("0")) == Decimal("0.00")


@pytest.mark.django_db
def test_save10_on_1000_gives_100_off():
    PromoCodeFactory(code="SAVE10", discount_value=Decimal("10"))

    result = validate_promo(code="save10", subtotal=Decimal("1000.00"))

    assert result.valid
    assert result.discount_amount == Decimal("100.00")
    assert Decimal("1000.00") - result.discount_amount == Decimal("900.00")
    assert result.message == "Promo code applied! You save 100.00 EGP"


@pytest.mark.django_db
def test_unknown_and_deactivated_codes_are_not_found():
    promo = PromoCodeFactory(code="GONE")
    deactivate_promo(promo_id=promo.id)

    for code in ("NOPE", "GONE"):
        result = validate_promo(code=code, subtotal=Decimal("100"))
        assert (result.valid, result.reason) == (False, "code_not_found")
        assert result.discount_amount == Decimal("0.00")


@pytest.mark.django_db
def test_window_checks():
    now = timezone.now()
    PromoCodeFactory(code="LATER", starts_at=now + timedelta(days=1))
    PromoCodeFactory(code="OLD", starts_at=now - timedelta(days=10), expires_at=now - timedelta(days=1))

    assert validate_promo(code="LATER", subtotal=Decimal("100")).reason == "not_yet_active"
    assert validate_promo(code="OLD", subtotal=Decimal("100")).reason == "expired"


@pytest.mark.django_db
def test_checks_stop_at_first_failure():
    now = timezone.now()
    PromoCodeFactory(
        code="BOTH",
        expires_at=now - timedelta(minutes=1),
        starts_at=now - timedelta(days=2),
        min_cart_value=Decimal("5000"),
    )
    assert validate_promo(code="BOTH", subtotal=Decimal("100")).reason == "expired"


@pytest.mark.django_db
def test_usage_limit_and_minimum():
    PromoCodeFactory(code="USED", max_uses=1)
    PromoCode.objects.filter(code="USED").update(use_count=1)
    PromoCodeFactory(code="BIG", min_cart_value=Decimal("500"))

    assert validate_promo(code="USED", subtotal=Decimal("1000")).reason == "usage_limit_reached"
    below = validate_promo(code="BIG", subtotal=Decimal("499.99"))
    assert below.reason == "below_minimum"
    assert below.message == "Minimum order amount is 500.00 EGP"


@pytest.mark.django_db
def test_per_account_limit_counts_only_redeemed_orders():
    user = UserFactory()
    variant = ProductVariantFactory(stock=10)
    promo = PromoCodeFactory(code="ONCE", max_uses_per_account=1)
    order = make_order(user=user, lines={variant: 1}, promo=promo)

    assert validate_promo(code="ONCE", subtotal=Decimal("100"), user=user).valid

    Order.objects.filter(pk=order.pk).update(status=OrderStatus.PAID)
    assert validate_promo(code="ONCE", subtotal=Decimal("100"), user=user).reason == "account_limit_reached"
    assert validate_promo(code="ONCE", subtotal=Decimal("100"), user=UserFactory()).valid


@pytest.mark.django_db
def test_validation_does_not_consume_uses():
    promo = PromoCodeFactory(code="FREE", max_uses=1)
    for _ in range(3):
        assert validate_promo(code="FREE", subtotal=Decimal("100")).valid
    promo.refresh_from_db()
    assert promo.use_count == 0


@pytest.mark.django_db
def test_redeem_last_use_only_once():
    promo = PromoCodeFactory(code="LAST", max_uses=1)

    redeem_promo(promo_id=promo.id)
    with pytest.raises(UsageLimitReached):
        redeem_promo(promo_id=promo.id)

    promo.refresh_from_db()
    assert promo.use_count == 1


@pytest.mark.django_db
def test_redeem_unlimited_and_missing():
    promo = PromoCodeFactory(code="MANY", max_uses=None)
    for _ in range(3):
        redeem_promo(promo_id=promo.id)
    promo.refresh_from_db()
    assert promo.use_count == 3

    with pytest.raises(NotFoundError):
        redeem_promo(promo_id=999999)


@pytest.mark.django_db
def test_use_count_can_never_exceed_max_uses():
    promo = PromoCodeFactory(code="CAP", max_uses=1)
    with pytest.raises(IntegrityError), transaction.atomic():
        PromoCode.objects.filter(pk=promo.pk).update(use_count=2)
