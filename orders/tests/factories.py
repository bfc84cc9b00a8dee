from datetime import timedelta
from decimal import Decimal

import factory
from checkout.models import CheckoutSession
from common.choices import CheckoutState, PaymentMethod
from django.utils import timezone
from factory.django import DjangoModelFactory
from inventory.services import hold_stock
from orders.services import create_order

SHIPPING = {
    "name": "Mona Adel",
    "phone": "+201001234567",
    "street": "12 Tahrir St",
    "building": "4",
    "floor": "2",
    "apartment": "8",
    "city": "Cairo",
    "governorate": "Cairo",
    "postal_code": "11511",
}


def make_order(*, user, lines, promo=None, discount=Decimal("0.00"), shipping_cost=Decimal("50.00"), hold=True):
    """Create a PENDING order for ``lines`` ({variant: quantity}) the way checkout does."""

    priced = [
        {
            "variant_id": variant.id,
            "product_title": variant.product.title,
            "variant_name": variant.name,
            "sku": variant.sku,
            "unit_price": variant.price,
            "quantity": quantity,
        }
        for variant, quantity in lines.items()
    ]
    subtotal = sum((line["unit_price"] * line["quantity"] for line in priced), Decimal("0.00"))
    order = create_order(
        user=user,
        lines=priced,
        subtotal=subtotal,
        discount=discount,
        shipping_cost=shipping_cost,
        shipping=SHIPPING,
        payment_method=PaymentMethod.CARD,
        promo=promo,
    )
    if hold:
        hold_stock(
            lines=order.item_quantities(),
            reference=order.stock_reference,
            expires_at=timezone.now() + timedelta(minutes=60),
        )
    return order


class CheckoutSessionFactory(DjangoModelFactory):
    class Meta:
        model = CheckoutSession

    order = None
    user = factory.LazyAttribute(lambda o: o.order.user)
    subtotal = factory.LazyAttribute(lambda o: o.order.subtotal)
    discount = factory.LazyAttribute(lambda o: o.order.discount)
    shipping_cost = factory.LazyAttribute(lambda o: o.order.shipping_cost)
    total = factory.LazyAttribute(lambda o: o.order.total)
    payment_method = PaymentMethod.CARD
    provider_order_id = factory.Sequence(lambda n: str(900000 + n))
    state = CheckoutState.AWAITING_PAYMENT
