import itertools

import pytest
from catalog.tests.factories import ProductVariantFactory
from common.choices import OrderStatus
from common.errors import IllegalTransition, OutOfStock
from inventory.models import StockItem, StockReservation
from inventory.services import commit_stock, hold_stock
from orders.models import AppendOnlyError, Order, OrderStatusHistory
from orders.services import TRANSITIONS, add_tracking_info, can_transition, update_status
from orders.tests.factories import make_order
from users.tests.factories import UserFactory

LEGAL = {
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PENDING, OrderStatus.PAYMENT_FAILED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.PAID, OrderStatus.PROCESSING),
    (OrderStatus.PAID, OrderStatus.CANCELLED),
    (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    (OrderStatus.PAYMENT_FAILED, OrderStatus.PENDING),
}
ILLEGAL = sorted(set(itertools.product(OrderStatus.values, repeat=2)) - LEGAL)


def test_transition_table_is_exactly_the_lifecycle():
    table = {(src, dst) for src, targets in TRANSITIONS.items() for dst in targets}
    assert table == LEGAL
    for src, dst in itertools.product(OrderStatus.values, repeat=2):
        assert can_transition(src, dst) == ((src, dst) in LEGAL)


def test_terminal_statuses_have_no_exits():
    assert TRANSITIONS[OrderStatus.DELIVERED] == frozenset()
    assert TRANSITIONS[OrderStatus.CANCELLED] == frozenset()


@pytest.mark.django_db
@pytest.mark.parametrize("current,requested", ILLEGAL)
def test_illegal_transition_leaves_order_untouched(current, requested):
    variant = ProductVariantFactory(stock=10)
    order = make_order(user=UserFactory(), lines={variant: 1}, hold=False)
    Order.objects.filter(pk=order.pk).update(status=current)
    history_before = OrderStatusHistory.objects.filter(order=order).count()

    with pytest.raises(IllegalTransition):
        update_status(order=order, new_status=requested, actor="admin:1")

    order.refresh_from_db()
    assert order.status == current
    assert OrderStatusHistory.objects.filter(order=order).count() == history_before


@pytest.mark.django_db
def test_full_happy_path_records_history_and_timestamps():
    variant = ProductVariantFactory(stock=10)
    order = make_order(user=UserFactory(), lines={variant: 2})

    update_status(order=order, new_status=OrderStatus.PAID, note="manual", actor="admin:1")
    update_status(order=order, new_status=OrderStatus.PROCESSING, actor="admin:1")
    add_tracking_info(order=order, tracking_number="TRK-1", tracking_url="https://carrier.example.com/TRK-1")
    update_status(order=order, new_status=OrderStatus.DELIVERED, actor="admin:1")

    order.refresh_from_db()
    assert order.status == OrderStatus.DELIVERED
    assert order.paid_at is not None
    assert order.delivered_at is not None
    assert order.tracking_number == "TRK-1"
    history = list(order.history.values_list("status", flat=True))
    assert history == ["pending", "paid", "processing", "shipped", "delivered"]
    assert order.history.get(status=OrderStatus.SHIPPED).note == "Tracking number: TRK-1"
    assert StockItem.objects.get(variant=variant).quantity == 8


@pytest.mark.django_db
def test_tracking_info_requires_processing():
    variant = ProductVariantFactory(stock=10)
    order = make_order(user=UserFactory(), lines={variant: 1})
    with pytest.raises(IllegalTransition):
        add_tracking_info(order=order, tracking_number="TRK-1")
    order.refresh_from_db()
    assert order.tracking_number == ""


@pytest.mark.django_db
def test_cancel_pending_releases_holds():
    variant = ProductVariantFactory(stock=5)
    order = make_order(user=UserFactory(), lines={variant: 3})
    assert StockItem.objects.get(variant=variant).reserved == 3

    update_status(order=order, new_status=OrderStatus.CANCELLED, actor="admin:1")

    item = StockItem.objects.get(variant=variant)
    assert (item.quantity, item.reserved) == (5, 0)


@pytest.mark.django_db
def test_cancel_paid_restocks():
    variant = ProductVariantFactory(stock=5)
    order = make_order(user=UserFactory(), lines={variant: 3})
    update_status(order=order, new_status=OrderStatus.PAID, actor="admin:1")
    assert StockItem.objects.get(variant=variant).quantity == 2

    update_status(order=order, new_status=OrderStatus.CANCELLED, actor="admin:1")

    item = StockItem.objects.get(variant=variant)
    assert (item.quantity, item.reserved) == (5, 0)


@pytest.mark.django_db
def test_payment_retry_places_fresh_holds():
    variant = ProductVariantFactory(stock=5)
    order = make_order(user=UserFactory(), lines={variant: 2})
    update_status(order=order, new_status=OrderStatus.PAYMENT_FAILED)
    assert StockItem.objects.get(variant=variant).reserved == 0

    update_status(order=order, new_status=OrderStatus.PENDING, note="Payment retry")

    assert StockItem.objects.get(variant=variant).reserved == 2
    assert StockReservation.objects.filter(
        reference=order.stock_reference, state=StockReservation.STATE_ACTIVE
    ).count() == 1


@pytest.mark.django_db
def test_payment_retry_without_stock_stays_failed():
    variant = ProductVariantFactory(stock=2)
    order = make_order(user=UserFactory(), lines={variant: 2})
    update_status(order=order, new_status=OrderStatus.PAYMENT_FAILED)
    hold_stock(lines={variant.id: 2}, reference="order:OTHER")
    commit_stock(lines={variant.id: 2}, reference="order:OTHER")

    with pytest.raises(OutOfStock):
        update_status(order=order, new_status=OrderStatus.PENDING)

    order.refresh_from_db()
    assert order.status == OrderStatus.PAYMENT_FAILED


@pytest.mark.django_db
def test_status_history_is_append_only():
    variant = ProductVariantFactory(stock=5)
    order = make_order(user=UserFactory(), lines={variant: 1})
    entry = order.history.get()

    entry.note = "rewritten"
    with pytest.raises(AppendOnlyError):
        entry.save()
    with pytest.raises(AppendOnlyError):
        entry.delete()
    assert order.history.get().note == "Order created"


@pytest.mark.django_db
def test_status_change_emails_customer_on_commit(django_capture_on_commit_callbacks, mailoutbox):
    variant = ProductVariantFactory(stock=5)
    user = UserFactory(email="buyer@example.com")
    order = make_order(user=user, lines={variant: 1})
    update_status(order=order, new_status=OrderStatus.PAID)
    mailoutbox.clear()

    with django_capture_on_commit_callbacks(execute=True):
        update_status(order=order, new_status=OrderStatus.PROCESSING)

    assert len(mailoutbox) == 1
    assert mailoutbox[0].to == ["buyer@example.com"]
    assert f"/track/{order.tracking_token}" in mailoutbox[0].body
