import threading
from typing import List

import pytest
from cart.selectors import cart_entries, get_cart
from cart.services import add_item, merge_carts
from catalog.tests.factories import ProductVariantFactory
from django.db import close_old_connections, connection
from users.tests.factories import GuestFactory, UserFactory


def _add_item_worker(barrier: threading.Barrier, user, variant_id: int, errors: List[Exception]):
    close_old_connections()
    barrier.wait()
    try:
        add_item(user=user, variant_id=variant_id, quantity=1)
    except Exception as exc:  # pragma: no cover
        errors.append(exc)
    finally:
        close_old_connections()


@pytest.mark.django_db(transaction=True)
def test_threaded_concurrent_adds_never_lose_increments():
    if connection.vendor == "sqlite":
        pytest.skip("SQLite lacks real concurrent transactions; run with DATABASE_ENGINE=postgres.")
    user = UserFactory()
    variant = ProductVariantFactory(stock=100)
    get_cart(user=user)

    workers = 8
    barrier = threading.Barrier(workers)
    errors: List[Exception] = []
    threads = [
        threading.Thread(target=_add_item_worker, args=(barrier, user, variant.id, errors)) for _ in range(workers)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert cart_entries(user=user) == {variant.id: workers}


@pytest.mark.django_db
def test_sequential_adds_accumulate():
    user = UserFactory()
    variant = ProductVariantFactory(stock=100)
    for _ in range(5):
        add_item(user=user, variant_id=variant.id, quantity=1)
    assert cart_entries(user=user) == {variant.id: 5}


@pytest.mark.django_db
def test_merge_is_all_or_nothing_when_interrupted(monkeypatch):
    a = ProductVariantFactory(stock=10)
    b = ProductVariantFactory(stock=10)
    dest, src = UserFactory(), GuestFactory()
    add_item(user=src, variant_id=a.id, quantity=1)
    add_item(user=src, variant_id=b.id, quantity=2)

    import cart.services as services

    real_increment = services._increment
    calls = []

    def flaky_increment(cart, variant_id, quantity):
        calls.append(variant_id)
        if len(calls) == 2:
            raise RuntimeError("interrupted")
        real_increment(cart, variant_id, quantity)

    monkeypatch.setattr(services, "_increment", flaky_increment)
    with pytest.raises(RuntimeError):
        merge_carts(source_user=src, dest_user=dest)

    assert cart_entries(user=dest) == {}
    assert cart_entries(user=src) == {a.id: 1, b.id: 2}
