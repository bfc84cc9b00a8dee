import pytest
from catalog.tests.factories import ProductVariantFactory
from common.choices import OrderStatus
from orders.services import update_status
from orders.tests.factories import make_order
from rest_framework.test import APIClient
from users.tests.factories import GuestFactory, StaffFactory, UserFactory


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def variant():
    return ProductVariantFactory(stock=20)


@pytest.mark.django_db
def test_order_list_shows_only_own_orders(variant):
    user, other = UserFactory(), UserFactory()
    mine = make_order(user=user, lines={variant: 1})
    make_order(user=other, lines={variant: 1})

    resp = _client(user).get("/api/v1/orders/")

    assert resp.status_code == 200
    assert [o["id"] for o in resp.json()["results"]] == [mine.id]


@pytest.mark.django_db
def test_order_list_filters_by_status(variant):
    user = UserFactory()
    paid = make_order(user=user, lines={variant: 1})
    make_order(user=user, lines={variant: 1})
    update_status(order=paid, new_status=OrderStatus.PAID)

    resp = _client(user).get("/api/v1/orders/", {"status": "paid"})

    assert [o["number"] for o in resp.json()["results"]] == [paid.number]


@pytest.mark.django_db
def test_guest_sees_own_orders_by_cookie(variant):
    guest = GuestFactory()
    order = make_order(user=guest, lines={variant: 1})
    client = APIClient()
    client.cookies["bazaar_guest"] = guest.guest_token

    resp = client.get(f"/api/v1/orders/{order.id}/")

    assert resp.status_code == 200
    assert resp.json()["shipping_address"]["city"] == "Cairo"


@pytest.mark.django_db
def test_orders_without_identity_are_not_authenticated():
    resp = APIClient().get("/api/v1/orders/")
    assert resp.status_code == 401


@pytest.mark.django_db
def test_order_detail_of_another_account_is_not_found(variant):
    order = make_order(user=UserFactory(), lines={variant: 1})
    assert _client(UserFactory()).get(f"/api/v1/orders/{order.id}/").status_code == 404


@pytest.mark.django_db
def test_order_detail_shows_frozen_totals_and_history(variant):
    user = UserFactory()
    order = make_order(user=user, lines={variant: 2})

    body = _client(user).get(f"/api/v1/orders/{order.id}/").json()

    assert body["subtotal"] == "200.00"
    assert body["shipping_cost"] == "50.00"
    assert body["total"] == "250.00"
    assert body["items"][0]["variant_sku"] == variant.sku
    assert body["history"][0]["status"] == "pending"


@pytest.mark.django_db
def test_customer_cancel_pending_and_rejects_shipped(variant):
    user = UserFactory()
    order = make_order(user=user, lines={variant: 1})
    client = _client(user)

    resp = client.post(f"/api/v1/orders/{order.id}/cancel/", {"reason": "Changed my mind"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["history"][-1]["note"] == "Changed my mind"

    shipped = make_order(user=user, lines={variant: 1})
    update_status(order=shipped, new_status=OrderStatus.PAID)
    update_status(order=shipped, new_status=OrderStatus.PROCESSING)
    update_status(order=shipped, new_status=OrderStatus.SHIPPED)
    resp = client.post(f"/api/v1/orders/{shipped.id}/cancel/", {}, format="json")
    assert resp.status_code == 409
    assert resp.json()["code"] == "not_cancellable"


@pytest.mark.django_db
def test_tracking_is_public_and_redacted(variant):
    order = make_order(user=UserFactory(email="private@example.com"), lines={variant: 1})

    resp = APIClient().get(f"/api/v1/track/{order.tracking_token}/")

    assert resp.status_code == 200
    body = resp.json()
    assert body["number"] == order.number
    assert set(body) == {
        "number",
        "status",
        "created_at",
        "paid_at",
        "delivered_at",
        "tracking_number",
        "tracking_url",
        "estimated_delivery",
        "shipping_city",
        "shipping_governorate",
        "items",
        "history",
    }
    assert set(body["items"][0]) == {"product_title", "variant_name", "quantity"}
    assert "private@example.com" not in resp.content.decode()
    assert "+201001234567" not in resp.content.decode()


@pytest.mark.django_db
def test_tracking_unknown_token_is_not_found():
    assert APIClient().get("/api/v1/track/nope/").status_code == 404


@pytest.mark.django_db
def test_admin_endpoints_reject_non_staff(variant):
    order = make_order(user=UserFactory(), lines={variant: 1})
    client = _client(UserFactory())

    assert client.get("/api/v1/admin/orders/").status_code == 403
    assert client.patch(
        f"/api/v1/admin/orders/{order.id}/status/", {"status": "cancelled"}, format="json"
    ).status_code == 403
    assert client.post(
        f"/api/v1/admin/orders/{order.id}/tracking/", {"tracking_number": "T"}, format="json"
    ).status_code == 403
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


@pytest.mark.django_db
def test_admin_lists_and_searches_all_orders(variant):
    first = make_order(user=UserFactory(), lines={variant: 1})
    make_order(user=UserFactory(), lines={variant: 1})
    client = _client(StaffFactory())

    assert client.get("/api/v1/admin/orders/").json()["count"] == 2
    found = client.get("/api/v1/admin/orders/", {"search": first.number}).json()["results"]
    assert [o["id"] for o in found] == [first.id]
    assert "user_id" in found[0]


@pytest.mark.django_db
def test_admin_status_update_and_illegal_transition(variant):
    staff = StaffFactory()
    order = make_order(user=UserFactory(), lines={variant: 1})
    client = _client(staff)

    ok = client.patch(
        f"/api/v1/admin/orders/{order.id}/status/", {"status": "paid", "note": "Bank transfer"}, format="json"
    )
    assert ok.status_code == 200
    assert ok.json()["status"] == "paid"
    assert order.history.last().actor == f"admin:{staff.id}"

    bad = client.patch(f"/api/v1/admin/orders/{order.id}/status/", {"status": "pending"}, format="json")
    assert bad.status_code == 409
    assert bad.json() == {"detail": "Cannot change order status from paid to pending.", "code": "illegal_transition"}


@pytest.mark.django_db
def test_admin_tracking_info_ships_order(variant):
    order = make_order(user=UserFactory(), lines={variant: 1})
    update_status(order=order, new_status=OrderStatus.PAID)
    update_status(order=order, new_status=OrderStatus.PROCESSING)

    resp = _client(StaffFactory()).post(
        f"/api/v1/admin/orders/{order.id}/tracking/",
        {
            "tracking_number": "TRK-9",
            "tracking_url": "https://carrier.example.com/TRK-9",
            "estimated_delivery": "2026-11-01",
        },
        format="json",
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "shipped"
    assert body["tracking_number"] == "TRK-9"
    assert body["estimated_delivery"] == "2026-11-01"
