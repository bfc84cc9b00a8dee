from decimal import Decimal

import pytest
from cart.selectors import cart_entries
from cart.services import add_item
from catalog.tests.factories import ProductVariantFactory
from checkout.models import CheckoutSession
from common.choices import CheckoutState, OrderStatus
from inventory.models import StockItem
from orders.models import Order
from orders.tests.factories import SHIPPING
from payments.gateway import compute_signature, normalize_callback
from promos.models import PromoCode
from promos.tests.factories import PromoCodeFactory
from rest_framework.test import APIClient
from users.tests.factories import UserFactory

CALLBACK_URL = "/api/v1/checkout/callback/"
REJECTED = {"detail": "Request rejected.", "code": "rejected"}


@pytest.fixture
def started(fake_gateway):
    """A card checkout that is waiting for the provider."""

    user = UserFactory(email="buyer@example.com")
    variant = ProductVariantFactory(price=Decimal("500.00"), stock=5)
    add_item(user=user, variant_id=variant.id, quantity=2)
    PromoCodeFactory(code="SAVE10", discount_value=Decimal("10"))
    client = APIClient()
    client.force_authenticate(user=user)
    body = client.post(
        "/api/v1/checkout/init/",
        {
            "shipping_address": SHIPPING,
            "payment_method": "card",
            "promo_code": "SAVE10",
        },
        format="json",
    ).json()
    order = Order.objects.get(pk=body["order_id"])
    return order, body["provider_order_id"], variant, user


def _envelope(provider_order_id, order_number, *, success=True, pending=False, kind="TRANSACTION"):
    return {
        "type": kind,
        "obj": {
            "id": 991,
            "pending": pending,
            "success": success,
            "amount_cents": 95000,
            "currency": "EGP",
            "is_refunded": False,
            "created_at": "2026-10-18T10:00:00",
            "order": {"id": int(provider_order_id), "merchant_order_id": order_number},
            "source_data": {"pan": "2346", "type": "card", "sub_type": "MasterCard"},
            "data": {"message": "Approved" if success else "Do not honour"},
        },
    }


def _post(payload, signature):
    url = f"{CALLBACK_URL}?hmac={signature}" if signature is not None else CALLBACK_URL
    return APIClient().post(url, payload, format="json")


def _signed(payload):
    return compute_signature(normalize_callback(payload))


@pytest.mark.django_db
def test_success_callback_settles_order(started, django_capture_on_commit_callbacks, mailoutbox):
    order, provider_order_id, variant, user = started
    payload = _envelope(provider_order_id, order.number)

    with django_capture_on_commit_callbacks(execute=True):
        resp = _post(payload, _signed(payload))

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    order.refresh_from_db()
    assert order.status == OrderStatus.PAID
    assert order.provider_transaction_id == "991"
    stock = StockItem.objects.get(variant=variant)
    assert (stock.quantity, stock.reserved) == (3, 0)
    assert PromoCode.objects.get(code="SAVE10").use_count == 1
    assert cart_entries(user=user) == {}
    assert CheckoutSession.objects.get(order=order).state == CheckoutState.SETTLED
    assert [m.to for m in mailoutbox] == [["buyer@example.com"]]


@pytest.mark.django_db
def test_signature_in_header_is_accepted(started):
    order, provider_order_id, _, _ = started
    payload = _envelope(provider_order_id, order.number)

    resp = APIClient().post(CALLBACK_URL, payload, format="json", HTTP_HMAC=_signed(payload))

    assert resp.status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PAID


@pytest.mark.django_db
def test_duplicate_callback_changes_nothing(started):
    order, provider_order_id, variant, _ = started
    payload = _envelope(provider_order_id, order.number)
    signature = _signed(payload)
    _post(payload, signature)

    resp = _post(payload, signature)

    assert resp.status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PAID
    assert order.history.filter(status=OrderStatus.PAID).count() == 1
    assert StockItem.objects.get(variant=variant).quantity == 3
    assert PromoCode.objects.get(code="SAVE10").use_count == 1


@pytest.mark.django_db
@pytest.mark.parametrize("signature", [None, "", "deadbeef"])
def test_bad_signature_is_rejected_without_changes(started, signature):
    order, provider_order_id, variant, _ = started
    payload = _envelope(provider_order_id, order.number)

    resp = _post(payload, signature)

    assert resp.status_code == 400
    assert resp.json() == REJECTED
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING
    assert StockItem.objects.get(variant=variant).reserved == 2


@pytest.mark.django_db
def test_tampered_amount_is_rejected(started):
    order, provider_order_id, _, _ = started
    payload = _envelope(provider_order_id, order.number)
    signature = _signed(payload)
    payload["obj"]["amount_cents"] = 100

    assert _post(payload, signature).status_code == 400


@pytest.mark.django_db
def test_failure_callback_releases_holds(started):
    order, provider_order_id, variant, _ = started
    payload = _envelope(provider_order_id, order.number, success=False)

    resp = _post(payload, _signed(payload))

    assert resp.status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PAYMENT_FAILED
    assert order.history.get(status=OrderStatus.PAYMENT_FAILED).note == "Do not honour"
    stock = StockItem.objects.get(variant=variant)
    assert (stock.quantity, stock.reserved) == (5, 0)
    assert PromoCode.objects.get(code="SAVE10").use_count == 0
    assert CheckoutSession.objects.get(order=order).state == CheckoutState.FAILED


@pytest.mark.django_db
def test_decline_on_superseded_attempt_does_not_fail_the_retry(started, fake_gateway):
    order, first_provider_id, variant, user = started
    client = APIClient()
    client.force_authenticate(user=user)
    retry = client.post(f"/api/v1/checkout/orders/{order.id}/retry/", {}, format="json").json()
    assert CheckoutSession.objects.get(provider_order_id=first_provider_id).state == CheckoutState.SUPERSEDED

    decline = _envelope(first_provider_id, order.number, success=False)
    assert _post(decline, _signed(decline)).status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING
    assert StockItem.objects.get(variant=variant).reserved == 2

    success = _envelope(retry["provider_order_id"], f"{order.number}-2")
    assert _post(success, _signed(success)).status_code == 200

    order.refresh_from_db()
    assert order.status == OrderStatus.PAID
    stock = StockItem.objects.get(variant=variant)
    assert (stock.quantity, stock.reserved) == (3, 0)
    assert CheckoutSession.objects.get(provider_order_id=retry["provider_order_id"]).state == CheckoutState.SETTLED


@pytest.mark.django_db
def test_success_after_decline_on_same_provider_order_pays(started):
    order, provider_order_id, variant, _ = started
    decline = _envelope(provider_order_id, order.number, success=False)
    _post(decline, _signed(decline))
    order.refresh_from_db()
    assert order.status == OrderStatus.PAYMENT_FAILED

    success = _envelope(provider_order_id, order.number)
    resp = _post(success, _signed(success))

    assert resp.status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PAID
    stock = StockItem.objects.get(variant=variant)
    assert (stock.quantity, stock.reserved) == (3, 0)
    assert PromoCode.objects.get(code="SAVE10").use_count == 1


@pytest.mark.django_db
def test_tracking_after_settlement_hides_payment_notes(started):
    order, provider_order_id, _, _ = started
    payload = _envelope(provider_order_id, order.number)
    payload["obj"]["id"] = 7654321
    _post(payload, _signed(payload))

    resp = APIClient().get(f"/api/v1/track/{order.tracking_token}/")

    assert resp.status_code == 200
    history = resp.json()["history"]
    assert [entry["status"] for entry in history][-1] == OrderStatus.PAID
    assert all(set(entry) == {"status", "created_at"} for entry in history)
    order.refresh_from_db()
    assert order.provider_transaction_id == "7654321"
    assert "7654321" not in resp.content.decode()


@pytest.mark.django_db
@pytest.mark.parametrize("overrides", [{"pending": True}, {"kind": "TOKEN"}])
def test_pending_and_non_transaction_callbacks_are_ignored(started, overrides):
    order, provider_order_id, _, _ = started
    payload = _envelope(provider_order_id, order.number, **overrides)

    resp = _post(payload, _signed(payload))

    assert resp.status_code == 200
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


@pytest.mark.django_db
def test_unknown_provider_reference_is_an_integrity_error(started):
    order, _, _, _ = started
    payload = _envelope("999999", order.number)

    resp = _post(payload, _signed(payload))

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal error.", "code": "unknown_payment_reference"}
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


# Browser return


def _return_params(provider_order_id, *, success="true"):
    params = {"id": "991", "pending": "false", "success": success, "order": str(provider_order_id)}
    params["hmac"] = compute_signature(normalize_callback(params))
    return params


@pytest.mark.django_db
def test_verified_success_return_redirects_without_settling(started):
    order, provider_order_id, _, _ = started

    resp = APIClient().get(CALLBACK_URL, _return_params(provider_order_id))

    assert resp.status_code == 302
    assert resp["Location"] == f"https://shop.example.com/checkout/success?order={order.number}"
    order.refresh_from_db()
    assert order.status == OrderStatus.PENDING


@pytest.mark.django_db
def test_failed_return_redirects_to_failure_page(started):
    order, provider_order_id, _, _ = started

    resp = APIClient().get(CALLBACK_URL, _return_params(provider_order_id, success="false"))

    assert resp["Location"] == f"https://shop.example.com/checkout/failed?order={order.number}"


@pytest.mark.django_db
def test_forged_return_redirects_to_failure_page(started):
    _, provider_order_id, _, _ = started
    params = _return_params(provider_order_id)
    params["hmac"] = "0" * 128

    resp = APIClient().get(CALLBACK_URL, params)

    assert resp["Location"] == "https://shop.example.com/checkout/failed"


@pytest.mark.django_db
def test_unsigned_return_trusts_only_settled_orders(started):
    order, provider_order_id, _, _ = started
    params = {"order": str(provider_order_id), "success": "true"}

    assert APIClient().get(CALLBACK_URL, params)["Location"].startswith("https://shop.example.com/checkout/failed")

    payload = _envelope(provider_order_id, order.number)
    _post(payload, _signed(payload))

    resp = APIClient().get(CALLBACK_URL, params)
    assert resp["Location"] == f"https://shop.example.com/checkout/success?order={order.number}"
