from decimal import Decimal

import pytest
from cart.services import add_item
from catalog.tests.factories import ProductVariantFactory
from promos.models import PromoCode
from promos.tests.factories import PromoCodeFactory
from rest_framework.test import APIClient
from users.tests.factories import StaffFactory, UserFactory


def _client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.mark.django_db
def test_apply_promo_against_current_cart():
    user = UserFactory()
    variant = ProductVariantFactory(price=Decimal("500.00"), stock=10)
    add_item(user=user, variant_id=variant.id, quantity=2)
    PromoCodeFactory(code="SAVE10", discount_value=Decimal("10"), max_uses=5)

    resp = _client(user).post("/api/v1/cart/apply-promo/", {"code": "SAVE10"}, format="json")

    assert resp.status_code == 200
    assert resp.json() == {
        "valid": True,
        "discount_amount": "100.00",
        "message": "Promo code applied! You save 100.00 EGP",
    }
    assert PromoCode.objects.get(code="SAVE10").use_count == 0


@pytest.mark.django_db
def test_apply_invalid_code_returns_reason_message():
    user = UserFactory()
    add_item(user=user, variant_id=ProductVariantFactory(stock=10).id, quantity=1)

    resp = _client(user).post("/api/v1/cart/apply-promo/", {"code": "NOPE"}, format="json")

    assert resp.status_code == 200
    assert resp.json() == {"valid": False, "discount_amount": "0.00", "message": "Invalid promo code"}


@pytest.mark.django_db
def test_apply_promo_on_empty_cart():
    PromoCodeFactory(code="SAVE10")
    resp = _client(UserFactory()).post("/api/v1/cart/apply-promo/", {"code": "SAVE10"}, format="json")
    assert resp.status_code == 400
    assert resp.json()["code"] == "empty_cart"


@pytest.mark.django_db
def test_admin_promo_endpoints_require_staff():
    promo = PromoCodeFactory()
    client = _client(UserFactory())

    assert client.get("/api/v1/admin/promos/").status_code == 403
    assert client.post(f"/api/v1/admin/promos/{promo.id}/deactivate/").status_code == 403
    assert APIClient().get("/api/v1/admin/promos/").status_code in (401, 403)


@pytest.mark.django_db
def test_admin_create_list_and_deactivate():
    client = _client(StaffFactory())

    created = client.post(
        "/api/v1/admin/promos/",
        {"code": "summer25", "discount_type": "percentage", "discount_value": "25.00", "max_uses": 100},
        format="json",
    )
    assert created.status_code == 201
    assert created.json()["code"] == "SUMMER25"
    promo_id = created.json()["id"]

    listing = client.get("/api/v1/admin/promos/")
    assert [p["code"] for p in listing.json()["results"]] == ["SUMMER25"]

    deactivated = client.post(f"/api/v1/admin/promos/{promo_id}/deactivate/")
    assert deactivated.status_code == 200
    assert deactivated.json()["is_active"] is False


@pytest.mark.django_db
def test_admin_rejects_percentage_over_100():
    resp = _client(StaffFactory()).post(
        "/api/v1/admin/promos/",
        {"code": "TOOMUCH", "discount_type": "percentage", "discount_value": "150.00"},
        format="json",
    )
    assert resp.status_code == 400
