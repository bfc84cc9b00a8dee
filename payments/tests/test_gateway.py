import json
from decimal import Decimal
from unittest import mock

import pytest
import requests
from common.errors import UpstreamError
from payments.gateway import (
    PaymobGateway,
    billing_data,
    compute_signature,
    normalize_callback,
    parse_outcome,
    to_cents,
    verify_callback,
)
from tenacity import wait_none

BASE = "https://accept.example.com/api"


def _response(status: int, body) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode("utf-8")
    resp.url = BASE
    return resp


def _happy_routes():
    return {
        "/auth/tokens": lambda: _response(201, {"token": "auth-1"}),
        "/ecommerce/orders": lambda: _response(201, {"id": 4242}),
        "/acceptance/payment_keys": lambda: _response(201, {"token": "pay-key"}),
        "/acceptance/payments/pay": lambda: _response(200, {"redirect_url": "https://wallet.example.com/r/1"}),
    }


class RoutedSession:
    """Stands in for requests.Session; answers by path and records calls."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def post(self, url, json=None, timeout=None):
        path = url[len(BASE):]
        self.calls.append((path, json, timeout))
        return self.routes[path]()

    def paths(self):
        return [path for path, _, _ in self.calls]


def _gateway(session, **kwargs):
    options = dict(
        api_key="key",
        integration_id="1001",
        iframe_id="777",
        wallet_integration_id="1002",
        base_url=BASE,
        timeout=5,
        attempts=3,
        session=session,
        wait=wait_none(),
    )
    options.update(kwargs)
    return PaymobGateway(**options)


BILLING = billing_data(shipping={"name": "Mona Adel", "phone": "+201001234567"}, email=None)


def test_card_payment_registers_order_and_builds_iframe_url():
    session = RoutedSession(_happy_routes())
    started = _gateway(session).initiate_payment(
        amount_cents=95000, currency="EGP", billing=BILLING, items=[], merchant_order_id="ORD-1"
    )

    assert started.provider_order_id == "4242"
    assert started.payment_key == "pay-key"
    assert started.iframe_url == f"{BASE}/acceptance/iframes/777?payment_token=pay-key"
    assert session.paths() == ["/auth/tokens", "/ecommerce/orders", "/acceptance/payment_keys"]
    _, order_body, timeout = session.calls[1]
    assert order_body["merchant_order_id"] == "ORD-1"
    assert order_body["amount_cents"] == 95000
    assert timeout == 5
    _, key_body, _ = session.calls[2]
    assert key_body["order_id"] == 4242
    assert key_body["integration_id"] == 1001


def test_wallet_payment_uses_wallet_integration_and_returns_redirect():
    session = RoutedSession(_happy_routes())
    started = _gateway(session).initiate_wallet_checkout(
        amount_cents=1000, currency="EGP", billing=BILLING, merchant_order_id="ORD-2", wallet_number="01012345678"
    )

    assert started.redirect_url == "https://wallet.example.com/r/1"
    assert session.calls[2][1]["integration_id"] == 1002
    assert session.calls[3][1]["source"] == {"identifier": "01012345678", "subtype": "WALLET"}


def test_auth_token_is_cached_between_payments():
    session = RoutedSession(_happy_routes())
    gateway = _gateway(session)

    gateway.initiate_payment(amount_cents=100, currency="EGP", billing=BILLING, items=[], merchant_order_id="A")
    gateway.initiate_payment(amount_cents=100, currency="EGP", billing=BILLING, items=[], merchant_order_id="B")

    assert session.paths().count("/auth/tokens") == 1


def test_auth_token_is_refreshed_after_ttl():
    session = RoutedSession(_happy_routes())
    gateway = _gateway(session, token_ttl=60)

    with mock.patch("payments.gateway.time.monotonic", return_value=1000.0):
        gateway.authenticate()
    with mock.patch("payments.gateway.time.monotonic", return_value=1030.0):
        gateway.authenticate()
    with mock.patch("payments.gateway.time.monotonic", return_value=1061.0):
        gateway.authenticate()

    assert session.paths().count("/auth/tokens") == 2


def test_connection_errors_are_retried():
    outcomes = iter([requests.ConnectionError("reset"), _response(201, {"token": "auth-1"})])

    def flaky():
        outcome = next(outcomes)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    session = RoutedSession({"/auth/tokens": flaky})
    assert _gateway(session).authenticate() == "auth-1"
    assert len(session.calls) == 2


def test_server_errors_are_retried_until_attempts_run_out():
    session = RoutedSession({"/auth/tokens": lambda: _response(503, {"detail": "down"})})

    with pytest.raises(UpstreamError):
        _gateway(session, attempts=3).authenticate()
    assert len(session.calls) == 3


def test_client_errors_are_not_retried():
    session = RoutedSession({"/auth/tokens": lambda: _response(403, {"detail": "bad key"})})

    with pytest.raises(UpstreamError):
        _gateway(session).authenticate()
    assert len(session.calls) == 1


def test_read_timeout_is_not_retried():
    def slow():
        raise requests.ReadTimeout("slow")

    session = RoutedSession({"/auth/tokens": slow})
    with pytest.raises(UpstreamError):
        _gateway(session).authenticate()
    assert len(session.calls) == 1


def test_malformed_response_is_upstream_error():
    routes = _happy_routes()
    routes["/ecommerce/orders"] = lambda: _response(201, {"unexpected": True})
    session = RoutedSession(routes)

    with pytest.raises(UpstreamError):
        _gateway(session).register_order(amount_cents=100, currency="EGP", items=[], merchant_order_id="X")


def _transaction(**overrides):
    payload = {
        "amount_cents": 95000,
        "created_at": "2026-01-01T10:00:00",
        "currency": "EGP",
        "error_occured": False,
        "has_parent_transaction": False,
        "id": 777001,
        "integration_id": 1001,
        "is_3d_secure": True,
        "is_auth": False,
        "is_capture": False,
        "is_refunded": False,
        "is_standalone_payment": True,
        "is_voided": False,
        "order": 4242,
        "owner": 12,
        "pending": False,
        "source_data_pan": "2346",
        "source_data_sub_type": "MasterCard",
        "source_data_type": "card",
        "success": True,
    }
    payload.update(overrides)
    return payload


def test_signature_round_trip_and_tamper_detection():
    payload = _transaction()
    signature = compute_signature(payload)

    assert verify_callback(payload, signature)
    assert verify_callback(payload, signature.upper())
    assert not verify_callback(_transaction(amount_cents=1), signature)
    assert not verify_callback(payload, "")
    assert not verify_callback(payload, signature, secret="")


def test_signature_renders_booleans_like_the_provider():
    as_bools = _transaction(success=True, pending=False)
    as_strings = _transaction(success="true", pending="false")
    assert compute_signature(as_bools) == compute_signature(as_strings)


def test_normalize_flattens_webhook_envelope():
    envelope = {
        "type": "TRANSACTION",
        "obj": {
            "id": 777001,
            "success": True,
            "pending": False,
            "amount_cents": 95000,
            "order": {"id": 4242, "merchant_order_id": "ORD-1"},
            "source_data": {"pan": "2346", "sub_type": "MasterCard", "type": "card"},
            "data": {"message": "Approved"},
        },
    }

    flat = normalize_callback(envelope)

    assert flat["order"] == 4242
    assert flat["merchant_order_id"] == "ORD-1"
    assert flat["source_data_pan"] == "2346"
    assert flat["source_data_sub_type"] == "MasterCard"
    assert flat["data_message"] == "Approved"


def test_normalize_accepts_flat_query_params():
    flat = normalize_callback({"order": "4242", "source_data.pan": "2346", "success": "false", "id": "9"})
    outcome = parse_outcome(flat)

    assert flat["source_data_pan"] == "2346"
    assert outcome.provider_order_id == "4242"
    assert outcome.success is False
    assert outcome.transaction_id == "9"
    assert outcome.reason == "Payment declined"


def test_parse_outcome_uses_provider_message_for_failures():
    outcome = parse_outcome({"order": 1, "success": False, "pending": False, "data_message": "Insufficient funds"})
    assert outcome.reason == "Insufficient funds"
    assert parse_outcome({"order": 1, "pending": "true"}).pending is True


def test_money_and_billing_helpers():
    assert to_cents(Decimal("950.00")) == 95000
    assert to_cents(Decimal("0.005")) == 1
    assert BILLING["first_name"] == "Mona"
    assert BILLING["last_name"] == "Adel"
    assert BILLING["email"] == "N/A"
    assert BILLING["postal_code"] == "00000"
    assert BILLING["country"] == "EG"
