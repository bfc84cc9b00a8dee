import itertools

import pytest
from common.errors import UpstreamError
from payments.gateway import PaymentGateway, PaymentInitiation, set_gateway
from rest_framework.test import APIClient


class FakeGateway(PaymentGateway):
    """In-memory gateway recording every payment it was asked to open."""

    def __init__(self):
        self.calls = []
        self.fail = False
        self._ids = itertools.count(5000)

    def _start(self, kind, **kwargs):
        if self.fail:
            raise UpstreamError()
        self.calls.append((kind, kwargs))
        provider_order_id = str(next(self._ids))
        return provider_order_id, f"key-{provider_order_id}"

    def initiate_payment(self, *, amount_cents, currency, billing, items, merchant_order_id):
        provider_order_id, key = self._start(
            "card", amount_cents=amount_cents, currency=currency, items=items, merchant_order_id=merchant_order_id
        )
        return PaymentInitiation(
            provider_order_id=provider_order_id,
            payment_key=key,
            iframe_url=f"https://pay.example.com/iframes/777?payment_token={key}",
        )

    def initiate_wallet_checkout(self, *, amount_cents, currency, billing, merchant_order_id, wallet_number):
        provider_order_id, key = self._start(
            "wallet", amount_cents=amount_cents, merchant_order_id=merchant_order_id, wallet_number=wallet_number
        )
        return PaymentInitiation(
            provider_order_id=provider_order_id,
            payment_key=key,
            redirect_url=f"https://pay.example.com/wallet/{provider_order_id}",
        )


@pytest.fixture
def fake_gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    yield gateway
    set_gateway(None)


@pytest.fixture
def api_client():
    return APIClient()
