"""Payment gateway adapter for Paymob Accept.

The checkout talks to the provider only through `PaymentGateway`. The Paymob
implementation speaks its three-step REST protocol (auth token, order
registration, payment key) over `requests`, retrying transient failures with
`tenacity`. Callback authenticity is checked with the provider's HMAC-SHA512
scheme over a fixed, ordered field list.

Tests install a fake with `set_gateway()`.
"""

import hashlib
import hmac
import logging
import threading
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

import requests
from common.errors import UpstreamError
from django.conf import settings
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

logger = logging.getLogger("bazaar.payments")

# Order matters: the provider concatenates these values in this order
SIGNATURE_FIELDS = (
    "amount_cents",
    "created_at",
    "currency",
    "error_occured",
    "has_parent_transaction",
    "id",
    "integration_id",
    "is_3d_secure",
    "is_auth",
    "is_capture",
    "is_refunded",
    "is_standalone_payment",
    "is_voided",
    "order",
    "owner",
    "pending",
    "source_data_pan",
    "source_data_sub_type",
    "source_data_type",
    "success",
)


@dataclass(frozen=True)
class PaymentInitiation:
    provider_order_id: str
    payment_key: str
    iframe_url: str | None = None
    redirect_url: str | None = None


@dataclass(frozen=True)
class CallbackOutcome:
    provider_order_id: str
    success: bool
    pending: bool
    transaction_id: str
    merchant_order_id: str
    reason: str


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def billing_data(*, shipping: dict, email: str | None) -> dict:
    """Build the provider's billing block from a shipping address snapshot.

    The provider rejects empty billing fields, so blanks get placeholders.
    """

    names = (shipping.get("name") or "").split()
    return {
        "first_name": names[0] if names else "Customer",
        "last_name": " ".join(names[1:]) or "Customer",
        "email": email or "N/A",
        "phone_number": shipping.get("phone") or "N/A",
        "street": shipping.get("street") or "N/A",
        "building": shipping.get("building") or "N/A",
        "floor": shipping.get("floor") or "N/A",
        "apartment": shipping.get("apartment") or "N/A",
        "city": shipping.get("city") or "N/A",
        "state": shipping.get("governorate") or "N/A",
        "country": "EG",
        "postal_code": shipping.get("postal_code") or "00000",
    }


# Callback signatures


def _signature_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def compute_signature(payload: dict, secret: str | None = None) -> str:
    """Return the hex HMAC-SHA512 of a flat callback payload."""

    secret = settings.PAYMOB_HMAC_SECRET if secret is None else secret
    message = "".join(_signature_value(payload.get(field)) for field in SIGNATURE_FIELDS)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha512).hexdigest()


def verify_callback(payload: dict, signature: str | None, secret: str | None = None) -> bool:
    """Constant-time check of ``signature`` against a flat payload.

    An empty secret or an empty signature never verifies.
    """

    secret = settings.PAYMOB_HMAC_SECRET if secret is None else secret
    if not secret or not signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, str(signature).strip().lower())


def normalize_callback(payload: dict) -> dict:
    """Flatten a provider callback into the field names the signature uses.

    Accepts the webhook envelope ``{"type": ..., "obj": {...}}`` as well as
    already-flat payloads such as redirect query strings, where nested keys
    arrive dotted (``source_data.pan``).
    """

    obj = payload.get("obj") if isinstance(payload.get("obj"), dict) else payload
    flat = {}
    for key, value in obj.items():
        if key == "order" and isinstance(value, dict):
            flat["order"] = value.get("id")
            flat["merchant_order_id"] = value.get("merchant_order_id")
        elif isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if not isinstance(sub_value, (dict, list)):
                    flat[f"{key}_{sub_key}"] = sub_value
        else:
            flat[key.replace(".", "_")] = value
    return flat


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def parse_outcome(flat: dict) -> CallbackOutcome:
    success = _truthy(flat.get("success"))
    reason = ""
    if not success:
        reason = str(flat.get("data_message") or flat.get("txn_response_code") or "Payment declined")
    return CallbackOutcome(
        provider_order_id=_signature_value(flat.get("order")),
        success=success,
        pending=_truthy(flat.get("pending")),
        transaction_id=_signature_value(flat.get("id")),
        merchant_order_id=_signature_value(flat.get("merchant_order_id")),
        reason=reason,
    )


# Gateways


def _is_transient(exc: BaseException) -> bool:
    # ConnectTimeout is a ConnectionError; a read timeout may already have reached the provider
    if isinstance(exc, requests.ConnectionError):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code >= 500
    return False


class PaymentGateway:
    """Interface for hosted payment providers."""

    def initiate_payment(
        self, *, amount_cents: int, currency: str, billing: dict, items: list[dict], merchant_order_id: str
    ) -> PaymentInitiation:
        raise NotImplementedError

    def initiate_wallet_checkout(
        self, *, amount_cents: int, currency: str, billing: dict, merchant_order_id: str, wallet_number: str
    ) -> PaymentInitiation:
        raise NotImplementedError

    def verify_callback(self, payload: dict, signature: str | None) -> bool:
        return verify_callback(payload, signature)


class PaymobGateway(PaymentGateway):
    """Paymob Accept client with a memoized auth token."""

    def __init__(
        self,
        *,
        api_key: str,
        integration_id: str,
        iframe_id: str,
        wallet_integration_id: str = "",
        base_url: str = "https://accept.paymob.com/api",
        timeout: float = 10,
        attempts: int = 3,
        token_ttl: int = 3600,
        key_expiration: int = 3600,
        session: requests.Session | None = None,
        wait=None,
    ):
        self.api_key = api_key
        self.integration_id = integration_id
        self.iframe_id = iframe_id
        self.wallet_integration_id = wallet_integration_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.token_ttl = token_ttl
        self.key_expiration = key_expiration
        self.session = session or requests.Session()
        self.wait = wait or wait_exponential(multiplier=0.3, min=0.3, max=3)
        self._token = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @classmethod
    def from_settings(cls) -> "PaymobGateway":
        return cls(
            api_key=settings.PAYMOB_API_KEY,
            integration_id=settings.PAYMOB_INTEGRATION_ID,
            iframe_id=settings.PAYMOB_IFRAME_ID,
            wallet_integration_id=settings.PAYMOB_WALLET_INTEGRATION_ID,
            base_url=settings.PAYMOB_API_BASE,
            timeout=settings.PAYMOB_TIMEOUT_SECONDS,
            attempts=settings.PAYMOB_RETRY_ATTEMPTS,
            token_ttl=settings.PAYMOB_AUTH_TOKEN_TTL_SECONDS,
            key_expiration=settings.PAYMOB_PAYMENT_KEY_EXPIRATION,
        )

    def _send(self, path: str, payload: dict) -> dict:
        resp = self.session.post(f"{self.base_url}{path}", json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _post(self, path: str, payload: dict) -> dict:
        started = time.monotonic()
        try:
            for attempt in Retrying(
                reraise=True,
                stop=stop_after_attempt(self.attempts),
                wait=self.wait,
                retry=retry_if_exception(_is_transient),
            ):
                with attempt:
                    data = self._send(path, payload)
        except (requests.RequestException, ValueError) as exc:
            logger.warning(
                "gateway_request_failed",
                extra={"event": "gateway_request_failed", "path": path, "error": type(exc).__name__},
            )
            raise UpstreamError() from exc
        logger.info(
            "gateway_request",
            extra={"event": "gateway_request", "path": path, "duration_ms": int((time.monotonic() - started) * 1000)},
        )
        return data

    @staticmethod
    def _require(data: dict, key: str, path: str):
        value = data.get(key) if isinstance(data, dict) else None
        if value in (None, ""):
            logger.warning(
                "gateway_response_malformed",
                extra={"event": "gateway_response_malformed", "path": path, "missing": key},
            )
            raise UpstreamError()
        return value

    def authenticate(self) -> str:
        """Return a cached auth token, fetching a new one once it expires."""

        with self._token_lock:
            now = time.monotonic()
            if self._token and now < self._token_expires_at:
                return self._token
            data = self._post("/auth/tokens", {"api_key": self.api_key})
            self._token = self._require(data, "token", "/auth/tokens")
            self._token_expires_at = now + self.token_ttl
            return self._token

    def register_order(
        self, *, amount_cents: int, currency: str, items: list[dict], merchant_order_id: str
    ) -> str:
        data = self._post(
            "/ecommerce/orders",
            {
                "auth_token": self.authenticate(),
                "delivery_needed": False,
                "amount_cents": amount_cents,
                "currency": currency,
                "items": items,
                "merchant_order_id": merchant_order_id,
            },
        )
        return str(self._require(data, "id", "/ecommerce/orders"))

    def request_payment_key(
        self,
        *,
        provider_order_id: str,
        amount_cents: int,
        billing: dict,
        currency: str,
        integration_id: str | None = None,
    ) -> str:
        data = self._post(
            "/acceptance/payment_keys",
            {
                "auth_token": self.authenticate(),
                "amount_cents": amount_cents,
                "expiration": self.key_expiration,
                "order_id": int(provider_order_id),
                "billing_data": billing,
                "currency": currency,
                "integration_id": int(integration_id or self.integration_id),
            },
        )
        return self._require(data, "token", "/acceptance/payment_keys")

    def build_redirect_url(self, payment_key: str) -> str:
        return f"{self.base_url}/acceptance/iframes/{self.iframe_id}?payment_token={payment_key}"

    def initiate_wallet_payment(self, *, payment_key: str, wallet_number: str) -> str:
        data = self._post(
            "/acceptance/payments/pay",
            {"source": {"identifier": wallet_number, "subtype": "WALLET"}, "payment_token": payment_key},
        )
        return self._require(data, "redirect_url", "/acceptance/payments/pay")

    def initiate_payment(
        self, *, amount_cents: int, currency: str, billing: dict, items: list[dict], merchant_order_id: str
    ) -> PaymentInitiation:
        provider_order_id = self.register_order(
            amount_cents=amount_cents, currency=currency, items=items, merchant_order_id=merchant_order_id
        )
        key = self.request_payment_key(
            provider_order_id=provider_order_id, amount_cents=amount_cents, billing=billing, currency=currency
        )
        return PaymentInitiation(
            provider_order_id=provider_order_id, payment_key=key, iframe_url=self.build_redirect_url(key)
        )

    def initiate_wallet_checkout(
        self, *, amount_cents: int, currency: str, billing: dict, merchant_order_id: str, wallet_number: str
    ) -> PaymentInitiation:
        provider_order_id = self.register_order(
            amount_cents=amount_cents, currency=currency, items=[], merchant_order_id=merchant_order_id
        )
        key = self.request_payment_key(
            provider_order_id=provider_order_id,
            amount_cents=amount_cents,
            billing=billing,
            currency=currency,
            integration_id=self.wallet_integration_id,
        )
        redirect_url = self.initiate_wallet_payment(payment_key=key, wallet_number=wallet_number)
        return PaymentInitiation(provider_order_id=provider_order_id, payment_key=key, redirect_url=redirect_url)


_gateway: PaymentGateway | None = None
_gateway_lock = threading.Lock()


def get_gateway() -> PaymentGateway:
    global _gateway
    with _gateway_lock:
        if _gateway is None:
            _gateway = PaymobGateway.from_settings()
        return _gateway


def set_gateway(gateway: PaymentGateway | None) -> None:
    """Install ``gateway`` as the process-wide gateway; None resets to the default."""

    global _gateway
    with _gateway_lock:
        _gateway = gateway
