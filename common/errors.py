"""Domain error taxonomy shared by every app.

Services raise these; the API layer maps them onto HTTP responses in
`common.exceptions.api_exception_handler`. Each class carries the status code
and a stable machine-readable `code`.
"""


class CommerceError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    default_code = "error"
    default_message = "Request could not be processed."
    # Whether the message may be shown to the caller verbatim
    expose_message = True

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        super().__init__(self.message)


class ValidationError(CommerceError):
    """Missing or malformed input; user-correctable."""

    status_code = 400
    default_code = "validation_error"


class NotFoundError(CommerceError):
    status_code = 404
    default_code = "not_found"
    default_message = "Not found."


class ConflictError(CommerceError):
    """Lost race or state conflict."""

    status_code = 409
    default_code = "conflict"


class UpstreamError(CommerceError):
    """Payment provider unavailable or returned malformed data. Retryable."""

    status_code = 502
    default_code = "upstream_error"
    default_message = "Payment provider is unavailable. Please retry."


class SecurityError(CommerceError):
    """Signature verification failure. Never retried; cause is never revealed."""

    status_code = 400
    default_code = "rejected"
    default_message = "Request rejected."
    expose_message = False


class IntegrityError(CommerceError):
    """Stored data contradicts itself; must be logged loudly."""

    status_code = 500
    default_code = "integrity_error"
    default_message = "Internal error."
    expose_message = False


# Concrete errors


class EmptyCart(ValidationError):
    default_code = "empty_cart"
    default_message = "Your cart is empty."


class ItemsUnavailable(ValidationError):
    default_code = "items_unavailable"

    def __init__(self, items: list[str]):
        self.items = list(items)
        super().__init__(f"Some items are no longer available: {', '.join(self.items)}")


class OutOfStock(ValidationError):
    default_code = "out_of_stock"

    def __init__(self, items: list[str]):
        self.items = list(items)
        super().__init__(f"Insufficient stock for: {', '.join(self.items)}")


class PaymentNotStarted(UpstreamError):
    """The order was saved but the provider could not open a payment for it."""

    default_code = "gateway_unavailable"

    def __init__(self, order_id: int, order_number: str):
        self.order_id = order_id
        self.order_number = order_number
        super().__init__(f"Payment provider is unavailable. Order {order_number} was saved; please retry payment.")


class PromoRejected(ValidationError):
    default_code = "promo_rejected"


class InvalidCredentials(ValidationError):
    status_code = 401
    default_code = "invalid_credentials"
    default_message = "Invalid credentials."


class EmailAlreadyRegistered(ConflictError):
    default_code = "email_taken"
    default_message = "Email is already registered."


class UsageLimitReached(ConflictError):
    default_code = "usage_limit_reached"
    default_message = "This promo code has reached its usage limit."


class IllegalTransition(ConflictError):
    default_code = "illegal_transition"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change order status from {current} to {requested}.")


class SignatureMismatch(SecurityError):
    """Callback signature did not verify; reported with the generic rejection code."""


class UnknownPaymentReference(IntegrityError):
    default_code = "unknown_payment_reference"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"No checkout session for provider order {reference}")
