"""Shared enumerations and choices used across apps."""

from django.db import models


class ActiveInactive(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class DraftPublished(models.TextChoices):
    DRAFT = "draft", "Draft"
    PUBLISHED = "published", "Published"


class MovementType(models.TextChoices):
    INBOUND = "in", "Inbound"
    OUTBOUND = "out", "Outbound"
    ADJUST = "adjust", "Adjust"


class ReservationState(models.TextChoices):
    ACTIVE = "active", "Active"
    RELEASED = "released", "Released"
    CONVERTED = "converted", "Converted"


class AccountKind(models.TextChoices):
    """Guest accounts are cookie-bound; registered accounts have credentials."""

    GUEST = "guest", "Guest"
    REGISTERED = "registered", "Registered"


class DiscountType(models.TextChoices):
    PERCENTAGE = "percentage", "Percentage"
    FIXED_AMOUNT = "fixed_amount", "Fixed amount"


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    PAYMENT_FAILED = "payment_failed", "Payment failed"


class PaymentMethod(models.TextChoices):
    CARD = "card", "Card"
    WALLET = "wallet", "Mobile wallet"


class CheckoutState(models.TextChoices):
    """States of a single payment attempt for an order."""

    INITIATED = "initiated", "Initiated"
    AWAITING_PAYMENT = "awaiting_payment", "Awaiting payment"
    GATEWAY_FAILED = "gateway_failed", "Gateway failed"
    SETTLED = "settled", "Settled"
    FAILED = "failed", "Failed"
    SUPERSEDED = "superseded", "Superseded"
