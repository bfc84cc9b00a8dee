"""Email utilities for the orders app.

Uses Django's email backend, with links composed from FRONTEND_URL. Guests
have no email address on file, so most guest orders are never mailed.
"""

from django.conf import settings
from django.core.mail import send_mail


def _recipient(order) -> str | None:
    return order.email or getattr(order.user, "email", None)


def _tracking_url(order) -> str:
    frontend = getattr(settings, "FRONTEND_URL", "").rstrip("/")
    return f"{frontend}/track/{order.tracking_token}"


def send_order_paid_email(order) -> None:
    """Send a payment confirmation with the order total and a tracking link.

    Silently no-ops if no email is present.
    """
    to_email = _recipient(order)
    if not to_email:
        return

    lines = "".join(
        f"  {item.quantity} x {item.product_title} ({item.variant_sku}) {item.line_total} {order.currency}\n"
        for item in order.items.all()
    )
    body = (
        "Thank you for your purchase!\n\n"
        f"Order: {order.number}\n"
        f"{lines}\n"
        f"Total: {order.total} {order.currency}\n\n"
        f"Track your order here: {_tracking_url(order)}\n"
    )
    send_mail(
        f"Your order {order.number} is confirmed",
        body,
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        [to_email],
        fail_silently=True,
    )


def send_order_status_email(order) -> None:
    to_email = _recipient(order)
    if not to_email:
        return

    body = f"Your order {order.number} is now {order.get_status_display().lower()}.\n"
    if order.tracking_number:
        body += f"Tracking number: {order.tracking_number}\n"
        if order.tracking_url:
            body += f"Carrier tracking: {order.tracking_url}\n"
    body += f"\nTrack your order here: {_tracking_url(order)}\n"
    send_mail(
        f"Order {order.number} update",
        body,
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        [to_email],
        fail_silently=True,
    )
