"""Django app configuration for the cart app."""

from django.apps import AppConfig


class CartConfig(AppConfig):
    """Per-account carts, guest or registered."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "cart"
    verbose_name = "Carts"
