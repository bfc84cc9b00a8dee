"""Django app configuration for the users app."""

from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Accounts, guest identities and JWT auth endpoints."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "users"
    verbose_name = "Accounts"
