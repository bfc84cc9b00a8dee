"""Admin registration for the custom User model."""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Default auth admin extended with the guest/registered split."""

    list_display = (
        "username",
        "email",
        "kind",
        "is_staff",
        "is_active",
        "last_login",
        "date_joined",
    )
    list_filter = ("kind", "is_staff", "is_superuser", "is_active", "groups")
    search_fields = ("username", "email", "first_name", "last_name", "phone")
    ordering = ("-date_joined",)
    readonly_fields = ("last_login", "date_joined", "guest_token", "merge_source")

    fieldsets = (
        (None, {"fields": ("username", "password", "kind")}),
        ("Personal info", {"fields": ("first_name", "last_name", "email", "phone")}),
        ("Guest", {"fields": ("guest_token", "merge_source")}),
        (
            "Permissions",
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("username", "email", "password1", "password2"),
            },
        ),
    )

    filter_horizontal = ("groups", "user_permissions")
