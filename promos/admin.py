"""Admin registration for promo codes."""

from django.contrib import admin

from .models import PromoCode


@admin.register(PromoCode)
class PromoCodeAdmin(admin.ModelAdmin):
    list_display = ("code", "discount_type", "discount_value", "use_count", "max_uses", "is_active", "expires_at")
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "description")
    # Use count only moves through redemption
    readonly_fields = ("use_count", "created_at", "updated_at")
