from django.contrib import admin

from .models import CheckoutSession


@admin.register(CheckoutSession)
class CheckoutSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "user", "payment_method", "total", "provider_order_id", "state", "created_at")
    list_filter = ("state", "payment_method", "created_at")
    search_fields = ("order__number", "provider_order_id")
    readonly_fields = ("items", "payment_token", "redirect_url", "provider_order_id", "state", "error")
    date_hierarchy = "created_at"
