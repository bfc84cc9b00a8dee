from django.contrib import admin

from .models import IdempotencyKey, Order, OrderItem, OrderStatusHistory


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = (
        "variant_id",
        "product_title",
        "variant_name",
        "variant_sku",
        "quantity",
        "unit_price",
        "line_total",
    )
    can_delete = False


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ("status", "note", "actor", "created_at")
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("id", "number", "status", "user", "total", "payment_method", "created_at")
    list_filter = ("status", "payment_method", "created_at")
    search_fields = ("number", "email", "shipping_name", "shipping_phone")
    date_hierarchy = "created_at"
    # Status changes go through the API so history and stock stay consistent
    readonly_fields = ("status", "subtotal", "discount", "shipping_cost", "total", "promo_code", "tracking_token")
    inlines = [OrderItemInline, OrderStatusHistoryInline]


@admin.register(IdempotencyKey)
class IdempotencyKeyAdmin(admin.ModelAdmin):
    list_display = ("id", "key", "scope", "path", "method", "response_code", "created_at")
    list_filter = ("method", "response_code", "created_at")
    search_fields = ("key", "scope", "path")
    date_hierarchy = "created_at"
