"""Inventory admin. Movements and holds are read-only; stock changes go through services."""

from django.contrib import admin

from .models import StockItem, StockMovement, StockReservation


class StockMovementInline(admin.TabularInline):
    model = StockMovement
    extra = 0
    can_delete = False
    fields = ("created_at", "movement_type", "quantity", "reason", "reference")
    readonly_fields = fields
    ordering = ("-created_at",)

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(StockItem)
class StockItemAdmin(admin.ModelAdmin):
    list_display = ("variant", "quantity", "reserved", "available", "updated_at")
    list_select_related = ("variant", "variant__product")
    search_fields = ("variant__sku", "variant__product__title")
    readonly_fields = ("reserved",)
    inlines = [StockMovementInline]


@admin.register(StockReservation)
class StockReservationAdmin(admin.ModelAdmin):
    list_display = ("reference", "variant", "quantity", "state", "expires_at")
    list_filter = ("state",)
    search_fields = ("reference", "variant__sku")
    readonly_fields = ("variant", "quantity", "reference", "state", "expires_at")

    def has_add_permission(self, request):
        return False
