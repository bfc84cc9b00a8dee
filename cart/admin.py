"""Admin registration for cart models.

Carts are shown with their entries inline so support can inspect what a
shopper had before checkout.
"""

from django.contrib import admin, messages

from .models import Cart, CartItem
from .services import clear_cart


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ("variant_id", "quantity", "created_at", "updated_at")
    readonly_fields = ("created_at", "updated_at")


class OwnerKindFilter(admin.SimpleListFilter):
    title = "owner kind"
    parameter_name = "owner_kind"

    def lookups(self, request, model_admin):
        return (
            ("registered", "Registered accounts"),
            ("guest", "Guest accounts"),
        )

    def queryset(self, request, queryset):
        value = self.value()
        if value:
            return queryset.filter(user__kind=value)
        return queryset


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "updated_at", "created_at")
    list_filter = (OwnerKindFilter,)
    search_fields = ("user__username", "user__email")
    ordering = ("-updated_at",)
    readonly_fields = ("created_at", "updated_at")
    inlines = [CartItemInline]
    raw_id_fields = ("user",)
    list_select_related = ("user",)

    @admin.action(description="Clear cart")
    def action_clear_cart(self, request, queryset):
        count = 0
        for cart in queryset.select_related("user"):
            clear_cart(user=cart.user)
            count += 1
        messages.success(request, f"Cleared {count} cart(s).")

    actions = ["action_clear_cart"]


@admin.register(CartItem)
class CartItemAdmin(admin.ModelAdmin):
    list_display = ("id", "cart", "variant_id", "quantity", "updated_at")
    search_fields = ("cart__user__email",)
    ordering = ("id",)
    readonly_fields = ("created_at", "updated_at")
    raw_id_fields = ("cart",)
