"""Cart URL routes (v1)."""

from django.urls import path

from .views import CartAddItemView, CartDetailView, CartItemView

app_name = "cart"

urlpatterns = [
    path("", CartDetailView.as_view(), name="cart-detail"),
    path("items/", CartAddItemView.as_view(), name="cart-add-item"),
    path("items/<int:variant_id>/", CartItemView.as_view(), name="cart-item"),
]
