"""Promo URL routes (v1), mounted at /api/v1/."""

from django.urls import path

from .views import AdminPromoDeactivateView, AdminPromoListCreateView, ApplyPromoView

app_name = "promos"

urlpatterns = [
    path("cart/apply-promo/", ApplyPromoView.as_view(), name="apply-promo"),
    path("admin/promos/", AdminPromoListCreateView.as_view(), name="admin-promo-list"),
    path("admin/promos/<int:promo_id>/deactivate/", AdminPromoDeactivateView.as_view(), name="admin-promo-deactivate"),
]
