"""
URL configuration for the Bazaar API.

All storefront and admin API routes are versioned under /api/v1/. The Django
admin, schema, docs and healthcheck live outside the versioned prefix.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from .health import health

admin.site.site_header = "Bazaar Admin"
admin.site.index_title = "Admin"

urlpatterns = [
    path("admin/", admin.site.urls),
    # API schema and Swagger UI
    path("api/schema/", SpectacularAPIView.as_view(), name="api-schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="api-schema"), name="api-docs"),
    # Healthcheck
    path("health/", health, name="health"),
    # Versioned v1 routes only
    path("api/v1/", include("users.urls")),
    path("api/v1/cart/", include("cart.urls")),
    path("api/v1/", include("promos.urls")),
    path("api/v1/checkout/", include("checkout.urls")),
    path("api/v1/", include("orders.urls")),
]
