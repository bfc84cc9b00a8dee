"""Order URL routes (v1), mounted at /api/v1/."""

from django.urls import path

from .views import (
    AdminOrderListView,
    AdminOrderStatusView,
    AdminOrderTrackingView,
    OrderCancelView,
    OrderDetailView,
    OrderListView,
    OrderTrackingView,
)

app_name = "orders"

urlpatterns = [
    path("orders/", OrderListView.as_view(), name="order-list"),
    path("orders/<int:order_id>/", OrderDetailView.as_view(), name="order-detail"),
    path("orders/<int:order_id>/cancel/", OrderCancelView.as_view(), name="order-cancel"),
    path("track/<str:token>/", OrderTrackingView.as_view(), name="order-track"),
    path("admin/orders/", AdminOrderListView.as_view(), name="admin-order-list"),
    path("admin/orders/<int:order_id>/status/", AdminOrderStatusView.as_view(), name="admin-order-status"),
    path("admin/orders/<int:order_id>/tracking/", AdminOrderTrackingView.as_view(), name="admin-order-tracking"),
]
