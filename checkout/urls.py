"""Checkout URL routes (v1)."""

from django.urls import path

from .views import CheckoutInitView, CheckoutRetryView, PaymentCallbackView

app_name = "checkout"

urlpatterns = [
    path("init/", CheckoutInitView.as_view(), name="checkout-init"),
    path("orders/<int:order_id>/retry/", CheckoutRetryView.as_view(), name="checkout-retry"),
    path("callback/", PaymentCallbackView.as_view(), name="checkout-callback"),
]
