"""
Storefront URLs - Storefront Platform

API Endpoints:
- /api/storefront/<subdomain>/checkout/                         - Checkout + gateway redirect
- /api/storefront/<subdomain>/orders/<uuid>/status/             - Order payment status
- /api/storefront/<subdomain>/orders/<uuid>/pay/                - Retry gateway initiation
- /api/storefront/<subdomain>/orders/<uuid>/payment-failure/    - Fail page reconciliation

The gateway webhook lives under /api/payments/ (see ``payment_urlpatterns``).

Author: Storefront Development Team
Version: 1.0.0
"""

from django.urls import path

from .views import CheckoutView, OrderStatusView, OrderPaymentView, PaymentFailureView, GatewayCallbackView

app_name = "storefront"

urlpatterns = [
    path("<slug:subdomain>/checkout/", CheckoutView.as_view(), name="checkout"),
    path("<slug:subdomain>/orders/<uuid:order_id>/status/", OrderStatusView.as_view(), name="order-status"),
    path("<slug:subdomain>/orders/<uuid:order_id>/pay/", OrderPaymentView.as_view(), name="order-pay"),
    path(
        "<slug:subdomain>/orders/<uuid:order_id>/payment-failure/",
        PaymentFailureView.as_view(),
        name="order-payment-failure",
    ),
]

payment_urlpatterns = [
    path("bog/callback/", GatewayCallbackView.as_view(), name="bog-callback"),
]
