"""
Billing URLs - Storefront Platform

API Endpoints:
- /api/billing/tenants/<id>/subscription/             - Current subscription
- /api/billing/tenants/<id>/subscription/cancel/      - Cancel at period end
- /api/billing/tenants/<id>/subscription/reactivate/  - Reactivate
- /api/billing/tenants/<id>/subscription/renew/       - Charge a due renewal
- /api/billing/tenants/<id>/setup-fee/                - Pay the setup fee via the gateway

Author: Storefront Development Team
Version: 1.0.0
"""

from django.urls import path

from .views import (
    SubscriptionView,
    CancelSubscriptionView,
    ReactivateSubscriptionView,
    RenewSubscriptionView,
    SetupFeeCheckoutView,
)

app_name = "billing"

urlpatterns = [
    path("tenants/<int:tenant_id>/subscription/", SubscriptionView.as_view(), name="subscription"),
    path(
        "tenants/<int:tenant_id>/subscription/cancel/",
        CancelSubscriptionView.as_view(),
        name="subscription-cancel",
    ),
    path(
        "tenants/<int:tenant_id>/subscription/reactivate/",
        ReactivateSubscriptionView.as_view(),
        name="subscription-reactivate",
    ),
    path(
        "tenants/<int:tenant_id>/subscription/renew/",
        RenewSubscriptionView.as_view(),
        name="subscription-renew",
    ),
    path("tenants/<int:tenant_id>/setup-fee/", SetupFeeCheckoutView.as_view(), name="setup-fee"),
]
