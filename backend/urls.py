"""
URL configuration for the storefront backend.

- /admin/                 → Django admin
- /api/token/             → JWT obtain / refresh (simplejwt)
- /api/storefront/        → buyer checkout and order status
- /api/payments/          → payment gateway webhook
- /api/billing/           → tenant subscription management
"""

from django.contrib import admin
from django.urls import include, path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from storefront.urls import payment_urlpatterns

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("api/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("api/storefront/", include("storefront.urls")),
    path("api/payments/", include((payment_urlpatterns, "payments"))),
    path("api/billing/", include("billing.urls")),
]
