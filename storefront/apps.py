"""
Storefront App Configuration - Storefront Platform

Django app configuration for the buyer-facing commerce flow: carts, checkout,
orders, gateway redirect and payment reconciliation.

Author: Storefront Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class StorefrontConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "storefront"
    verbose_name = "Storefront"
