"""
Tenant App Configuration - Storefront Platform

Django app configuration for store tenants. A tenant is one merchant's store
(subdomain, owner, activation flag); its billing records live in the
``billing`` app and its orders in the ``storefront`` app.

Author: Storefront Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class TenantsConfig(AppConfig):
    """
    Django AppConfig for the tenant module.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "core.tenants"
    label = "tenants"
    verbose_name = "Tenants"
