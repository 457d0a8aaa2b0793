"""
Core App Configuration - Storefront Platform

This module contains the Django app configuration for the core application.
The core app holds functionality shared by the storefront and billing apps.

Features:
- Commerce error taxonomy (exceptions.py)
- Explicit unit-of-work transaction boundary (unit_of_work.py)
- Payment gateway client and token cache (payment_gateway/)
- Tenant model and activation rules (tenants/)

Author: Storefront Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core"
