"""
Billing App Configuration - Storefront Platform

Django app configuration for tenant billing: setup-fee and subscription
payments, the subscription lifecycle and the periodic expiry sweep.

Operational notes
-----------------
- ``ready()`` performs no DB or network calls; the expiry sweeper is started
  by the WSGI entrypoint (see backend/wsgi.py) or run via
  ``python manage.py expire_subscriptions``.

Author: Storefront Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    App configuration for the ``billing`` package.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
