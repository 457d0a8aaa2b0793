"""
WSGI config for the storefront backend.

Starts the in-process subscription expiry sweeper when
SUBSCRIPTION_EXPIRY_JOB_ENABLED is set.
"""

import os

from django.conf import settings
from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "backend.settings")

application = get_wsgi_application()

if getattr(settings, "SUBSCRIPTION_EXPIRY_JOB_ENABLED", False):
    from billing.jobs import start_expiry_sweeper

    start_expiry_sweeper(settings.SUBSCRIPTION_EXPIRY_INTERVAL_SECONDS)
