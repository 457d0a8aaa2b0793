"""
Tenant activation and serving rules.

Activation changes are single ``UPDATE`` statements so that an interrupted
caller (e.g. the expiry sweep during shutdown) never leaves a tenant half
updated. The serving rule is evaluated from billing data and does not
trust the flag alone.
"""

import logging
from datetime import datetime
from typing import Optional

from django.apps import apps
from django.utils import timezone

from .models import Tenant

logger = logging.getLogger(__name__)


def activate_tenant(tenant_id: int) -> bool:
    """Switch a tenant on. Returns True if the flag actually changed."""
    changed = Tenant.objects.filter(pk=tenant_id, is_active=False).update(
        is_active=True, updated_at=timezone.now()
    )
    if changed:
        logger.info("Tenant %s activated", tenant_id)
    return bool(changed)


def deactivate_lapsed_tenant(tenant_id: int, now: Optional[datetime] = None) -> bool:
    """
    Switch a tenant off only if its subscription is still CANCELLED and lapsed.

    The subscription is re-checked in the same UPDATE, so a reactivation that
    lands after the sweep selected the tenant keeps it serving.
    """
    now = now or timezone.now()
    Subscription = apps.get_model("billing", "Subscription")
    changed = Tenant.objects.filter(
        pk=tenant_id,
        is_active=True,
        subscription__status=Subscription.Status.CANCELLED,
        subscription__current_period_end__lt=now,
    ).update(is_active=False, updated_at=now)
    if changed:
        logger.info("Tenant %s deactivated, subscription lapsed", tenant_id)
    return bool(changed)


def tenant_can_serve(tenant: Tenant, now: Optional[datetime] = None) -> bool:
    """
    Whether the tenant may serve storefront traffic.

    True iff the tenant has no subscription yet but a pending setup fee
    (grace window), or an ACTIVE subscription, or a CANCELLED one whose paid
    period has not ended.
    """
    now = now or timezone.now()
    Subscription = apps.get_model("billing", "Subscription")
    Payment = apps.get_model("billing", "Payment")

    subscription = Subscription.objects.filter(tenant=tenant).first()
    if subscription is None:
        return Payment.objects.filter(
            tenant=tenant,
            type=Payment.Type.SETUP_FEE,
            status=Payment.Status.PENDING,
        ).exists()

    if subscription.status == Subscription.Status.ACTIVE:
        return True
    return now < subscription.current_period_end
