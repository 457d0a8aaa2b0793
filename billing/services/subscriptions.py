"""
Subscription Lifecycle - Storefront Platform
=============================================

State machine for a tenant's subscription:

    (none) --setup fee PAID--> ACTIVE --cancel--> CANCELLED
    CANCELLED --reactivate, period not ended--> ACTIVE          (no charge)
    CANCELLED --reactivate, period ended--> ACTIVE              (new MONTHLY charge,
                                                                 period restarts now)
    ACTIVE --monthly PAID--> ACTIVE                             (period extended)

Rules
-----
- One subscription per tenant; concurrent creation returns the existing row.
- ``renew`` never moves ``next_billing_date`` backwards: the new period starts
  at the later of the previous ``next_billing_date`` and now.
- ``cancel`` is idempotent and keeps the tenant serving until the paid
  period ends; the expiry sweep switches it off afterwards.

Author: Storefront Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from typing import Optional, Callable, TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import NotFound, Conflict
from core.tenants.models import Tenant
from core.tenants.services import activate_tenant
from core.unit_of_work import TransactionalRepositories, unit_of_work

from ..models import Payment, Subscription
from ..pricing import billing_period

if TYPE_CHECKING:
    from .payments import PaymentProcessor

logger = logging.getLogger(__name__)


class SubscriptionStateMachine:
    """
    Creates, renews, cancels and reactivates tenant subscriptions.

    The ``*_in`` variants run inside a caller's unit of work (used by the
    post-payment dispatch); the plain variants open their own.
    """

    def __init__(
        self,
        payments: Optional["PaymentProcessor"] = None,
        clock: Callable = timezone.now,
    ) -> None:
        self._payments = payments
        self._clock = clock

    @property
    def payments(self) -> "PaymentProcessor":
        if self._payments is None:
            from .payments import PaymentProcessor

            self._payments = PaymentProcessor(subscriptions=self, clock=self._clock)
        return self._payments

    # ---------- queries ----------

    def get(self, tenant_id: int) -> Optional[Subscription]:
        return Subscription.objects.select_related("tenant").filter(tenant_id=tenant_id).first()

    def _require(self, tenant_id: int) -> Subscription:
        subscription = self.get(tenant_id)
        if subscription is None:
            raise NotFound("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")
        return subscription

    def _require_tenant(self, tenant_id: int) -> Tenant:
        tenant = Tenant.objects.select_related("owner").filter(pk=tenant_id).first()
        if tenant is None:
            raise NotFound("Tenant not found", code="TENANT_NOT_FOUND")
        return tenant

    # ---------- create ----------

    def create(self, tenant_id: int) -> Subscription:
        return unit_of_work(lambda repos: self.create_in(repos, tenant_id))

    def create_in(self, repos: TransactionalRepositories, tenant_id: int, now=None) -> Subscription:
        """Create the tenant's subscription, or return the one that already exists."""
        existing = repos.query(Subscription).filter(tenant_id=tenant_id).first()
        if existing is not None:
            logger.info("Subscription for tenant %s already exists", tenant_id)
            return existing

        period = billing_period(now or self._clock())
        try:
            with transaction.atomic(using=repos.using):
                subscription = repos.create(
                    Subscription,
                    tenant_id=tenant_id,
                    status=Subscription.Status.ACTIVE,
                    current_period_start=period.start,
                    current_period_end=period.end,
                    next_billing_date=period.next_billing_date,
                )
        except IntegrityError:
            # lost the race to a concurrent creator
            logger.info("Concurrent subscription creation for tenant %s", tenant_id)
            return repos.query(Subscription).get(tenant_id=tenant_id)

        logger.info(
            "Created subscription for tenant %s until %s", tenant_id, period.end.isoformat()
        )
        return subscription

    # ---------- renew ----------

    def renew(self, tenant_id: int) -> Subscription:
        return unit_of_work(lambda repos: self.renew_in(repos, tenant_id))

    def renew_in(
        self,
        repos: TransactionalRepositories,
        tenant_id: int,
        now=None,
        restart_period: bool = False,
    ) -> Subscription:
        """
        Extend the subscription by one month and mark it ACTIVE.

        ``restart_period`` starts the new period at ``now`` (reactivation
        after the paid period ended).
        """
        now = now or self._clock()
        subscription = repos.locked(Subscription).filter(tenant_id=tenant_id).first()
        if subscription is None:
            raise NotFound("Subscription not found", code="SUBSCRIPTION_NOT_FOUND")

        start = now if restart_period else max(subscription.next_billing_date, now)
        period = billing_period(start)
        subscription.status = Subscription.Status.ACTIVE
        subscription.cancelled_at = None
        subscription.current_period_start = period.start
        subscription.current_period_end = period.end
        subscription.next_billing_date = period.next_billing_date
        subscription.save(
            using=repos.using,
            update_fields=[
                "status",
                "cancelled_at",
                "current_period_start",
                "current_period_end",
                "next_billing_date",
                "updated_at",
            ],
        )
        logger.info(
            "Renewed subscription for tenant %s until %s", tenant_id, period.end.isoformat()
        )
        return subscription

    # ---------- cancel / reactivate ----------

    def cancel(self, tenant_id: int) -> Subscription:
        """Mark the subscription CANCELLED; the tenant serves until the period ends."""
        subscription = self._require(tenant_id)
        now = self._clock()
        changed = Subscription.objects.filter(
            pk=subscription.pk, status=Subscription.Status.ACTIVE
        ).update(status=Subscription.Status.CANCELLED, cancelled_at=now, updated_at=now)
        if changed:
            logger.info(
                "Subscription for tenant %s cancelled, serving until %s",
                tenant_id,
                subscription.current_period_end.isoformat(),
            )
        subscription.refresh_from_db()
        return subscription

    def reactivate(self, tenant_id: int) -> Subscription:
        """
        Bring a cancelled subscription back.

        Within the paid period this is free. After it ended a MONTHLY payment
        is created and charged and the period restarts from now.
        """
        tenant = self._require_tenant(tenant_id)
        subscription = self._require(tenant_id)
        if subscription.status == Subscription.Status.ACTIVE:
            return subscription

        now = self._clock()
        if now < subscription.current_period_end:
            Subscription.objects.filter(
                pk=subscription.pk, status=Subscription.Status.CANCELLED
            ).update(status=Subscription.Status.ACTIVE, cancelled_at=None, updated_at=now)
            activate_tenant(tenant_id)
            logger.info("Subscription for tenant %s reactivated within its period", tenant_id)
            subscription.refresh_from_db()
            return subscription

        payment = self.payments.create_payment(
            tenant.owner, tenant, Payment.Type.MONTHLY_SUBSCRIPTION
        )
        self.payments.process_payment(
            payment.pk, {"reason": "reactivation"}, restart_period=True
        )
        logger.info("Subscription for tenant %s reactivated with a new charge", tenant_id)
        subscription.refresh_from_db()
        return subscription

    # ---------- recovery / renewals ----------

    def recover(self, tenant_id: int, user=None) -> Optional[Subscription]:
        """
        Create a missing subscription for a tenant whose setup fee was paid.

        Returns the subscription, or None if no PAID setup fee exists (when
        ``user`` is given, the lookup is restricted to that user's payments).
        """
        existing = self.get(tenant_id)
        if existing is not None:
            return existing

        paid = Payment.objects.filter(
            tenant_id=tenant_id, type=Payment.Type.SETUP_FEE, status=Payment.Status.PAID
        )
        if user is not None:
            paid = paid.filter(user=user)
        if not paid.exists():
            return None

        logger.warning("Recovering missing subscription for tenant %s", tenant_id)
        subscription = self.create(tenant_id)
        activate_tenant(tenant_id)
        return subscription

    def charge_due_renewal(self, tenant_id: int) -> Payment:
        """
        Charge the monthly fee for an ACTIVE subscription whose billing date passed.

        Raises:
            NotFound: SUBSCRIPTION_NOT_FOUND / TENANT_NOT_FOUND
            Conflict: SUBSCRIPTION_CANCELLED, SUBSCRIPTION_NOT_DUE
        """
        tenant = self._require_tenant(tenant_id)
        subscription = self._require(tenant_id)
        if subscription.status == Subscription.Status.CANCELLED:
            raise Conflict("Subscription is cancelled", code="SUBSCRIPTION_CANCELLED")
        if subscription.next_billing_date > self._clock():
            raise Conflict(
                "Subscription is not due for renewal",
                code="SUBSCRIPTION_NOT_DUE",
                details={"next_billing_date": subscription.next_billing_date.isoformat()},
            )

        payment = self.payments.create_payment(
            tenant.owner, tenant, Payment.Type.MONTHLY_SUBSCRIPTION
        )
        return self.payments.process_payment(payment.pk, {"reason": "renewal"})
