"""
Payment Processing - Storefront Platform
========================================

Resolves tenant billing payments (setup fee, monthly subscription) and runs
the post-payment consequences inside the same database transaction as the
PENDING → PAID transition.

Post-payment dispatch
---------------------
- SETUP_FEE             → create the subscription (idempotent) + activate tenant
- MONTHLY_SUBSCRIPTION  → renew the subscription period + activate tenant

Two ways to settle a payment:

1. ``process_payment``       internal charge (payment method ``MOCK``); used for
                             reactivation after expiry and due renewals.
2. ``resolve_from_gateway``  gateway callback / polling result for a payment
                             whose external order id is ``PAY-<uuid>``.

Idempotency & Safety
--------------------
- The transition is a compare-and-set on ``status='PENDING'``; a PAID payment
  is returned unchanged and never dispatched twice.
- FAILED is terminal: ``process_payment`` refuses it, callbacks ignore it.
- An internal charge whose dispatch fails is marked FAILED in a separate
  write. A gateway-confirmed payment whose dispatch fails stays PENDING so
  the gateway's webhook retry can complete it.

Author: Storefront Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
import secrets
import time
from decimal import Decimal
from typing import Optional, Dict, Any, Callable, TYPE_CHECKING

from django.utils import timezone

from core.exceptions import CommerceError, NotFound, Conflict, InternalError
from core.payment_gateway import (
    BasketItem,
    GatewayOrderRequest,
    gateway_callback_url,
    get_gateway_client,
)
from core.tenants.models import Tenant
from core.unit_of_work import TransactionalRepositories, unit_of_work

from ..models import Payment
from ..pricing import setup_fee_amount, monthly_subscription_amount

if TYPE_CHECKING:
    from .subscriptions import SubscriptionStateMachine

logger = logging.getLogger(__name__)

MOCK_METHOD = "MOCK"
GATEWAY_METHOD = "BOG"


def _generate_transaction_id() -> str:
    return f"MOCK-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def default_amount(payment_type: str) -> Decimal:
    if payment_type == Payment.Type.SETUP_FEE:
        return setup_fee_amount()
    return monthly_subscription_amount()


def payment_id_from_external(external_order_id: Optional[str]) -> Optional[str]:
    """Return the payment id encoded in a ``PAY-<uuid>`` external order id."""
    if not external_order_id or not external_order_id.startswith(Payment.EXTERNAL_ID_PREFIX):
        return None
    return external_order_id[len(Payment.EXTERNAL_ID_PREFIX):]


class PaymentProcessor:
    """
    Creates and settles billing payments.

    Args:
        subscriptions: State machine used by the post-payment dispatch
        clock: Time source, injectable for tests
    """

    def __init__(
        self,
        subscriptions: Optional["SubscriptionStateMachine"] = None,
        clock: Callable = timezone.now,
    ) -> None:
        self._subscriptions = subscriptions
        self._clock = clock

    @property
    def subscriptions(self) -> "SubscriptionStateMachine":
        if self._subscriptions is None:
            from .subscriptions import SubscriptionStateMachine

            self._subscriptions = SubscriptionStateMachine(payments=self, clock=self._clock)
        return self._subscriptions

    # ---------- creation ----------

    def create_payment(
        self,
        user,
        tenant: Tenant,
        payment_type: str,
        amount: Optional[Decimal] = None,
        payment_method: str = MOCK_METHOD,
    ) -> Payment:
        """Create a PENDING payment; the amount defaults to the configured price."""
        payment = Payment.objects.create(
            user=user,
            tenant=tenant,
            type=payment_type,
            amount=amount if amount is not None else default_amount(payment_type),
            status=Payment.Status.PENDING,
            payment_method=payment_method,
        )
        logger.info(
            "Created %s payment %s for tenant %s (%s)",
            payment_type,
            payment.pk,
            tenant.pk,
            payment.amount,
        )
        return payment

    def pending_setup_fee(self, tenant_id: int) -> Optional[Payment]:
        return (
            Payment.objects.filter(
                tenant_id=tenant_id,
                type=Payment.Type.SETUP_FEE,
                status=Payment.Status.PENDING,
            )
            .order_by("-created_at")
            .first()
        )

    def get_or_create_setup_fee(self, tenant: Tenant) -> Payment:
        return self.pending_setup_fee(tenant.pk) or self.create_payment(
            tenant.owner, tenant, Payment.Type.SETUP_FEE, payment_method=GATEWAY_METHOD
        )

    # ---------- settlement ----------

    def process_payment(
        self,
        payment_id,
        payment_data: Optional[Dict[str, Any]] = None,
        restart_period: bool = False,
    ) -> Payment:
        """
        Charge internally and settle the payment PENDING → PAID.

        Raises:
            NotFound: PAYMENT_NOT_FOUND
            Conflict: PAYMENT_ALREADY_FAILED
            InternalError: the post-payment step failed (payment marked FAILED)
        """
        metadata = dict(payment_data or {})
        try:
            payment, _ = unit_of_work(
                lambda repos: self._settle_paid(
                    repos,
                    payment_id,
                    transaction_id=_generate_transaction_id(),
                    metadata=metadata,
                    restart_period=restart_period,
                )
            )
            return payment
        except CommerceError:
            raise
        except Exception as exc:
            logger.exception("Processing payment %s failed", payment_id)
            self._mark_failed(payment_id, {"error": str(exc)})
            raise InternalError(
                f"Payment processing failed: {exc}", code="PAYMENT_PROCESSING_FAILED"
            ) from exc

    def resolve_from_gateway(
        self,
        payment_id,
        succeeded: bool,
        gateway_order_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Apply a gateway outcome to a PENDING payment.

        Returns True when this call performed the transition, False when the
        payment was already resolved.
        """
        metadata = {"gateway": dict(details or {})}
        if gateway_order_id:
            metadata["gateway_order_id"] = gateway_order_id

        if not succeeded:
            return self._mark_failed(payment_id, metadata)

        try:
            _, transitioned = unit_of_work(
                lambda repos: self._settle_paid(
                    repos,
                    payment_id,
                    transaction_id=gateway_order_id or _generate_transaction_id(),
                    metadata=metadata,
                    restart_period=False,
                )
            )
        except Conflict:
            logger.info("Ignoring success callback for already failed payment %s", payment_id)
            return False
        return transitioned

    def _settle_paid(
        self,
        repos: TransactionalRepositories,
        payment_id,
        transaction_id: str,
        metadata: Dict[str, Any],
        restart_period: bool,
    ):
        payment = repos.locked(Payment).filter(pk=payment_id).first()
        if payment is None:
            raise NotFound("Payment not found", code="PAYMENT_NOT_FOUND")
        if payment.status == Payment.Status.PAID:
            return payment, False
        if payment.status == Payment.Status.FAILED:
            raise Conflict(
                "Payment already failed. Please create a new payment.",
                code="PAYMENT_ALREADY_FAILED",
            )

        now = self._clock()
        merged = {**(payment.metadata or {}), **metadata, "processed_at": now.isoformat()}
        transitioned = repos.compare_and_set(
            Payment,
            payment.pk,
            "status",
            Payment.Status.PENDING,
            status=Payment.Status.PAID,
            transaction_id=transaction_id,
            metadata=merged,
            updated_at=now,
        )
        if not transitioned:
            return repos.query(Payment).get(pk=payment.pk), False

        handler = POST_PAYMENT_HANDLERS[payment.type]
        handler(self, repos, payment, now, restart_period)

        logger.info("Payment %s (%s) marked PAID", payment.pk, payment.type)
        return repos.query(Payment).get(pk=payment.pk), True

    def _mark_failed(self, payment_id, metadata: Dict[str, Any]) -> bool:
        payment = Payment.objects.filter(pk=payment_id).first()
        if payment is None:
            raise NotFound("Payment not found", code="PAYMENT_NOT_FOUND")
        now = self._clock()
        merged = {**(payment.metadata or {}), **metadata, "failed_at": now.isoformat()}
        changed = Payment.objects.filter(pk=payment.pk, status=Payment.Status.PENDING).update(
            status=Payment.Status.FAILED, metadata=merged, updated_at=now
        )
        if changed:
            logger.warning("Payment %s marked FAILED", payment.pk)
        return bool(changed)

    # ---------- post-payment dispatch ----------

    def _on_setup_fee_paid(self, repos, payment: Payment, now, restart_period: bool) -> None:
        self.subscriptions.create_in(repos, payment.tenant_id, now=now)
        repos.query(Tenant).filter(pk=payment.tenant_id).update(is_active=True, updated_at=now)

    def _on_subscription_paid(self, repos, payment: Payment, now, restart_period: bool) -> None:
        self.subscriptions.renew_in(repos, payment.tenant_id, now=now, restart_period=restart_period)
        repos.query(Tenant).filter(pk=payment.tenant_id).update(is_active=True, updated_at=now)

    # ---------- gateway checkout ----------

    def initiate_gateway_checkout(self, payment: Payment, success_url: str, fail_url: str) -> Optional[str]:
        """
        Create a gateway order for a PENDING payment and return the redirect URL.

        Returns None when no gateway is configured.

        Raises:
            GatewayError: provider rejected the request; the payment stays PENDING
        """
        client = get_gateway_client()
        if client is None:
            return None

        tenant = payment.tenant
        request = GatewayOrderRequest(
            internal_order_id=payment.external_order_id,
            callback_url=gateway_callback_url(),
            total_amount=payment.amount,
            basket=[
                BasketItem(
                    product_id=payment.type,
                    description=payment.get_type_display(),
                    quantity=1,
                    unit_price=payment.amount,
                )
            ],
            customer_name=tenant.owner.get_full_name() or tenant.owner.get_username(),
            customer_email=tenant.owner.email,
            success_url=success_url,
            fail_url=fail_url,
        )
        gateway_order = client.create_gateway_order(request)
        Payment.objects.filter(pk=payment.pk, status=Payment.Status.PENDING).update(
            gateway_order_id=gateway_order.gateway_order_id, updated_at=self._clock()
        )
        return gateway_order.redirect_url


POST_PAYMENT_HANDLERS = {
    Payment.Type.SETUP_FEE: PaymentProcessor._on_setup_fee_paid,
    Payment.Type.MONTHLY_SUBSCRIPTION: PaymentProcessor._on_subscription_paid,
}

