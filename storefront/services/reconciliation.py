"""
Payment Reconciler - Storefront Platform
========================================

Applies gateway outcomes (webhook callbacks and fail-page polling) to orders
and billing payments.

Transition table (order payment status):

    PENDING + success   → PAID    (order CONFIRMED, payment-confirmed mail)
    PENDING + rejected  → FAILED  (order CANCELLED; stock is only returned when
                                  STOREFRONT_RESTOCK_ON_PAYMENT_FAILURE is on)
    PAID    + anything  → no-op
    FAILED  + anything  → no-op

Every transition is a single ``UPDATE ... WHERE payment_status='PENDING'``;
the side effects run only for the caller whose update hit the row, so
duplicate or concurrent deliveries of the same callback are harmless.

External order ids
------------------
- ``<uuid>``      → storefront Order
- ``PAY-<uuid>``  → billing Payment (setup fee / subscription), handed to
                    ``PaymentProcessor.resolve_from_gateway``

Author: Storefront Development Team
Version: 1.0.0
"""

import logging
import uuid
from enum import Enum
from typing import Optional, Dict, Any

from django.conf import settings
from django.utils import timezone

from billing.models import Payment
from billing.services.payments import PaymentProcessor, payment_id_from_external
from core.payment_gateway import GatewayClient, ParsedCallback
from core.payment_gateway.client import STATUS_COMPLETED, STATUS_REJECTED
from core.unit_of_work import unit_of_work

from ..models import Order, OrderItem, Product, ProductVariant
from . import notifications

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, Enum):
    FINALIZED = "finalized"
    FAILED = "failed"
    ALREADY_RESOLVED = "already_resolved"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"


def _parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class PaymentReconciler:
    """
    Decides whether a gateway event finalizes, fails or is ignored.

    Args:
        payments: Processor for ``PAY-`` prefixed billing payments
    """

    def __init__(self, payments: Optional[PaymentProcessor] = None):
        self.payments = payments or PaymentProcessor()

    # ---------- entry points ----------

    def handle_callback(self, parsed: ParsedCallback) -> ReconcileOutcome:
        """Apply a parsed webhook callback. Exceptions propagate (webhook answers 500)."""
        if GatewayClient.is_successful(parsed):
            succeeded = True
        elif parsed.status == STATUS_REJECTED:
            succeeded = False
        else:
            logger.info(
                "Ignoring gateway callback for %s with status %s (code %s)",
                parsed.gateway_order_id,
                parsed.status,
                parsed.code or "-",
            )
            return ReconcileOutcome.IGNORED

        details = {
            "status": parsed.status,
            "code": parsed.code,
            "code_description": parsed.code_description,
            "reject_reason": parsed.reject_reason,
            "transfer_amount": parsed.transfer_amount,
        }
        return self.apply(parsed.external_order_id, parsed.gateway_order_id, succeeded, details)

    def apply(
        self,
        external_order_id: Optional[str],
        gateway_order_id: Optional[str],
        succeeded: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> ReconcileOutcome:
        payment_id = payment_id_from_external(external_order_id)
        if payment_id is not None:
            return self._apply_to_payment(payment_id, gateway_order_id, succeeded, details)

        order = self._resolve_order(external_order_id, gateway_order_id)
        if order is None:
            payment = (
                Payment.objects.filter(gateway_order_id=gateway_order_id).first()
                if gateway_order_id
                else None
            )
            if payment is not None:
                return self._apply_to_payment(payment.pk, gateway_order_id, succeeded, details)
            logger.warning(
                "No order or payment for gateway callback (external=%s, gateway=%s)",
                external_order_id,
                gateway_order_id,
            )
            return ReconcileOutcome.NOT_FOUND

        if succeeded:
            changed = self.finalize_order(order, gateway_order_id)
            return ReconcileOutcome.FINALIZED if changed else ReconcileOutcome.ALREADY_RESOLVED
        changed = self.fail_order(order, gateway_order_id)
        return ReconcileOutcome.FAILED if changed else ReconcileOutcome.ALREADY_RESOLVED

    def reconcile_polled(self, order: Order, details: Dict[str, Any]) -> ReconcileOutcome:
        """Apply a receipt fetched from the gateway (fail-page fallback)."""
        order_status = (details.get("order_status") or {}).get("key")
        if order_status == STATUS_COMPLETED:
            changed = self.finalize_order(order, order.gateway_order_id)
            return ReconcileOutcome.FINALIZED if changed else ReconcileOutcome.ALREADY_RESOLVED
        if order_status == STATUS_REJECTED:
            changed = self.fail_order(order, order.gateway_order_id)
            return ReconcileOutcome.FAILED if changed else ReconcileOutcome.ALREADY_RESOLVED
        return ReconcileOutcome.IGNORED

    # ---------- transitions ----------

    def finalize_order(self, order: Order, gateway_order_id: Optional[str] = None) -> bool:
        """PENDING → PAID. Returns True only for the call that performed it."""

        def work(repos):
            changes = {
                "payment_status": Order.PaymentStatus.PAID,
                "status": Order.Status.CONFIRMED,
                "updated_at": timezone.now(),
            }
            if gateway_order_id and not order.gateway_order_id:
                changes["gateway_order_id"] = gateway_order_id
            transitioned = repos.compare_and_set(
                Order, order.pk, "payment_status", Order.PaymentStatus.PENDING, **changes
            )
            if transitioned:
                repos.on_commit(lambda: notifications.send_payment_confirmation(order))
            return transitioned

        transitioned = unit_of_work(work)
        if transitioned:
            logger.info("Order %s paid", order.order_number)
        else:
            logger.info("Order %s already resolved, success event ignored", order.order_number)
        return transitioned

    def fail_order(self, order: Order, gateway_order_id: Optional[str] = None) -> bool:
        """
        PENDING → FAILED, order CANCELLED.

        Stock decremented at checkout stays decremented unless
        ``STOREFRONT_RESTOCK_ON_PAYMENT_FAILURE`` is enabled.
        """
        restock = getattr(settings, "STOREFRONT_RESTOCK_ON_PAYMENT_FAILURE", False)

        def work(repos):
            changes = {
                "payment_status": Order.PaymentStatus.FAILED,
                "status": Order.Status.CANCELLED,
                "updated_at": timezone.now(),
            }
            if gateway_order_id and not order.gateway_order_id:
                changes["gateway_order_id"] = gateway_order_id
            transitioned = repos.compare_and_set(
                Order, order.pk, "payment_status", Order.PaymentStatus.PENDING, **changes
            )
            if not transitioned:
                return False
            if not restock:
                return True
            for item in repos.query(OrderItem).filter(order_id=order.pk):
                if item.variant_id:
                    repos.increment(ProductVariant, item.variant_id, "stock_quantity", item.quantity)
                elif item.product_id:
                    repos.increment(Product, item.product_id, "stock_quantity", item.quantity)
            return True

        transitioned = unit_of_work(work)
        if transitioned:
            logger.info("Order %s payment failed, order cancelled", order.order_number)
        else:
            logger.info("Order %s already resolved, rejection ignored", order.order_number)
        return transitioned

    # ---------- helpers ----------

    @staticmethod
    def _resolve_order(external_order_id: Optional[str], gateway_order_id: Optional[str]) -> Optional[Order]:
        order_id = _parse_uuid(external_order_id)
        if order_id is not None:
            order = Order.objects.select_related("tenant").filter(pk=order_id).first()
            if order is not None:
                return order
        if gateway_order_id:
            return Order.objects.select_related("tenant").filter(gateway_order_id=gateway_order_id).first()
        return None

    def _apply_to_payment(self, payment_id, gateway_order_id, succeeded, details) -> ReconcileOutcome:
        if _parse_uuid(payment_id) is None or not Payment.objects.filter(pk=payment_id).exists():
            logger.warning("Gateway callback for unknown payment %s", payment_id)
            return ReconcileOutcome.NOT_FOUND
        changed = self.payments.resolve_from_gateway(
            payment_id, succeeded, gateway_order_id=gateway_order_id, details=details
        )
        if not changed:
            return ReconcileOutcome.ALREADY_RESOLVED
        return ReconcileOutcome.FINALIZED if succeeded else ReconcileOutcome.FAILED
