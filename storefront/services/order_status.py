"""
Order status queries for the storefront success and fail pages.

``get_payment_failure_details`` doubles as the late-reconciliation path:
when the buyer lands on the fail page before the webhook arrived, the
gateway receipt is polled and applied through the reconciler.
"""

import logging
from typing import Optional, Dict, Any

from core.exceptions import CommerceError, NotFound
from core.payment_gateway import GatewayError, get_gateway_client
from core.payment_gateway.client import STATUS_COMPLETED, STATUS_REJECTED

from ..models import Order
from .reconciliation import PaymentReconciler

logger = logging.getLogger(__name__)


def _get_order(order_id, tenant_id: int) -> Order:
    order = Order.objects.select_related("tenant").filter(pk=order_id, tenant_id=tenant_id).first()
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")
    return order


def get_order_status(order_id, tenant_id: int) -> Dict[str, Any]:
    order = _get_order(order_id, tenant_id)
    return {"order_number": order.order_number, "payment_status": order.payment_status}


def get_payment_failure_details(order_id, tenant_id: int, client=None, reconciler=None) -> Optional[Dict[str, Any]]:
    """
    Poll the gateway for an order's outcome and reconcile it.

    Returns None when the order is unknown, has no gateway order, no gateway
    is configured or the gateway could not be reached.
    """
    try:
        order = _get_order(order_id, tenant_id)
    except NotFound:
        return None
    if not order.gateway_order_id:
        return None

    client = client or get_gateway_client()
    if client is None:
        return None

    try:
        details = client.get_payment_details(order.gateway_order_id)
    except GatewayError as e:
        logger.warning("Polling gateway order %s failed: %s", order.gateway_order_id, e.message)
        return None
    if not details:
        return None

    reconciler = reconciler or PaymentReconciler()
    try:
        reconciler.reconcile_polled(order, details)
    except CommerceError as e:
        logger.error("Reconciling polled order %s failed: %s", order.order_number, e.message)
        return None

    order_status = (details.get("order_status") or {}).get("key")
    if order_status == STATUS_COMPLETED:
        return {"order_status": STATUS_COMPLETED}
    if order_status == STATUS_REJECTED:
        payment_detail = details.get("payment_detail") or {}
        return {
            "order_status": order_status,
            "reject_reason": details.get("reject_reason"),
            "payment_code": payment_detail.get("code"),
            "code_description": payment_detail.get("code_description"),
        }
    return {"order_status": order_status}
