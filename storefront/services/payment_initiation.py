"""
Gateway payment initiation for storefront orders.

Runs after checkout has committed. A gateway failure leaves the order
PENDING with its stock reserved; initiation can be retried for the same
order because the idempotency key is derived from the order id.
"""

import logging
from typing import Optional

from django.conf import settings
from django.utils import timezone

from core.exceptions import Conflict, NotFound
from core.payment_gateway import (
    BasketItem,
    GatewayClient,
    GatewayOrderRequest,
    gateway_callback_url,
    get_gateway_client,
)

from ..models import Order

logger = logging.getLogger(__name__)


def storefront_urls(order: Order):
    """Success and fail redirect URLs for the buyer's browser."""
    base = getattr(settings, "FRONTEND_URL", "http://localhost:3000").rstrip("/")
    store = f"{base}/store/{order.tenant.subdomain}/checkout"
    return f"{store}/success?order={order.pk}", f"{store}/failed?order={order.pk}"


def build_gateway_request(order: Order) -> GatewayOrderRequest:
    success_url, fail_url = storefront_urls(order)
    basket = [
        BasketItem(
            product_id=str(item.variant_id or item.product_id or item.pk),
            description=item.title,
            quantity=item.quantity,
            unit_price=item.price,
            sku=(item.variant_data or {}).get("sku") or None,
        )
        for item in order.items.all()
    ]
    return GatewayOrderRequest(
        internal_order_id=str(order.pk),
        callback_url=gateway_callback_url(),
        total_amount=order.total_amount,
        basket=basket,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone or None,
        success_url=success_url,
        fail_url=fail_url,
        ttl_minutes=int(getattr(settings, "BOG_ORDER_TTL_MINUTES", 15)),
    )


def initiate_order_payment(order: Order, client: Optional[GatewayClient] = None) -> Optional[str]:
    """
    Create the gateway order and return the buyer redirect URL.

    Returns None when no gateway is configured.

    Raises:
        GatewayError: the provider rejected the request (order stays PENDING)
    """
    client = client or get_gateway_client()
    if client is None:
        logger.warning("Payment gateway not configured, order %s has no redirect", order.order_number)
        return None

    gateway_order = client.create_gateway_order(build_gateway_request(order))
    Order.objects.filter(pk=order.pk, payment_status=Order.PaymentStatus.PENDING).update(
        gateway_order_id=gateway_order.gateway_order_id, updated_at=timezone.now()
    )
    order.gateway_order_id = gateway_order.gateway_order_id
    return gateway_order.redirect_url


def retry_order_payment(order_id, tenant_id: int, client: Optional[GatewayClient] = None) -> Optional[str]:
    """
    Start the gateway payment again for an order that is still PENDING.

    Raises:
        NotFound: ORDER_NOT_FOUND
        Conflict: ORDER_NOT_PENDING when the payment was already resolved
        GatewayError: the provider rejected the request again
    """
    order = Order.objects.select_related("tenant").filter(pk=order_id, tenant_id=tenant_id).first()
    if order is None:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND")
    if order.payment_status != Order.PaymentStatus.PENDING:
        raise Conflict(
            "Order payment is already resolved",
            code="ORDER_NOT_PENDING",
            details={"payment_status": order.payment_status},
        )
    logger.info("Retrying gateway payment for order %s", order.order_number)
    return initiate_order_payment(order, client=client)
