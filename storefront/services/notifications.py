"""
Best-effort order notifications.

Every sender here is scheduled with ``transaction.on_commit`` by its caller
and must never raise: delivery failures are logged and dropped.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def _deliver(subject: str, message: str, recipient: str, order_number: str) -> bool:
    if not recipient:
        return False
    try:
        send_mail(
            subject,
            message,
            getattr(settings, "DEFAULT_FROM_EMAIL", None),
            [recipient],
            fail_silently=False,
        )
        return True
    except Exception:
        logger.warning("Notification for order %s could not be sent", order_number, exc_info=True)
        return False


def send_order_confirmation(order) -> bool:
    lines = [f"- {item.quantity} x {item.title}: {item.line_total}" for item in order.items.all()]
    message = "\n".join(
        [
            f"Hello {order.customer_name},",
            "",
            f"thank you for your order {order.order_number} at {order.tenant.name}.",
            "",
            *lines,
            "",
            f"Total: {order.total_amount}",
        ]
    )
    return _deliver(
        f"Order {order.order_number} received", message, order.customer_email, order.order_number
    )


def send_new_order_notification(order) -> bool:
    owner = order.tenant.owner
    message = (
        f"A new order {order.order_number} over {order.total_amount} was placed "
        f"in {order.tenant.name} by {order.customer_name}."
    )
    return _deliver(f"New order {order.order_number}", message, owner.email, order.order_number)


def send_payment_confirmation(order) -> bool:
    message = (
        f"Hello {order.customer_name},\n\n"
        f"we received your payment for order {order.order_number}."
    )
    return _deliver(
        f"Payment confirmed for {order.order_number}", message, order.customer_email, order.order_number
    )
