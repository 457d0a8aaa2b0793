"""
Checkout Transaction Manager - Storefront Platform
==================================================

Turns a buyer's cart into a PENDING order in a single unit of work:

1. Load the cart                         → EMPTY_CART
2. Validate availability (row-locked)    → ITEM_UNAVAILABLE (names every line)
3. Validate stock                        → INSUFFICIENT_STOCK (names every line)
4. Create Order + OrderItem snapshots    → ORDER_NUMBER_CONFLICT (retryable)
5. Conditionally decrement stock         → INSUFFICIENT_STOCK on a lost race
6. Delete the cart items

Any failure rolls back all six steps. Confirmation mails are scheduled on
commit and never fail the checkout.

Usage:
    >>> result = CheckoutTransactionManager().checkout(session_id, tenant.pk, buyer)
    >>> if not result.ok:
    ...     return Response(result.error.to_dict(), status=result.error.http_status)

Author: Storefront Development Team
Version: 1.0.0
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Dict, Any, List

from django.db import IntegrityError, transaction

from core.exceptions import CommerceError, ValidationFailed, Conflict
from core.unit_of_work import TransactionalRepositories, unit_of_work

from ..models import Cart, CartItem, Order, OrderItem, Product, ProductVariant
from . import notifications

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase


def generate_order_number() -> str:
    """``ORD-<epoch millis>-<6 uppercase base36 chars>``"""
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


@dataclass
class BuyerInfo:
    email: str
    name: str
    phone: str = ""
    shipping_address: Dict[str, Any] = field(default_factory=dict)
    billing_address: Optional[Dict[str, Any]] = None
    notes: str = ""


@dataclass
class CheckoutResult:
    order: Optional[Order] = None
    error: Optional[CommerceError] = None

    @property
    def ok(self) -> bool:
        return self.order is not None


def _line_label(item: CartItem) -> str:
    if item.variant_id and item.variant.label:
        return f"{item.product.title} ({item.variant.label})"
    return item.product.title


def _line_ref(item: CartItem) -> Dict[str, Any]:
    return {
        "cart_item_id": item.pk,
        "product_id": item.product_id,
        "variant_id": item.variant_id,
        "title": _line_label(item),
    }


def _variant_snapshot(variant: Optional[ProductVariant]) -> Optional[Dict[str, Any]]:
    if variant is None:
        return None
    return {
        "id": variant.pk,
        "options": dict(variant.options or {}),
        "sku": variant.sku,
        "price": str(variant.price) if variant.price is not None else None,
    }


class CheckoutTransactionManager:
    """Converts a cart into an order with correct stock accounting."""

    def __init__(self, order_number_factory=generate_order_number):
        self._order_number_factory = order_number_factory

    def checkout(self, cart_session_id: str, tenant_id: int, buyer: BuyerInfo) -> CheckoutResult:
        """
        Place an order for the cart identified by ``cart_session_id``.

        Validation and conflict failures come back as ``CheckoutResult.error``;
        unexpected database errors propagate.
        """
        try:
            order = unit_of_work(lambda repos: self._place_order(repos, cart_session_id, tenant_id, buyer))
        except CommerceError as exc:
            logger.info("Checkout for tenant %s rejected: %s", tenant_id, exc.code)
            return CheckoutResult(error=exc)

        logger.info("Order %s created for tenant %s (%s)", order.order_number, tenant_id, order.total_amount)
        return CheckoutResult(order=order)

    def _place_order(
        self, repos: TransactionalRepositories, cart_session_id: str, tenant_id: int, buyer: BuyerInfo
    ) -> Order:
        cart = repos.locked(Cart).filter(session_id=cart_session_id, tenant_id=tenant_id).first()
        items: List[CartItem] = []
        if cart is not None:
            items = list(
                repos.query(CartItem)
                .select_related("product", "variant")
                .filter(cart=cart)
                .order_by("pk")
            )
        if not items:
            raise ValidationFailed("Cart is empty", code="EMPTY_CART")

        self._lock_catalog_rows(repos, items)
        self._validate_availability(items)
        self._validate_stock(items)

        total = sum((item.price * item.quantity for item in items), Decimal("0.00"))
        order = self._create_order(repos, tenant_id, buyer, total)

        for item in items:
            repos.create(
                OrderItem,
                order=order,
                product=item.product,
                variant=item.variant,
                quantity=item.quantity,
                price=item.price,
                title=item.product.title,
                variant_data=_variant_snapshot(item.variant),
            )

        for item in items:
            if item.variant_id:
                decremented = repos.conditional_decrement(
                    ProductVariant, item.variant_id, "stock_quantity", item.quantity
                )
            else:
                decremented = repos.conditional_decrement(
                    Product, item.product_id, "stock_quantity", item.quantity
                )
            if not decremented:
                raise Conflict(
                    f"Insufficient stock for {_line_label(item)}",
                    code="INSUFFICIENT_STOCK",
                    details={"items": [_line_ref(item)]},
                )

        repos.query(CartItem).filter(cart=cart).delete()

        repos.on_commit(lambda: notifications.send_order_confirmation(order))
        repos.on_commit(lambda: notifications.send_new_order_notification(order))
        return order

    @staticmethod
    def _lock_catalog_rows(repos: TransactionalRepositories, items: List[CartItem]) -> None:
        """Re-read products and variants under a row lock and attach the fresh rows."""
        products = repos.locked(Product).in_bulk({item.product_id for item in items})
        variant_ids = {item.variant_id for item in items if item.variant_id}
        variants = repos.locked(ProductVariant).in_bulk(variant_ids) if variant_ids else {}
        for item in items:
            item.product = products[item.product_id]
            if item.variant_id:
                item.variant = variants[item.variant_id]

    @staticmethod
    def _validate_availability(items: List[CartItem]) -> None:
        unavailable = [
            _line_ref(item)
            for item in items
            if not item.product.is_available or (item.variant_id and not item.variant.is_active)
        ]
        if unavailable:
            names = ", ".join(ref["title"] for ref in unavailable)
            raise Conflict(
                f"Some items are no longer available: {names}",
                code="ITEM_UNAVAILABLE",
                details={"items": unavailable},
            )

    @staticmethod
    def _validate_stock(items: List[CartItem]) -> None:
        # the same product or variant may appear on several cart lines
        requested: Dict[tuple, int] = {}
        for item in items:
            key = ("variant", item.variant_id) if item.variant_id else ("product", item.product_id)
            requested[key] = requested.get(key, 0) + item.quantity

        insufficient = []
        seen = set()
        for item in items:
            key = ("variant", item.variant_id) if item.variant_id else ("product", item.product_id)
            stock = item.variant.stock_quantity if item.variant_id else item.product.stock_quantity
            if requested[key] > stock and key not in seen:
                seen.add(key)
                insufficient.append({**_line_ref(item), "requested": requested[key], "available": stock})

        if insufficient:
            names = ", ".join(ref["title"] for ref in insufficient)
            raise Conflict(
                f"Insufficient stock for {names}",
                code="INSUFFICIENT_STOCK",
                details={"items": insufficient},
            )

    def _create_order(
        self, repos: TransactionalRepositories, tenant_id: int, buyer: BuyerInfo, total: Decimal
    ) -> Order:
        try:
            with transaction.atomic(using=repos.using):
                return repos.create(
                    Order,
                    tenant_id=tenant_id,
                    order_number=self._order_number_factory(),
                    customer_email=buyer.email,
                    customer_name=buyer.name,
                    customer_phone=buyer.phone or "",
                    shipping_address=buyer.shipping_address or {},
                    billing_address=buyer.billing_address,
                    notes=buyer.notes or "",
                    total_amount=total,
                    status=Order.Status.PENDING,
                    payment_status=Order.PaymentStatus.PENDING,
                )
        except IntegrityError as exc:
            raise Conflict(
                "Order number collision, please retry",
                code="ORDER_NUMBER_CONFLICT",
                retryable=True,
            ) from exc


def checkout(cart_session_id: str, tenant_id: int, buyer: BuyerInfo) -> CheckoutResult:
    return CheckoutTransactionManager().checkout(cart_session_id, tenant_id, buyer)
