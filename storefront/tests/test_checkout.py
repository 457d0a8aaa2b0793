from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.db.models import F
from django.test import TestCase

from core.tests.helpers import make_tenant
from storefront.models import CartItem, Order, OrderItem, Product
from storefront.services.checkout import (
    BuyerInfo,
    CheckoutTransactionManager,
    checkout,
    generate_order_number,
)

from .helpers import make_cart, make_product, make_variant


def buyer():
    return BuyerInfo(
        email="buyer@example.com",
        name="Nino Beridze",
        phone="+995555123456",
        shipping_address={"city": "Tbilisi", "street": "Rustaveli 1"},
    )


class OrderNumberTests(TestCase):
    def test_format(self):
        number = generate_order_number()
        prefix, millis, suffix = number.split("-")
        self.assertEqual(prefix, "ORD")
        self.assertTrue(millis.isdigit())
        self.assertEqual(len(suffix), 6)
        self.assertEqual(suffix, suffix.upper())


class CheckoutTests(TestCase):
    def setUp(self):
        self.tenant = make_tenant(subdomain="checkout")
        self.shirt = make_product(self.tenant, title="T-Shirt", price="20.00", stock=5)
        self.mug = make_product(self.tenant, title="Mug", price="7.50", stock=10)

    def test_missing_cart_is_empty_cart(self):
        result = checkout("no-such-session", self.tenant.pk, buyer())

        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, "EMPTY_CART")
        self.assertEqual(result.error.http_status, 400)

    def test_cart_without_items_is_empty_cart(self):
        make_cart(self.tenant, "empty")
        result = checkout("empty", self.tenant.pk, buyer())
        self.assertEqual(result.error.code, "EMPTY_CART")

    def test_successful_checkout_creates_order_and_reserves_stock(self):
        variant = make_variant(self.shirt, {"Size": "L"}, stock=3, price="22.00")
        make_cart(self.tenant, lines=[(self.shirt, variant, 2), (self.mug, None, 1)])

        with self.captureOnCommitCallbacks(execute=True):
            result = checkout("session-1", self.tenant.pk, buyer())

        self.assertTrue(result.ok)
        order = result.order
        self.assertEqual(order.total_amount, Decimal("51.50"))
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertTrue(order.order_number.startswith("ORD-"))

        items = {item.title: item for item in OrderItem.objects.filter(order=order)}
        self.assertEqual(items["T-Shirt"].quantity, 2)
        self.assertEqual(items["T-Shirt"].price, Decimal("22.00"))
        self.assertEqual(items["T-Shirt"].variant_data["options"], {"Size": "L"})
        self.assertIsNone(items["Mug"].variant_data)

        variant.refresh_from_db()
        self.shirt.refresh_from_db()
        self.mug.refresh_from_db()
        self.assertEqual(variant.stock_quantity, 1)
        # variant lines draw from the variant, not the product
        self.assertEqual(self.shirt.stock_quantity, 5)
        self.assertEqual(self.mug.stock_quantity, 9)
        self.assertFalse(CartItem.objects.filter(cart__session_id="session-1").exists())

        self.assertEqual(len(mail.outbox), 2)
        recipients = sorted(message.to[0] for message in mail.outbox)
        self.assertEqual(recipients, ["buyer@example.com", "checkout-owner@example.com"])

    def test_out_of_stock_variant_rolls_back_everything(self):
        variant = make_variant(self.shirt, {"Size": "XL"}, stock=0)
        make_cart(self.tenant, lines=[(self.mug, None, 2), (self.shirt, variant, 1)])

        result = checkout("session-1", self.tenant.pk, buyer())

        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, "INSUFFICIENT_STOCK")
        self.assertEqual(result.error.http_status, 409)
        [line] = result.error.details["items"]
        self.assertEqual(line["title"], "T-Shirt (Size: XL)")
        self.assertEqual(line["requested"], 1)
        self.assertEqual(line["available"], 0)

        self.assertFalse(Order.objects.exists())
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 10)
        self.assertEqual(CartItem.objects.filter(cart__session_id="session-1").count(), 2)

    def test_stock_is_checked_against_the_sum_of_lines(self):
        make_cart(self.tenant, lines=[(self.shirt, None, 3), (self.shirt, None, 3)])

        result = checkout("session-1", self.tenant.pk, buyer())

        self.assertEqual(result.error.code, "INSUFFICIENT_STOCK")
        [line] = result.error.details["items"]
        self.assertEqual(line["requested"], 6)
        self.assertEqual(line["available"], 5)

    def test_unavailable_items_are_all_named(self):
        self.shirt.is_active = False
        self.shirt.save()
        self.mug.is_deleted = True
        self.mug.save()
        make_cart(self.tenant, lines=[(self.shirt, None, 1), (self.mug, None, 1)])

        result = checkout("session-1", self.tenant.pk, buyer())

        self.assertEqual(result.error.code, "ITEM_UNAVAILABLE")
        titles = {line["title"] for line in result.error.details["items"]}
        self.assertEqual(titles, {"T-Shirt", "Mug"})
        self.assertFalse(Order.objects.exists())

    def test_inactive_variant_is_unavailable(self):
        variant = make_variant(self.shirt, {"Size": "S"}, stock=4, is_active=False)
        make_cart(self.tenant, lines=[(self.shirt, variant, 1)])

        result = checkout("session-1", self.tenant.pk, buyer())

        self.assertEqual(result.error.code, "ITEM_UNAVAILABLE")

    def test_cart_of_another_tenant_is_not_used(self):
        other = make_tenant(subdomain="other")
        make_cart(other, lines=[(make_product(other), None, 1)])

        result = checkout("session-1", self.tenant.pk, buyer())

        self.assertEqual(result.error.code, "EMPTY_CART")

    def test_sequential_checkouts_never_oversell(self):
        make_cart(self.tenant, "first", lines=[(self.shirt, None, 3)])
        make_cart(self.tenant, "second", lines=[(self.shirt, None, 3)])

        first = checkout("first", self.tenant.pk, buyer())
        second = checkout("second", self.tenant.pk, buyer())

        self.assertTrue(first.ok)
        self.assertEqual(second.error.code, "INSUFFICIENT_STOCK")
        self.assertEqual(second.error.details["items"][0]["available"], 2)
        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock_quantity, 2)

    def test_stock_sold_after_validation_fails_the_decrement(self):
        make_cart(self.tenant, lines=[(self.mug, None, 1), (self.shirt, None, 3)])
        validate_stock = CheckoutTransactionManager._validate_stock

        def validate_then_sell(items):
            validate_stock(items)
            # another buyer takes four shirts between the check and the write
            Product.objects.filter(pk=self.shirt.pk).update(stock_quantity=F("stock_quantity") - 4)

        with patch.object(CheckoutTransactionManager, "_validate_stock", side_effect=validate_then_sell):
            result = checkout("session-1", self.tenant.pk, buyer())

        self.assertFalse(result.ok)
        self.assertEqual(result.error.code, "INSUFFICIENT_STOCK")
        self.assertEqual(result.error.details["items"][0]["title"], "T-Shirt")
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderItem.objects.exists())
        self.assertEqual(CartItem.objects.filter(cart__session_id="session-1").count(), 2)
        self.shirt.refresh_from_db()
        self.mug.refresh_from_db()
        self.assertEqual(self.shirt.stock_quantity, 1)
        self.assertEqual(self.mug.stock_quantity, 10)

    def test_order_number_collision_is_retryable_conflict(self):
        manager = CheckoutTransactionManager(order_number_factory=lambda: "ORD-1-AAAAAA")
        make_cart(self.tenant, "first", lines=[(self.mug, None, 1)])
        make_cart(self.tenant, "second", lines=[(self.mug, None, 1)])

        self.assertTrue(manager.checkout("first", self.tenant.pk, buyer()).ok)
        result = manager.checkout("second", self.tenant.pk, buyer())

        self.assertEqual(result.error.code, "ORDER_NUMBER_CONFLICT")
        self.assertTrue(result.error.retryable)
        self.mug.refresh_from_db()
        self.assertEqual(self.mug.stock_quantity, 9)
        self.assertEqual(CartItem.objects.filter(cart__session_id="second").count(), 1)

    def test_mail_failure_does_not_fail_checkout(self):
        make_cart(self.tenant, lines=[(self.mug, None, 1)])

        with self.settings(EMAIL_BACKEND="storefront.tests.test_checkout.BrokenBackend"):
            with self.captureOnCommitCallbacks(execute=True):
                result = checkout("session-1", self.tenant.pk, buyer())

        self.assertTrue(result.ok)
        self.assertEqual(Order.objects.count(), 1)


class BrokenBackend:
    def __init__(self, *args, **kwargs):
        pass

    def send_messages(self, messages):
        raise ConnectionError("smtp down")
