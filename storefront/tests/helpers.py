"""Catalog and cart fixtures for the storefront tests."""

from decimal import Decimal

from storefront.models import Cart, CartItem, Product, ProductVariant


def make_product(tenant, title="T-Shirt", price="20.00", stock=10, **kwargs):
    return Product.objects.create(
        tenant=tenant, title=title, price=Decimal(price), stock_quantity=stock, **kwargs
    )


def make_variant(product, options=None, stock=5, price=None, **kwargs):
    return ProductVariant.objects.create(
        product=product,
        options=options or {"Size": "M"},
        stock_quantity=stock,
        price=Decimal(price) if price is not None else None,
        **kwargs,
    )


def make_cart(tenant, session_id="session-1", lines=()):
    """``lines`` is a sequence of ``(product, variant_or_None, quantity)``."""
    cart = Cart.objects.create(tenant=tenant, session_id=session_id)
    for product, variant, quantity in lines:
        price = variant.price if variant is not None and variant.price is not None else product.price
        CartItem.objects.create(
            cart=cart, product=product, variant=variant, quantity=quantity, price=price
        )
    return cart
