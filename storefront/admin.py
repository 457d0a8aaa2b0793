from django.contrib import admin

from .models import Product, ProductVariant, Cart, CartItem, Order, OrderItem


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("title", "tenant", "price", "stock_quantity", "is_active", "is_deleted")
    list_filter = ("is_active", "is_deleted", "tenant")
    search_fields = ("title", "sku")
    inlines = [ProductVariantInline]


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    list_display = ("session_id", "tenant", "updated_at")
    inlines = [CartItemInline]


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ("product", "variant", "title", "quantity", "price", "variant_data")
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ("order_number", "tenant", "customer_email", "total_amount", "status", "payment_status", "created_at")
    list_filter = ("status", "payment_status", "tenant")
    search_fields = ("order_number", "customer_email", "gateway_order_id")
    # payment status belongs to the reconciler
    readonly_fields = ("order_number", "total_amount", "payment_status", "gateway_order_id", "created_at", "updated_at")
    inlines = [OrderItemInline]
