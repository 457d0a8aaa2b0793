from django.contrib import admin

from .models import Payment, Subscription


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "tenant", "type", "amount", "status", "payment_method", "created_at")
    list_filter = ("type", "status", "payment_method")
    search_fields = ("id", "tenant__subdomain", "transaction_id", "gateway_order_id")
    readonly_fields = ("status", "transaction_id", "gateway_order_id", "metadata", "created_at", "updated_at")


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("tenant", "status", "current_period_end", "next_billing_date", "cancelled_at")
    list_filter = ("status",)
    search_fields = ("tenant__subdomain", "tenant__name")
    readonly_fields = ("created_at", "updated_at")
