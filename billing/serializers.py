"""
Billing Serializers - Storefront Platform

Read-only representations of subscriptions and payments for the dashboard.

Author: Storefront Development Team
Version: 1.0.0
"""

from django.utils import timezone
from rest_framework import serializers

from .models import Payment, Subscription


class SubscriptionSerializer(serializers.ModelSerializer):
    """
    Serializer for the Subscription model.

    ``is_serving`` tells the dashboard whether the store is still online
    (ACTIVE, or CANCELLED with time left in the paid period).
    """

    is_serving = serializers.SerializerMethodField()

    class Meta:
        model = Subscription
        fields = [
            "id",
            "tenant",
            "status",
            "current_period_start",
            "current_period_end",
            "next_billing_date",
            "cancelled_at",
            "is_serving",
        ]
        read_only_fields = fields

    def get_is_serving(self, obj):
        if obj.status == Subscription.Status.ACTIVE:
            return True
        return timezone.now() < obj.current_period_end


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["id", "type", "amount", "status", "payment_method", "transaction_id", "created_at"]
        read_only_fields = fields
