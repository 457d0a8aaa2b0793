"""
Storefront Serializers - Storefront Platform

- CheckoutRequestSerializer: validates the buyer's checkout form
- OrderSerializer: order confirmation payload with frozen item snapshots

Author: Storefront Development Team
Version: 1.0.0
"""

from rest_framework import serializers

from .models import Order, OrderItem
from .services.checkout import BuyerInfo


class CheckoutRequestSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=100)
    customer_email = serializers.EmailField()
    customer_name = serializers.CharField(max_length=200)
    customer_phone = serializers.CharField(max_length=40, required=False, allow_blank=True, default="")
    shipping_address = serializers.DictField(required=False, default=dict)
    billing_address = serializers.DictField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def to_buyer(self) -> BuyerInfo:
        data = self.validated_data
        return BuyerInfo(
            email=data["customer_email"],
            name=data["customer_name"],
            phone=data.get("customer_phone", ""),
            shipping_address=data.get("shipping_address") or {},
            billing_address=data.get("billing_address"),
            notes=data.get("notes", ""),
        )


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ["id", "product", "variant", "title", "quantity", "price", "variant_data"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_email",
            "customer_name",
            "total_amount",
            "status",
            "payment_status",
            "items",
            "created_at",
        ]
        read_only_fields = fields
