"""
Billing Models - Storefront Platform

Payment: one record per charge attempt (setup fee or monthly subscription).
A retried charge creates a new Payment; the only mutation of an existing
record is the resolution of its own PENDING attempt to PAID or FAILED.

Subscription: at most one per tenant. ``current_period_end`` is always the
day before ``next_billing_date``.

Both are written exclusively through billing.services (PaymentProcessor and
SubscriptionStateMachine), never directly by request handlers.

Author: Storefront Development Team
Version: 1.0.0
"""

import uuid

from django.conf import settings
from django.db import models

from core.tenants.models import Tenant


class Payment(models.Model):
    """A single attempted charge against a tenant owner."""

    class Type(models.TextChoices):
        SETUP_FEE = "SETUP_FEE", "Setup fee"
        MONTHLY_SUBSCRIPTION = "MONTHLY_SUBSCRIPTION", "Monthly subscription"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        FAILED = "FAILED", "Failed"

    EXTERNAL_ID_PREFIX = "PAY-"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payments",
    )
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name="payments")
    type = models.CharField(max_length=32, choices=Type.choices)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    payment_method = models.CharField(max_length=32, blank=True)
    transaction_id = models.CharField(max_length=100, blank=True, null=True)
    gateway_order_id = models.CharField(max_length=100, blank=True, null=True, unique=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "type", "status"], name="billing_payment_lookup_idx"),
        ]

    @property
    def external_order_id(self) -> str:
        return f"{self.EXTERNAL_ID_PREFIX}{self.pk}"

    def __str__(self):
        return f"{self.get_type_display()} {self.amount} ({self.status})"


class Subscription(models.Model):
    """A tenant's recurring billing state."""

    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        CANCELLED = "CANCELLED", "Cancelled"

    tenant = models.OneToOneField(
        Tenant, on_delete=models.CASCADE, related_name="subscription"
    )
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.ACTIVE, db_index=True
    )
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField(db_index=True)
    next_billing_date = models.DateTimeField()
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.tenant.subdomain}: {self.status} until {self.current_period_end:%Y-%m-%d}"
