"""
Centralized pricing and billing period arithmetic (amounts in GEL).
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.utils import timezone


def setup_fee_amount() -> Decimal:
    return Decimal(str(getattr(settings, "BILLING_SETUP_FEE", "1.00")))


def monthly_subscription_amount() -> Decimal:
    return Decimal(str(getattr(settings, "BILLING_MONTHLY_SUBSCRIPTION", "49.00")))


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


@dataclass(frozen=True)
class BillingPeriod:
    start: datetime
    end: datetime
    next_billing_date: datetime


def billing_period(start: Optional[datetime] = None) -> BillingPeriod:
    """One-month period starting at ``start``; ``end`` is the day before the next charge."""
    start = start or timezone.now()
    next_billing_date = add_months(start, 1)
    return BillingPeriod(
        start=start,
        end=next_billing_date - timedelta(days=1),
        next_billing_date=next_billing_date,
    )
