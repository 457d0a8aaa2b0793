"""
Subscription Expiry Sweep - Storefront Platform

Finds CANCELLED subscriptions whose paid period has ended and switches their
tenants off. Runs either on a background thread inside the web process
(``ExpirySweeper``, started from backend/wsgi.py) or from cron through
``python manage.py expire_subscriptions``.

Each tenant is deactivated with a single UPDATE that re-checks its
subscription, so a reactivation racing the sweep wins and stopping the sweeper
mid-batch never leaves a tenant half updated. One failing subscription does
not abort the batch; its error is collected and reported.

Author: Storefront Development Team
Version: 1.0.0
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from django.db import close_old_connections
from django.utils import timezone

from core.tenants.services import deactivate_lapsed_tenant

from .models import Subscription

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600


@dataclass
class SweepResult:
    processed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)


def expired_subscriptions(now=None):
    now = now or timezone.now()
    return Subscription.objects.select_related("tenant").filter(
        status=Subscription.Status.CANCELLED,
        current_period_end__lt=now,
        tenant__is_active=True,
    )


def process_expired_subscriptions(now=None, stop_event: Optional[threading.Event] = None) -> SweepResult:
    """Deactivate every tenant whose cancelled period has lapsed."""
    now = now or timezone.now()
    result = SweepResult()
    for subscription in expired_subscriptions(now):
        if stop_event is not None and stop_event.is_set():
            logger.info("Expiry sweep interrupted after %s subscriptions", result.processed)
            break
        try:
            if deactivate_lapsed_tenant(subscription.tenant_id, now):
                result.processed += 1
        except Exception as e:
            logger.exception("Expiring subscription %s failed", subscription.pk)
            result.errors.append(
                {"subscription_id": subscription.pk, "tenant_id": subscription.tenant_id, "error": str(e)}
            )

    if result.processed or result.errors:
        logger.info(
            "Expiry sweep finished: %s tenants deactivated, %s errors",
            result.processed,
            len(result.errors),
        )
    return result


class ExpirySweeper:
    """
    Periodic expiry sweep on a daemon thread.

    Example:
        >>> sweeper = ExpirySweeper(interval_seconds=3600)
        >>> sweeper.start()
        >>> sweeper.stop()
    """

    def __init__(self, interval_seconds: int = DEFAULT_INTERVAL_SECONDS):
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the sweep loop; returns False if it is already running."""
        with self._lock:
            if self.is_running:
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="subscription-expiry-sweeper", daemon=True
            )
            self._thread.start()
        logger.info("Subscription expiry sweeper started (every %ss)", self.interval_seconds)
        return True

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        """Signal the loop to stop and wait for the current pass to finish."""
        with self._lock:
            thread = self._thread
            self._stop_event.set()
        if thread is not None:
            thread.join(timeout)
        logger.info("Subscription expiry sweeper stopped")

    def run_once(self) -> SweepResult:
        try:
            return process_expired_subscriptions(stop_event=self._stop_event)
        finally:
            close_old_connections()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Subscription expiry sweep failed")
            self._stop_event.wait(self.interval_seconds)


_sweeper: Optional[ExpirySweeper] = None


def start_expiry_sweeper(interval_seconds: int = DEFAULT_INTERVAL_SECONDS) -> ExpirySweeper:
    global _sweeper
    if _sweeper is None:
        _sweeper = ExpirySweeper(interval_seconds)
    _sweeper.start()
    return _sweeper


def stop_expiry_sweeper(timeout: Optional[float] = 10.0) -> None:
    if _sweeper is not None:
        _sweeper.stop(timeout)
