"""
Expire Subscriptions Command - Storefront Platform

Deactivates tenants whose cancelled subscription period has ended.
Run it from cron, or keep it running with ``--loop``.

Author: Storefront Development Team
Version: 1.0.0
"""

import time

from django.core.management.base import BaseCommand
from django.utils import timezone

from billing.jobs import DEFAULT_INTERVAL_SECONDS, expired_subscriptions, process_expired_subscriptions


class Command(BaseCommand):
    """
    Expire lapsed subscriptions

    Usage:
        python manage.py expire_subscriptions
        python manage.py expire_subscriptions --dry-run
        python manage.py expire_subscriptions --loop --interval 3600
    """

    help = "Deactivate tenants whose cancelled subscription period has ended"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only list the tenants that would be deactivated",
        )
        parser.add_argument(
            "--loop",
            action="store_true",
            help="Keep running and sweep every --interval seconds",
        )
        parser.add_argument(
            "--interval",
            type=int,
            default=DEFAULT_INTERVAL_SECONDS,
            help="Seconds between sweeps in --loop mode",
        )

    def handle(self, *args, **options):
        if options["dry_run"]:
            self._dry_run()
            return

        while True:
            self._sweep()
            if not options["loop"]:
                return
            time.sleep(options["interval"])

    def _dry_run(self):
        now = timezone.now()
        expired = list(expired_subscriptions(now))
        if not expired:
            self.stdout.write(self.style.SUCCESS("No expired subscriptions found"))
            return

        self.stdout.write(
            self.style.WARNING(f"DRY RUN: would deactivate {len(expired)} tenants")
        )
        for subscription in expired:
            self.stdout.write(
                f"   - {subscription.tenant.subdomain} (period ended {subscription.current_period_end:%Y-%m-%d})"
            )

    def _sweep(self):
        result = process_expired_subscriptions()
        if result.processed == 0 and not result.errors:
            self.stdout.write(self.style.SUCCESS("No expired subscriptions found"))
            return

        self.stdout.write(
            self.style.SUCCESS(f"Deactivated {result.processed} tenants")
        )
        for error in result.errors:
            self.stderr.write(
                self.style.ERROR(
                    f"   Subscription {error['subscription_id']} (tenant {error['tenant_id']}): {error['error']}"
                )
            )
