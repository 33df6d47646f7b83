"""
Management command to purge old ingestion data and archive expired coupons.

Usage:
    python manage.py cleanup_coupon_data
    python manage.py cleanup_coupon_data --dry-run
    python manage.py cleanup_coupon_data --stats-retention-days=28 --run-retention-days=14
"""

import logging

from django.core.management.base import BaseCommand

from coupons.services.maintenance import cleanup_coupon_data

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Purge old CouponStats and ProcessedRun rows, archive expired coupons."""

    help = 'Delete old coupon statistics and runs, and archive expired coupons'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Count what would be changed without changing anything',
        )
        parser.add_argument(
            '--stats-retention-days',
            type=int,
            default=None,
            help='Keep CouponStats for this many days (default: COUPON_STATS_RETENTION_DAYS)',
        )
        parser.add_argument(
            '--run-retention-days',
            type=int,
            default=None,
            help='Keep ProcessedRun rows for this many days (default: PROCESSED_RUN_RETENTION_DAYS)',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write(self.style.WARNING('Running in dry-run mode - nothing will be changed'))

        result = cleanup_coupon_data(
            dry_run=dry_run,
            stats_retention_days=options['stats_retention_days'],
            run_retention_days=options['run_retention_days'],
        )

        verb = 'Would delete' if dry_run else 'Deleted'
        self.stdout.write(f'{verb} {result.stats_deleted} coupon stats row(s)')
        self.stdout.write(f'{verb} {result.runs_deleted} processed run(s)')
        self.stdout.write(
            f'{"Would archive" if dry_run else "Archived"} {result.coupons_expired} expired coupon(s)'
        )
        self.stdout.write(self.style.SUCCESS('Cleanup complete'))
