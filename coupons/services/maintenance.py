"""
Periodic maintenance for ingestion data.

- purge CouponStats older than the anomaly training horizon
- purge old ProcessedRun rows
- archive coupons whose expiry date has passed
- select unfinished runs that are due for a replay
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from coupons.models import ArchiveReason, Coupon, CouponStats, ProcessedRun

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    stats_deleted: int = 0
    runs_deleted: int = 0
    coupons_expired: int = 0
    dry_run: bool = False

    def as_dict(self):
        return {
            "stats_deleted": self.stats_deleted,
            "runs_deleted": self.runs_deleted,
            "coupons_expired": self.coupons_expired,
            "dry_run": self.dry_run,
        }


def delete_old_coupon_stats(retention_days: int, now: datetime, dry_run: bool = False) -> int:
    qs = CouponStats.objects.filter(created_at__lt=now - timedelta(days=retention_days))
    if dry_run:
        return qs.count()
    deleted, _ = qs.delete()
    return deleted


def delete_old_processed_runs(retention_days: int, now: datetime, dry_run: bool = False) -> int:
    qs = ProcessedRun.objects.filter(received_at__lt=now - timedelta(days=retention_days))
    if dry_run:
        return qs.count()
    # CouponStats.run is SET_NULL, so history survives the run rows
    deleted, per_model = qs.delete()
    return per_model.get(ProcessedRun._meta.label, deleted)


def mark_expired_coupons(now: datetime, dry_run: bool = False) -> int:
    """Archive coupons past their expiry date that are not yet flagged expired."""
    qs = (
        Coupon.objects.filter(expiry_date_at__lt=now)
        .filter(Q(is_expired__isnull=True) | Q(is_expired=False))
        .exclude(archived_reason=ArchiveReason.MANUAL, archived_at__isnull=False)
    )
    if dry_run:
        return qs.count()
    return qs.update(
        is_expired=True,
        is_shown=False,
        archived_at=now,
        archived_reason=ArchiveReason.EXPIRED,
        updated_at=now,
    )


def cleanup_coupon_data(
    now: Optional[datetime] = None,
    dry_run: bool = False,
    stats_retention_days: Optional[int] = None,
    run_retention_days: Optional[int] = None,
) -> CleanupResult:
    """Run every cleanup step; each step's failure is logged and the rest still run."""
    now = now or timezone.now()
    stats_retention_days = stats_retention_days or getattr(settings, "COUPON_STATS_RETENTION_DAYS", 42)
    run_retention_days = run_retention_days or getattr(settings, "PROCESSED_RUN_RETENTION_DAYS", 31)

    result = CleanupResult(dry_run=dry_run)

    steps = [
        ("stats_deleted", lambda: delete_old_coupon_stats(stats_retention_days, now, dry_run)),
        ("coupons_expired", lambda: mark_expired_coupons(now, dry_run)),
        ("runs_deleted", lambda: delete_old_processed_runs(run_retention_days, now, dry_run)),
    ]
    for name, step in steps:
        try:
            setattr(result, name, step())
        except Exception as e:
            logger.error(f"Cleanup step {name} failed: {e}")
            from coupons.monitoring.sentry_integration import capture_alert

            capture_alert(
                f"Cleanup step {name} failed: {e}",
                level="error",
                alert_type="maintenance",
            )

    logger.info(
        f"Cleanup complete: {result.stats_deleted} stats deleted, "
        f"{result.coupons_expired} coupons expired, {result.runs_deleted} runs deleted"
        + (" (dry run)" if dry_run else "")
    )
    return result


def runs_due_for_retry(
    now: Optional[datetime] = None,
    delays_hours: Optional[Sequence[float]] = None,
    batch_size: Optional[int] = None,
) -> List[ProcessedRun]:
    """
    Unfinished runs whose wait since receipt exceeds the delay for their attempt.

    delays_hours[n] is the wait before attempt n+1; a run with
    retries_count == len(delays_hours) has used up its retries.
    """
    now = now or timezone.now()
    delays_hours = delays_hours or getattr(settings, "RUN_RETRY_DELAYS_HOURS", [1, 12, 24])
    batch_size = batch_size or getattr(settings, "RUN_RETRY_BATCH_SIZE", 2)

    due = Q()
    for retries, hours in enumerate(delays_hours):
        due |= Q(retries_count=retries, received_at__lt=now - timedelta(hours=hours))

    return list(
        ProcessedRun.objects.filter(ended_at__isnull=True)
        .exclude(payload={})
        .filter(due)
        .order_by("received_at")[:batch_size]
    )


def abandoned_runs(
    now: Optional[datetime] = None,
    delays_hours: Optional[Sequence[float]] = None,
) -> List[ProcessedRun]:
    """
    Unfinished runs that have exhausted their retries.

    The last attempt gets as long again as the last delay before the run
    counts as abandoned.
    """
    now = now or timezone.now()
    delays_hours = delays_hours or getattr(settings, "RUN_RETRY_DELAYS_HOURS", [1, 12, 24])
    cutoff = now - timedelta(hours=2 * delays_hours[-1])
    return list(
        ProcessedRun.objects.filter(
            ended_at__isnull=True,
            retries_count=len(delays_hours),
            received_at__lt=cutoff,
        )
    )
