"""
Run Reconciler.

Runs after every record of a run has been upserted:
- removal sweep: coupons on this run's source pages that were not seen
  are archived as "removed" (only for runs that SUCCEEDED, since a
  partial crawl says nothing about absence)
- staleness sweep: coupons on pages the run's request log shows as
  crawled, but last seen before the run started, are hidden
- page bookkeeping: TargetPage.last_apify_run_at for crawled pages
- finalisation: counters, cost and error list on the ProcessedRun,
  followed by run-level alerts

No step raises: each failure is alerted on its own and the run is
still finalised.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from django.utils import timezone

from coupons.models import ArchiveReason, Coupon, ProcessedRun, RunStatus, TargetPage
from coupons.monitoring.alerts import RunAlertHandler
from coupons.services.upsert_engine import UpsertOutcome

logger = logging.getLogger(__name__)

# Keep IN (...) lists well below backend parameter limits
SWEEP_CHUNK_SIZE = 500

# Raw payload excerpt stored with a per-record error
MAX_ERROR_ITEM_CHARS = 2000


def _chunks(values: List[Any], size: int = SWEEP_CHUNK_SIZE) -> Iterable[List[Any]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


def _truncate_item(item: Any) -> Any:
    """Keep stored error payloads bounded and JSON-serialisable."""
    text = repr(item)
    if len(text) > MAX_ERROR_ITEM_CHARS:
        return text[:MAX_ERROR_ITEM_CHARS] + "..."
    if item is None or isinstance(item, (dict, list, str, int, float, bool)):
        return item
    return text


@dataclass
class RunStats:
    """Counters and bookkeeping accumulated while ingesting one run."""

    created: int = 0
    updated: int = 0
    archived: int = 0
    unarchived: int = 0
    removed: int = 0
    skipped: int = 0
    hidden: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    source_urls: Set[str] = field(default_factory=set)
    page_urls: Set[str] = field(default_factory=set)
    processed_ids: Set[str] = field(default_factory=set)
    counts_by_url: Dict[str, int] = field(default_factory=dict)
    locale_missing_urls: Set[str] = field(default_factory=set)

    def record(self, outcome: UpsertOutcome, coupon_id: str, source_url: str) -> None:
        if outcome is UpsertOutcome.CREATED:
            self.created += 1
        elif outcome is UpsertOutcome.ARCHIVED:
            self.archived += 1
        elif outcome is UpsertOutcome.UNARCHIVED:
            self.unarchived += 1
        else:
            self.updated += 1
        self.processed_ids.add(coupon_id)
        self.source_urls.add(source_url)

    def observe(self, source_url: str) -> None:
        """Count a parsed record towards its page's total, whether or not it upserts."""
        self.counts_by_url[source_url] = self.counts_by_url.get(source_url, 0) + 1

    def add_error(self, index: int, error: Exception, item: Any = None) -> None:
        self.errors.append(
            {
                "index": index,
                "error": f"{type(error).__name__}: {error}",
                "item": _truncate_item(item),
            }
        )

    @property
    def processed_count(self) -> int:
        """Records accounted for by an outcome bucket or an explicit skip."""
        return self.created + self.updated + self.archived + self.unarchived + self.skipped


class RunReconciler:
    """Post-ingest sweeps and run finalisation."""

    def __init__(self, alert_handler: Optional[RunAlertHandler] = None):
        self.alert_handler = alert_handler or RunAlertHandler()

    def archive_removed(self, run: ProcessedRun, stats: RunStats, now: Optional[datetime] = None) -> int:
        """
        Archive coupons on this run's pages that the run did not produce.

        Returns:
            Number of coupons archived as removed
        """
        if run.status != RunStatus.SUCCEEDED:
            logger.info(f"Skipping removal sweep for run {run.id}: status {run.status}")
            return 0

        now = now or timezone.now()
        missing = []
        for urls in _chunks(sorted(stats.source_urls)):
            candidates = Coupon.objects.filter(
                source_url__in=urls, archived_at__isnull=True
            ).values_list("id", flat=True)
            missing.extend(cid for cid in candidates if cid not in stats.processed_ids)

        removed = 0
        for ids in _chunks(missing):
            removed += Coupon.objects.filter(id__in=ids, archived_at__isnull=True).update(
                archived_at=now,
                archived_reason=ArchiveReason.REMOVED,
                is_expired=True,
                is_shown=False,
                updated_at=now,
            )

        stats.removed = removed
        if removed:
            logger.info(f"Run {run.id}: archived {removed} coupons no longer listed")
        return removed

    def hide_stale(self, run: ProcessedRun, crawled_urls: Iterable[str]) -> int:
        """
        Hide coupons on crawled pages that were last seen before the run started.

        Returns:
            Number of coupons hidden
        """
        cutoff = run.started_at or run.processing_started_at
        urls = sorted(set(u for u in crawled_urls if u))
        if cutoff is None or not urls:
            return 0

        hidden = 0
        for chunk in _chunks(urls):
            hidden += Coupon.objects.filter(
                source_url__in=chunk,
                last_seen_at__lt=cutoff,
                is_shown=True,
            ).update(is_shown=False, updated_at=timezone.now())

        if hidden:
            logger.info(f"Run {run.id}: hid {hidden} stale coupons")
        return hidden

    def touch_target_pages(self, urls: Iterable[str], now: Optional[datetime] = None) -> int:
        """Stamp last_apify_run_at on the target pages that were crawled."""
        now = now or timezone.now()
        urls = sorted(set(u for u in urls if u))
        touched = 0
        for chunk in _chunks(urls):
            touched += TargetPage.objects.filter(url__in=chunk).update(last_apify_run_at=now)
        return touched

    def run_step(self, run: ProcessedRun, step: str, func, *args, **kwargs):
        """Run one sweep, alerting instead of raising on failure."""
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.exception(f"Reconciliation step {step} failed for run {run.id}")
            self.alert_handler.handle_reconciliation_failure(run, step, e)
            return None

    def finalize(
        self,
        run: ProcessedRun,
        stats: RunStats,
        result_count: int,
        duplicate_count: int = 0,
    ) -> ProcessedRun:
        """Write final counters and emit run-level alerts."""
        run.finalize(stats, result_count=result_count, duplicate_count=duplicate_count)

        logger.info(
            f"Run {run.id} finished: {result_count} records, "
            f"{stats.created} created, {stats.updated} updated, "
            f"{stats.archived} archived, {stats.unarchived} unarchived, "
            f"{stats.removed} removed, {stats.skipped} skipped, {len(stats.errors)} errors"
        )

        try:
            if result_count == 0:
                self.alert_handler.handle_zero_results(run)
            if stats.errors:
                self.alert_handler.handle_processing_errors(run, stats.errors)
            if result_count != stats.processed_count:
                self.alert_handler.handle_count_mismatch(run, result_count, stats.processed_count)
            if stats.locale_missing_urls:
                self.alert_handler.handle_missing_locale(run, sorted(stats.locale_missing_urls))
        except Exception as e:
            logger.error(f"Failed to emit alerts for run {run.id}: {e}")

        return run
