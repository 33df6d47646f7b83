"""
Coupon ingestion pipeline.

Orchestrates one ProcessedRun end to end:

    fetch dataset -> parse + upsert each record (sequentially)
        -> anomaly detection (side channel)
        -> removal sweep, staleness sweep, target page bookkeeping
        -> finalise run + alerts

process_run() never raises. It runs inside a Celery worker after the
webhook has already been answered, so every failure ends in a log line,
a Sentry event and the run's processing_errors.
A failed dataset fetch leaves the run unfinished, so the periodic retry
sweep replays it.
"""

import asyncio
import logging
from typing import List, Optional, Set

from django.conf import settings
from django.utils import timezone

from coupons.models import ProcessedRun, Source, TargetPage
from coupons.monitoring.alerts import RunAlertHandler
from coupons.monitoring.sentry_integration import add_ingest_breadcrumb, capture_ingest_error
from coupons.services.anomaly_detector import AnomalyDetector
from coupons.services.apify_client import ApifyClient
from coupons.services.dataset_fetcher import DatasetFetcher, FetchResult
from coupons.services.item_parser import MalformedItemError, ScrapedItem, parse_scraped_item
from coupons.services.locale_resolver import LocaleResolver
from coupons.services.run_reconciler import RunReconciler, RunStats
from coupons.services.upsert_engine import CouponUpsertEngine

logger = logging.getLogger(__name__)


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def crawled_urls_from_requests(requests: List[dict]) -> Set[str]:
    """URLs the run actually handled, per its request log."""
    urls = set()
    for request in requests:
        if not request.get("handledAt"):
            continue
        for key in ("url", "loadedUrl"):
            if request.get(key):
                urls.add(request[key])
    return urls


class CouponIngestionPipeline:
    """
    Ingest one scraper run.

    Collaborators are injectable so tests can replace the HTTP client or
    run with different thresholds.
    """

    def __init__(
        self,
        client: Optional[ApifyClient] = None,
        fetcher: Optional[DatasetFetcher] = None,
        engine: Optional[CouponUpsertEngine] = None,
        detector: Optional[AnomalyDetector] = None,
        reconciler: Optional[RunReconciler] = None,
        alert_handler: Optional[RunAlertHandler] = None,
    ):
        self.client = client or ApifyClient()
        self.fetcher = fetcher or DatasetFetcher(self.client)
        self.engine = engine
        self.detector = detector or AnomalyDetector()
        self.alert_handler = alert_handler or RunAlertHandler()
        self.reconciler = reconciler or RunReconciler(self.alert_handler)

    def process_run(self, run: ProcessedRun) -> ProcessedRun:
        """Process a run, recording rather than raising any failure."""
        try:
            return self._process(run)
        except Exception as e:
            logger.exception(f"Unexpected failure processing run {run.id}")
            capture_ingest_error(e, run=run, extra_context={"stage": "pipeline"})
            self._record_fatal_error(run, e)
            return run

    def _process(self, run: ProcessedRun) -> ProcessedRun:
        run.start()
        now = timezone.now()
        source = Source.objects.filter(apify_actor_id=run.actor_id).first()
        engine = self.engine or CouponUpsertEngine(locale_resolver=LocaleResolver.from_db())

        add_ingest_breadcrumb(
            actor_id=run.actor_id,
            run_id=str(run.id),
            message="Fetching dataset",
            extra_data={"dataset_id": run.dataset_id, "retries_count": run.retries_count},
        )

        fetch_result = self.fetcher.fetch(run.dataset_id)
        if not fetch_result.ok:
            # Left unfinished so the retry sweep replays it
            self.alert_handler.handle_fetch_failure(run, fetch_result.error)
            run.record_fetch_failure(fetch_result.error)
            return run

        stats = self._ingest_items(run, engine, source, fetch_result, now)

        if stats.counts_by_url:
            self.reconciler.run_step(run, "anomaly_detection", self._detect_anomalies, run, stats)

        self.reconciler.run_step(
            run, "removal_sweep", self.reconciler.archive_removed, run, stats, now
        )
        crawled = self.reconciler.run_step(run, "request_log", self._crawled_urls, run) or set()
        if crawled:
            hidden = self.reconciler.run_step(
                run, "staleness_sweep", self.reconciler.hide_stale, run, crawled
            )
            stats.hidden = hidden or 0
        self.reconciler.run_step(
            run,
            "target_pages",
            self.reconciler.touch_target_pages,
            stats.page_urls | crawled,
            now,
        )

        return self.reconciler.finalize(
            run,
            stats,
            result_count=len(fetch_result.items),
            duplicate_count=fetch_result.duplicate_count,
        )

    def _ingest_items(self, run, engine, source, fetch_result: FetchResult, now) -> RunStats:
        stats = RunStats()
        default_locale = run.locale_id or None
        positions = fetch_result.positions or range(len(fetch_result.items))

        # index is the record's position in the fetched dataset, before dedup
        for index, raw in zip(positions, fetch_result.items):
            try:
                item = parse_scraped_item(raw)
            except MalformedItemError as e:
                logger.warning(f"Run {run.id}: malformed record at index {index}: {e}")
                stats.add_error(index, e, raw)
                continue

            if item.is_not_index_page:
                self._disable_target_page(run, item, now)
                stats.skipped += 1
                continue

            stats.observe(item.source_url)
            stats.page_urls.add(item.page_url)

            try:
                result = engine.upsert(
                    item,
                    actor_id=run.actor_id,
                    source=source,
                    default_locale_id=default_locale,
                    now=now,
                )
            except Exception as e:
                logger.warning(f"Run {run.id}: upsert failed at index {index}: {e}")
                stats.add_error(index, e, raw)
                continue

            stats.record(result.outcome, result.coupon_id, item.source_url)
            if result.locale_missing:
                stats.locale_missing_urls.add(item.source_url)

        return stats

    def _detect_anomalies(self, run: ProcessedRun, stats: RunStats):
        results = self.detector.evaluate(stats.counts_by_url, run=run)
        flagged = [r for r in results if r.is_anomaly]
        if flagged:
            self.alert_handler.handle_anomalies(run.actor_id, flagged, run=run)
        return results

    def _crawled_urls(self, run: ProcessedRun) -> Set[str]:
        requests = _run_async(self.client.get_run_requests(run.actor_run_id))
        return crawled_urls_from_requests(requests)

    def _disable_target_page(self, run: ProcessedRun, item: ScrapedItem, now) -> None:
        url = item.page_url
        if not url:
            logger.warning(f"Run {run.id}: non-index page reported without a URL")
            return
        disabled = TargetPage.objects.filter(url=url, disabled_at__isnull=True).update(
            disabled_at=now
        )
        if disabled:
            logger.warning(f"Run {run.id}: disabled non-index target page {url}")

    def _record_fatal_error(self, run: ProcessedRun, error: Exception) -> None:
        try:
            run.processing_errors = list(run.processing_errors or []) + [
                {"index": None, "error": f"{type(error).__name__}: {error}", "item": None}
            ]
            run.error_count = len(run.processing_errors)
            run.save(update_fields=["processing_errors", "error_count"])
        except Exception as e:
            logger.error(f"Could not record failure on run {run.id}: {e}")


def get_ingestion_pipeline() -> CouponIngestionPipeline:
    """Build a pipeline wired from settings."""
    alert_handler = RunAlertHandler(
        config={"max_errors_in_alert": getattr(settings, "ALERT_MAX_ERRORS", 20)}
    )
    return CouponIngestionPipeline(alert_handler=alert_handler)
