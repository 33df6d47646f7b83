"""
Celery tasks for coupon ingestion.

- process_coupon_run: worker task ingesting one ProcessedRun (queue "ingest")
- retry_unfinished_runs: periodic replay of runs that never finished
- cleanup_coupon_data: periodic retention cleanup and expiry marking
"""

import logging
from typing import Any, Dict

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from coupons.models import ProcessedRun

logger = logging.getLogger(__name__)


@shared_task(name="coupons.tasks.process_coupon_run", bind=True)
def process_coupon_run(self, run_id: str) -> Dict[str, Any]:
    """
    Ingest the dataset of a webhook-announced run.

    Args:
        run_id: UUID of the ProcessedRun

    Returns:
        Dict with the run's final counters
    """
    from coupons.services.ingestion_pipeline import get_ingestion_pipeline

    try:
        run = ProcessedRun.objects.get(id=run_id)
    except ProcessedRun.DoesNotExist:
        logger.error(f"ProcessedRun {run_id} not found")
        return {"run_id": run_id, "status": "not_found"}

    logger.info(
        f"Processing run {run.actor_run_id} (actor {run.actor_id}, "
        f"dataset {run.dataset_id}, attempt {run.retries_count + 1})"
    )

    run = get_ingestion_pipeline().process_run(run)

    return {
        "run_id": str(run.id),
        "status": "finished" if run.is_finished else "unfinished",
        "result_count": run.result_count,
        "created": run.created_count,
        "updated": run.updated_count,
        "archived": run.archived_count,
        "unarchived": run.unarchived_count,
        "removed": run.removed_count,
        "errors": run.error_count,
    }


@shared_task(name="coupons.tasks.retry_unfinished_runs")
def retry_unfinished_runs() -> Dict[str, Any]:
    """
    Periodic task replaying runs whose processing never finished.

    Runs every 15 minutes via Celery Beat. A run is due once the wait since
    receipt exceeds RUN_RETRY_DELAYS_HOURS[retries_count]; at most
    RUN_RETRY_BATCH_SIZE runs are re-enqueued per sweep. Runs that used up
    every delay are reported once and left alone.
    """
    from coupons.monitoring.alerts import RunAlertHandler
    from coupons.services.maintenance import abandoned_runs, runs_due_for_retry

    now = timezone.now()
    delays = getattr(settings, "RUN_RETRY_DELAYS_HOURS", [1, 12, 24])
    retried = []

    for run in runs_due_for_retry(now=now, delays_hours=delays):
        try:
            run.retries_count += 1
            run.save(update_fields=["retries_count"])

            process_coupon_run.apply_async(args=[str(run.id)], queue="ingest")
            retried.append(str(run.id))

            logger.info(f"Re-enqueued run {run.actor_run_id} (retry {run.retries_count})")

        except Exception as e:
            logger.error(f"Failed to re-enqueue run {run.id}: {e}")
            continue

    handler = RunAlertHandler()
    abandoned = []
    for run in abandoned_runs(now=now, delays_hours=delays):
        handler.handle_abandoned_run(run)
        # Past the last delay, so neither retried nor reported again
        run.retries_count += 1
        run.save(update_fields=["retries_count"])
        abandoned.append(str(run.id))

    logger.info(f"Retry sweep complete: {len(retried)} re-enqueued, {len(abandoned)} abandoned")

    return {
        "retried": retried,
        "abandoned": abandoned,
        "timestamp": now.isoformat(),
    }


@shared_task(name="coupons.tasks.cleanup_coupon_data")
def cleanup_coupon_data() -> Dict[str, Any]:
    """
    Daily retention cleanup.

    Deletes CouponStats older than COUPON_STATS_RETENTION_DAYS, ProcessedRun
    rows older than PROCESSED_RUN_RETENTION_DAYS, and archives coupons whose
    expiry date has passed.
    """
    from coupons.services.maintenance import cleanup_coupon_data as run_cleanup

    return run_cleanup().as_dict()
