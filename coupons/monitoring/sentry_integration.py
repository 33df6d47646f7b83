"""
Sentry error tracking integration for coupon ingestion.

The SDK itself is initialised in config/settings/base.py; this module adds
run context (actor, run id, dataset) to events and strips secrets such as
the job-runner token before anything leaves the process.

Usage:
    from coupons.monitoring import capture_ingest_error

    try:
        engine.upsert(item, ...)
    except Exception as e:
        capture_ingest_error(e, run=run, extra_context={"index": i})
"""

import logging
from typing import Any, Dict, Optional

import sentry_sdk

logger = logging.getLogger(__name__)

# Sensitive fields to filter from Sentry events
SENSITIVE_FIELDS = {
    "api_key",
    "apikey",
    "api-key",
    "authorization",
    "auth",
    "password",
    "secret",
    "token",
    "cookie",
}


def _filter_sensitive_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace values of sensitive keys with "[Filtered]", recursing into dicts.
    """
    if not isinstance(data, dict):
        return data

    filtered = {}
    for key, value in data.items():
        key_lower = str(key).lower()

        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            filtered[key] = "[Filtered]"
        elif isinstance(value, dict):
            filtered[key] = _filter_sensitive_data(value)
        else:
            filtered[key] = value

    return filtered


def add_ingest_breadcrumb(
    actor_id: str,
    run_id: str,
    message: str = "Ingest operation",
    level: str = "info",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add a breadcrumb describing an ingestion step.

    Args:
        actor_id: Scraper actor id
        run_id: ProcessedRun id
        message: Description of the step
        level: Log level (info, warning, error)
        extra_data: Additional context data
    """
    breadcrumb_data = {
        "actor_id": actor_id,
        "run_id": run_id,
    }

    if extra_data:
        breadcrumb_data.update(_filter_sensitive_data(extra_data))

    try:
        sentry_sdk.add_breadcrumb(
            category="ingest",
            message=message,
            level=level,
            data=breadcrumb_data,
        )
    except Exception as e:
        logger.warning(f"Failed to add Sentry breadcrumb: {e}")


def capture_ingest_error(
    error: Exception,
    run=None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an ingestion exception to Sentry with run context.

    Args:
        error: The exception that occurred
        run: ProcessedRun instance (optional)
        extra_context: Additional context (filtered for sensitive data)
    """
    actor_id = run.actor_id if run is not None else "unknown"
    run_id = str(run.id) if run is not None else "unknown"

    add_ingest_breadcrumb(
        actor_id=actor_id,
        run_id=run_id,
        message=f"Error: {type(error).__name__}",
        level="error",
        extra_data=extra_context,
    )

    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("ingest.actor", actor_id)
            if run is not None:
                scope.set_extra("run_id", run_id)
                scope.set_extra("actor_run_id", run.actor_run_id)
                scope.set_extra("dataset_id", run.dataset_id)
            if extra_context:
                scope.set_extra("ingest_context", _filter_sensitive_data(extra_context))

            sentry_sdk.capture_exception(error)

    except Exception as e:
        logger.warning(f"Failed to capture exception to Sentry: {e}")


def capture_alert(
    message: str,
    level: str = "warning",
    actor_id: Optional[str] = None,
    run_id: Optional[str] = None,
    alert_type: str = "ingest",
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Capture an alert message to Sentry.

    Used for run-level conditions (empty datasets, count mismatches,
    anomalies) that are not exceptions.

    Args:
        message: Alert message
        level: Severity level (info, warning, error)
        actor_id: Scraper actor id
        run_id: ProcessedRun id
        alert_type: Tag used to group alerts in Sentry
        extra_data: Additional alert data
    """
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("alert.type", alert_type)

            if actor_id:
                scope.set_tag("ingest.actor", actor_id)
            if run_id:
                scope.set_extra("run_id", run_id)
            if extra_data:
                scope.set_extra("alert_data", _filter_sensitive_data(extra_data))

            sentry_sdk.capture_message(message, level=level)

    except Exception as e:
        logger.warning(f"Failed to capture alert to Sentry: {e}")
