"""
Alert handler for ingestion runs.

Routes run-level conditions to Sentry and the local log. Alerting is a
side channel: every public method swallows its own delivery failures so
that an unreachable Sentry can never fail a run.

Usage:
    handler = RunAlertHandler()

    if fetch_result.ok is False:
        handler.handle_fetch_failure(run, fetch_result.error)

    if stats.errors:
        handler.handle_processing_errors(run, stats.errors)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

# Cap on how many per-record errors are attached to a single alert
MAX_ERRORS_IN_ALERT = 20


class AlertSeverity(Enum):
    """Severity levels for run alerts."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class RunAlert:
    """
    Alert raised while ingesting a scraper run.

    Attributes:
        actor_id: Scraper actor id
        severity: Alert severity level
        message: Human-readable alert message
        alert_type: Short machine-readable kind (zero_results, anomaly, ...)
        run_id: ProcessedRun id, if the alert concerns a run
        extra_data: Additional context data
        timestamp: ISO timestamp of the alert
    """

    actor_id: str
    severity: AlertSeverity
    message: str
    alert_type: str
    run_id: Optional[str] = None
    extra_data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class RunAlertHandler:
    """
    Build and route run alerts.

    One method per alert-worthy condition:
    - transport failure fetching the dataset
    - empty dataset
    - per-record processing errors
    - result count not reconciling with processed count
    - surge/plunge anomalies
    - failed reconciliation step
    - records without a resolvable locale
    - run abandoned after its last retry
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.max_errors_in_alert = self.config.get("max_errors_in_alert", MAX_ERRORS_IN_ALERT)
        self._sent_alerts: List[RunAlert] = []

    def handle_fetch_failure(self, run, error: str) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.CRITICAL,
                alert_type="fetch_failure",
                message=(
                    f"Error fetching dataset {run.dataset_id} for run {run.id} "
                    f"from source {run.actor_id}: {error}"
                ),
                extra_data={"dataset_id": run.dataset_id, "actor_run_id": run.actor_run_id},
            )
        )

    def handle_zero_results(self, run) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.WARNING,
                alert_type="zero_results",
                message=f"No data was processed for run {run.id} from source {run.actor_id}",
                extra_data={"dataset_id": run.dataset_id, "status": run.status},
            )
        )

    def handle_processing_errors(self, run, errors: List[Dict[str, Any]]) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.WARNING,
                alert_type="processing_errors",
                message=(
                    f"{len(errors)} errors occurred during processing run {run.id} "
                    f"from source {run.actor_id}"
                ),
                extra_data={
                    "error_count": len(errors),
                    "errors": [
                        {"index": e.get("index"), "error": e.get("error")}
                        for e in errors[: self.max_errors_in_alert]
                    ],
                },
            )
        )

    def handle_count_mismatch(self, run, result_count: int, processed_count: int) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.WARNING,
                alert_type="count_mismatch",
                message=(
                    f"Not all data was processed for run {run.id} from source "
                    f"{run.actor_id}: {processed_count} of {result_count} records"
                ),
                extra_data={
                    "result_count": result_count,
                    "processed_count": processed_count,
                },
            )
        )

    def handle_anomalies(self, actor_id: str, anomalies: list, run=None) -> None:
        """
        Send one aggregated alert for all flagged source URLs of a run.

        Args:
            actor_id: Scraper actor id
            anomalies: AnomalyResult list (only flagged entries)
            run: ProcessedRun the counts belong to
        """
        if not anomalies:
            return

        self._send_alert(
            RunAlert(
                actor_id=actor_id,
                run_id=str(run.id) if run is not None else None,
                severity=AlertSeverity.WARNING,
                alert_type="anomaly",
                message=f"Anomalies detected for source {actor_id}: {len(anomalies)} source URLs",
                extra_data={
                    "anomalies": [
                        {
                            "source_url": a.source_url,
                            "anomaly_type": a.anomaly_type,
                            "coupon_count": a.count,
                            "baseline": round(a.baseline, 2),
                            "surge_threshold": round(a.surge_threshold, 2),
                            "plunge_threshold": round(a.plunge_threshold, 2),
                        }
                        for a in anomalies
                    ],
                },
            )
        )

    def handle_reconciliation_failure(self, run, step: str, error: Exception) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id if run is not None else "unknown",
                run_id=str(run.id) if run is not None else None,
                severity=AlertSeverity.CRITICAL,
                alert_type="reconciliation_failure",
                message=f"Reconciliation step '{step}' failed for run {getattr(run, 'id', None)}: {error}",
                extra_data={"step": step, "error_type": type(error).__name__},
            )
        )

    def handle_missing_locale(self, run, source_urls: List[str]) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.INFO,
                alert_type="missing_locale",
                message=(
                    f"Locale could not be resolved for {len(source_urls)} source URLs "
                    f"in run {run.id} from source {run.actor_id}"
                ),
                extra_data={"source_urls": source_urls[:MAX_ERRORS_IN_ALERT]},
            )
        )

    def handle_abandoned_run(self, run) -> None:
        self._send_alert(
            RunAlert(
                actor_id=run.actor_id,
                run_id=str(run.id),
                severity=AlertSeverity.CRITICAL,
                alert_type="abandoned_run",
                message=(
                    f"Run {run.actor_run_id} from source {run.actor_id} is still unfinished "
                    f"after {run.retries_count} retries and has been abandoned"
                ),
                extra_data={"received_at": run.received_at.isoformat()},
            )
        )

    def _send_alert(self, alert: RunAlert) -> None:
        self._sent_alerts.append(alert)

        log_level = {
            AlertSeverity.INFO: logging.INFO,
            AlertSeverity.WARNING: logging.WARNING,
            AlertSeverity.CRITICAL: logging.ERROR,
        }.get(alert.severity, logging.WARNING)

        logger.log(log_level, f"Run alert [{alert.actor_id}/{alert.alert_type}]: {alert.message}")

        self._send_sentry(alert)

    def _send_sentry(self, alert: RunAlert) -> None:
        try:
            from coupons.monitoring.sentry_integration import capture_alert

            sentry_level = {
                AlertSeverity.INFO: "info",
                AlertSeverity.WARNING: "warning",
                AlertSeverity.CRITICAL: "error",
            }.get(alert.severity, "warning")

            capture_alert(
                message=alert.message,
                level=sentry_level,
                actor_id=alert.actor_id,
                run_id=alert.run_id,
                alert_type=alert.alert_type,
                extra_data={
                    "severity": alert.severity.value,
                    "timestamp": alert.timestamp,
                    **alert.extra_data,
                },
            )

        except Exception as e:
            logger.error(f"Failed to send alert to Sentry: {e}")

    def get_sent_alerts(self) -> List[RunAlert]:
        """Alerts sent by this handler, oldest first."""
        return list(self._sent_alerts)

    def clear_sent_alerts(self) -> None:
        self._sent_alerts = []
