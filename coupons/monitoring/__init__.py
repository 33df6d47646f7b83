"""
Monitoring and alerting for coupon ingestion.

- Sentry error capture with run context (sentry_integration.py)
- Run-level alert routing (alerts.py)
"""

from .sentry_integration import capture_alert, capture_ingest_error, add_ingest_breadcrumb
from .alerts import AlertSeverity, RunAlert, RunAlertHandler

__all__ = [
    "capture_alert",
    "capture_ingest_error",
    "add_ingest_breadcrumb",
    "AlertSeverity",
    "RunAlert",
    "RunAlertHandler",
]
