"""
Tests for the monitoring and alerting system.

- Sentry capture with run context and sensitive-data filtering
- Run alert routing and delivery-failure isolation
"""

import pytest
from unittest.mock import MagicMock, patch

from coupons.monitoring.alerts import AlertSeverity, RunAlertHandler
from coupons.monitoring.sentry_integration import (
    _filter_sensitive_data,
    capture_alert,
    capture_ingest_error,
)
from coupons.services.anomaly_detector import AnomalyResult


class TestSentryIntegration:

    def test_filters_sensitive_keys(self):
        filtered = _filter_sensitive_data(
            {"api_token": "abc", "nested": {"password": "x", "dataset_id": "d"}, "ok": 1}
        )

        assert filtered["api_token"] == "[Filtered]"
        assert filtered["nested"]["password"] == "[Filtered]"
        assert filtered["nested"]["dataset_id"] == "d"
        assert filtered["ok"] == 1

    def test_capture_ingest_error_sets_run_context(self, processed_run):
        scope = MagicMock()
        scope_cm = MagicMock()
        scope_cm.__enter__.return_value = scope

        with patch("coupons.monitoring.sentry_integration.sentry_sdk") as mock_sdk:
            mock_sdk.new_scope.return_value = scope_cm
            error = ValueError("boom")
            capture_ingest_error(error, run=processed_run, extra_context={"stage": "fetch"})

        mock_sdk.add_breadcrumb.assert_called_once()
        mock_sdk.capture_exception.assert_called_once_with(error)
        scope.set_tag.assert_any_call("ingest.actor", "actor-123")
        scope.set_extra.assert_any_call("actor_run_id", "run-abc")

    def test_capture_alert_swallows_sdk_errors(self):
        with patch("coupons.monitoring.sentry_integration.sentry_sdk") as mock_sdk:
            mock_sdk.new_scope.side_effect = RuntimeError("sdk broken")
            capture_alert("message", level="error", actor_id="a")


@pytest.mark.django_db
class TestRunAlertHandler:

    def test_zero_results_alert(self, processed_run):
        handler = RunAlertHandler()

        with patch("coupons.monitoring.sentry_integration.capture_alert") as mock_capture:
            handler.handle_zero_results(processed_run)

        alert = handler.get_sent_alerts()[0]
        assert alert.alert_type == "zero_results"
        assert alert.severity is AlertSeverity.WARNING
        assert alert.run_id == str(processed_run.id)
        assert mock_capture.call_args.kwargs["level"] == "warning"
        assert mock_capture.call_args.kwargs["alert_type"] == "zero_results"

    def test_fetch_failure_is_critical(self, processed_run):
        handler = RunAlertHandler()

        with patch("coupons.monitoring.sentry_integration.capture_alert") as mock_capture:
            handler.handle_fetch_failure(processed_run, "HTTP 502")

        assert handler.get_sent_alerts()[0].severity is AlertSeverity.CRITICAL
        assert mock_capture.call_args.kwargs["level"] == "error"
        assert "HTTP 502" in mock_capture.call_args.kwargs["message"]

    def test_anomalies_are_aggregated(self, processed_run):
        handler = RunAlertHandler()
        anomalies = [
            AnomalyResult("https://a/1", 300, 100.0, 0.2, 120.0, 80.0, "surge", 3),
            AnomalyResult("https://a/2", 10, 100.0, 0.2, 120.0, 80.0, "plunge", 3),
        ]

        with patch("coupons.monitoring.sentry_integration.capture_alert"):
            handler.handle_anomalies("actor-123", anomalies, run=processed_run)
            handler.handle_anomalies("actor-123", [], run=processed_run)

        alerts = handler.get_sent_alerts()
        assert len(alerts) == 1
        assert [a["anomaly_type"] for a in alerts[0].extra_data["anomalies"]] == ["surge", "plunge"]

    def test_processing_errors_are_capped(self, processed_run):
        handler = RunAlertHandler()
        errors = [{"index": i, "error": "ValueError: bad", "item": {}} for i in range(50)]

        with patch("coupons.monitoring.sentry_integration.capture_alert"):
            handler.handle_processing_errors(processed_run, errors)

        extra = handler.get_sent_alerts()[0].extra_data
        assert extra["error_count"] == 50
        assert len(extra["errors"]) == 20

    def test_error_cap_is_configurable(self, processed_run):
        handler = RunAlertHandler(config={"max_errors_in_alert": 5})
        errors = [{"index": i, "error": "ValueError: bad", "item": {}} for i in range(50)]

        with patch("coupons.monitoring.sentry_integration.capture_alert"):
            handler.handle_processing_errors(processed_run, errors)

        assert len(handler.get_sent_alerts()[0].extra_data["errors"]) == 5

    def test_sentry_failure_never_raises(self, processed_run):
        handler = RunAlertHandler()

        with patch(
            "coupons.monitoring.sentry_integration.capture_alert",
            side_effect=Exception("sentry down"),
        ):
            handler.handle_count_mismatch(processed_run, 10, 8)

        assert len(handler.get_sent_alerts()) == 1
        handler.clear_sent_alerts()
        assert handler.get_sent_alerts() == []
