"""
Tests for per-page coupon count anomaly detection.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from coupons.models import AnomalyType, CouponStats
from coupons.services.anomaly_detector import (
    AnomalyConfig,
    AnomalyDetector,
    classify,
    compute_thresholds,
    get_tolerance_multiplier,
)

PAGE = "https://vouchers.co.uk/acme.com"


class TestThresholds:

    @pytest.mark.parametrize(
        "baseline,expected",
        [(0, 3.0), (9.9, 3.0), (10, 1.0), (19, 1.0), (20, 0.5), (50, 0.3), (100, 0.2), (499, 0.2), (500, 0.1), (10000, 0.1)],
    )
    def test_tolerance_bands(self, baseline, expected):
        assert get_tolerance_multiplier(baseline) == expected

    def test_plunge_threshold_never_below_one(self):
        surge, plunge = compute_thresholds(2, 3.0)

        assert surge == 8
        assert plunge == 1.0

    def test_classify(self):
        assert classify(121, 120, 80) == AnomalyType.SURGE
        assert classify(79, 120, 80) == AnomalyType.PLUNGE
        assert classify(120, 120, 80) is None
        assert classify(80, 120, 80) is None

    def test_config_from_settings(self, settings):
        settings.ANOMALY_DETECTION_DAYS = 7
        settings.ANOMALY_TOLERANCE_TABLE = [[5, 2], [50, 0.4]]
        settings.ANOMALY_DEFAULT_TOLERANCE = 0.05

        config = AnomalyConfig.from_settings()

        assert config.window_days == 7
        assert config.tolerance_table == ((5.0, 2.0), (50.0, 0.4))
        assert get_tolerance_multiplier(60, config.tolerance_table, config.default_tolerance) == 0.05


@pytest.mark.django_db
class TestAnomalyDetector:

    def _history(self, *counts, age_days=1):
        created = timezone.now() - timedelta(days=age_days)
        for count in counts:
            CouponStats.objects.create(
                source_url=PAGE,
                coupons_count=count,
                surge_threshold=0,
                plunge_threshold=0,
                created_at=created,
            )

    def test_first_observation_is_never_anomalous(self, processed_run):
        results = AnomalyDetector(AnomalyConfig()).evaluate({PAGE: 40}, run=processed_run)

        assert results[0].anomaly_type is None
        assert results[0].baseline == 40
        stored = CouponStats.objects.get(run=processed_run)
        assert stored.coupons_count == 40

    def test_surge(self, processed_run):
        self._history(100, 100)

        result = AnomalyDetector(AnomalyConfig()).evaluate({PAGE: 130}, run=processed_run)[0]

        assert result.anomaly_type == AnomalyType.SURGE
        assert result.surge_threshold == pytest.approx(120)
        assert CouponStats.objects.get(run=processed_run).anomaly_type == AnomalyType.SURGE

    def test_plunge(self, processed_run):
        self._history(100, 100)

        result = AnomalyDetector(AnomalyConfig()).evaluate({PAGE: 70}, run=processed_run)[0]

        assert result.anomaly_type == AnomalyType.PLUNGE
        assert result.plunge_threshold == pytest.approx(80)

    def test_history_outside_window_is_ignored(self, processed_run):
        self._history(1000, age_days=30)

        result = AnomalyDetector(AnomalyConfig(window_days=14)).evaluate({PAGE: 10})[0]

        assert result.history_size == 0
        assert result.anomaly_type is None

    def test_anomalous_observation_is_still_stored(self, processed_run):
        self._history(100)
        detector = AnomalyDetector(AnomalyConfig())

        detector.evaluate({PAGE: 500}, run=processed_run)

        assert CouponStats.objects.filter(source_url=PAGE).count() == 2
