"""
Anomaly Detector for per-page coupon counts.

After a run has been ingested, each source URL's record count is compared
against the mean of its CouponStats observations over a trailing window.
Small pages are noisy, so the tolerance widens as the baseline shrinks:

    baseline < 10   -> +/-300%
    baseline < 20   -> +/-100%
    baseline < 50   -> +/-50%
    baseline < 100  -> +/-30%
    baseline < 500  -> +/-20%
    otherwise       -> +/-10%

    surge  : count > baseline * (1 + tolerance)
    plunge : count < max(1, baseline * (1 - tolerance))

The current observation is always stored, anomalous or not, so it feeds
tomorrow's baseline. Detection is advisory and never blocks ingestion.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from django.conf import settings
from django.utils import timezone

from coupons.models import AnomalyType, CouponStats

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_TABLE: Tuple[Tuple[float, float], ...] = (
    (10, 3.0),
    (20, 1.0),
    (50, 0.5),
    (100, 0.3),
    (500, 0.2),
)


@dataclass(frozen=True)
class AnomalyConfig:
    """Anomaly Detector configuration."""

    window_days: int = 14
    tolerance_table: Tuple[Tuple[float, float], ...] = DEFAULT_TOLERANCE_TABLE
    default_tolerance: float = 0.1

    @classmethod
    def from_settings(cls) -> "AnomalyConfig":
        table = getattr(settings, "ANOMALY_TOLERANCE_TABLE", DEFAULT_TOLERANCE_TABLE)
        return cls(
            window_days=getattr(settings, "ANOMALY_DETECTION_DAYS", 14),
            tolerance_table=tuple((float(bound), float(tol)) for bound, tol in table),
            default_tolerance=getattr(settings, "ANOMALY_DEFAULT_TOLERANCE", 0.1),
        )


@dataclass(frozen=True)
class AnomalyResult:
    """Evaluation of one source URL."""

    source_url: str
    count: int
    baseline: float
    tolerance: float
    surge_threshold: float
    plunge_threshold: float
    anomaly_type: Optional[str] = None
    history_size: int = 0

    @property
    def is_anomaly(self) -> bool:
        return self.anomaly_type is not None


def get_tolerance_multiplier(
    baseline: float,
    table: Sequence[Tuple[float, float]] = DEFAULT_TOLERANCE_TABLE,
    default: float = 0.1,
) -> float:
    """Tolerance for a baseline: the first row whose upper bound exceeds it."""
    for upper_bound, tolerance in table:
        if baseline < upper_bound:
            return tolerance
    return default


def compute_thresholds(baseline: float, tolerance: float) -> Tuple[float, float]:
    """Return (surge_threshold, plunge_threshold); the plunge floor is 1."""
    surge = baseline * (1 + tolerance)
    plunge = max(1.0, baseline * (1 - tolerance))
    return surge, plunge


def classify(count: int, surge_threshold: float, plunge_threshold: float) -> Optional[str]:
    """Surge is checked before plunge; at most one classification."""
    if count > surge_threshold:
        return AnomalyType.SURGE
    if count < plunge_threshold:
        return AnomalyType.PLUNGE
    return None


class AnomalyDetector:
    """
    Evaluate per-source-URL counts against their recent history.

    Usage:
        detector = AnomalyDetector(AnomalyConfig.from_settings())
        anomalies = [r for r in detector.evaluate(counts, run=run) if r.is_anomaly]
    """

    def __init__(self, config: Optional[AnomalyConfig] = None):
        self.config = config or AnomalyConfig.from_settings()

    def _history(self, source_url: str, since) -> List[int]:
        return list(
            CouponStats.objects.filter(
                source_url=source_url, created_at__gte=since
            ).values_list("coupons_count", flat=True)
        )

    def evaluate_one(self, source_url: str, count: int, history: Sequence[int]) -> AnomalyResult:
        baseline = sum(history) / len(history) if history else float(count)
        tolerance = get_tolerance_multiplier(
            baseline, self.config.tolerance_table, self.config.default_tolerance
        )
        surge, plunge = compute_thresholds(baseline, tolerance)
        return AnomalyResult(
            source_url=source_url,
            count=count,
            baseline=baseline,
            tolerance=tolerance,
            surge_threshold=surge,
            plunge_threshold=plunge,
            anomaly_type=classify(count, surge, plunge),
            history_size=len(history),
        )

    def evaluate(self, counts_by_url: Dict[str, int], run=None) -> List[AnomalyResult]:
        """
        Evaluate every source URL of a run and store the observations.

        Args:
            counts_by_url: Records seen per source URL in this run
            run: ProcessedRun the counts belong to

        Returns:
            One AnomalyResult per source URL
        """
        now = timezone.now()
        since = now - timedelta(days=self.config.window_days)

        results = [
            self.evaluate_one(url, count, self._history(url, since))
            for url, count in counts_by_url.items()
        ]

        CouponStats.objects.bulk_create(
            [
                CouponStats(
                    source_url=r.source_url,
                    coupons_count=r.count,
                    surge_threshold=r.surge_threshold,
                    plunge_threshold=r.plunge_threshold,
                    anomaly_type=r.anomaly_type,
                    run=run,
                    created_at=now,
                )
                for r in results
            ]
        )

        flagged = sum(1 for r in results if r.is_anomaly)
        logger.info(
            f"Anomaly check: {len(results)} source URLs evaluated, {flagged} flagged"
        )
        return results
