"""
Tests for database models.

These tests verify model behaviour the pipeline relies on: run status
mapping, run lifecycle bookkeeping and the uniqueness guards.
"""

import pytest
from datetime import timedelta
from django.db import IntegrityError, transaction
from django.utils import timezone


class TestRunStatus:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("SUCCEEDED", "SUCCEEDED"),
            ("succeeded", "SUCCEEDED"),
            ("TIMING-OUT", "TIMED-OUT"),
            ("ABORTING", "ABORTED"),
            ("SOMETHING-NEW", "READY"),
            (None, "READY"),
        ],
    )
    def test_from_external(self, value, expected):
        from coupons.models import RunStatus

        assert RunStatus.from_external(value) == expected


@pytest.mark.django_db
class TestProcessedRun:
    """Tests for ProcessedRun lifecycle."""

    def test_actor_run_id_is_unique(self, processed_run):
        from coupons.models import ProcessedRun

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                ProcessedRun.objects.create(
                    actor_id="actor-123", actor_run_id="run-abc", dataset_id="other"
                )

    def test_start_resets_previous_attempt(self, processed_run):
        processed_run.created_count = 5
        processed_run.error_count = 2
        processed_run.processing_errors = [{"index": 0}]
        processed_run.ended_at = timezone.now()
        processed_run.save()

        processed_run.start()
        processed_run.refresh_from_db()

        assert processed_run.created_count == 0
        assert processed_run.error_count == 0
        assert processed_run.processing_errors == []
        assert processed_run.ended_at is None
        assert processed_run.processing_started_at is not None
        assert not processed_run.is_finished

    def test_start_drops_earlier_observations(self, processed_run):
        from coupons.models import CouponStats

        CouponStats.objects.create(
            source_url="https://a/",
            coupons_count=5,
            surge_threshold=6,
            plunge_threshold=4,
            run=processed_run,
        )
        CouponStats.objects.create(
            source_url="https://a/", coupons_count=5, surge_threshold=6, plunge_threshold=4
        )

        processed_run.start()

        assert not CouponStats.objects.filter(run=processed_run).exists()
        assert CouponStats.objects.count() == 1

    def test_record_fetch_failure_keeps_run_open(self, processed_run):
        processed_run.start()

        processed_run.record_fetch_failure("HTTP 502")
        processed_run.refresh_from_db()

        assert not processed_run.is_finished
        assert processed_run.result_count == 0
        assert processed_run.error_count == 1
        assert processed_run.processing_errors[0]["index"] is None
        assert "HTTP 502" in processed_run.processing_errors[0]["error"]

    def test_finalize_writes_counters(self, processed_run):
        from coupons.services.run_reconciler import RunStats

        processed_run.start()
        stats = RunStats(created=3, updated=2, archived=1, unarchived=1, removed=4, skipped=1)
        stats.add_error(7, ValueError("bad"), {"x": 1})

        processed_run.finalize(stats, result_count=9, duplicate_count=2)
        processed_run.refresh_from_db()

        assert processed_run.is_finished
        assert processed_run.result_count == 9
        assert processed_run.duplicate_count == 2
        assert processed_run.unarchived_count == 1
        assert processed_run.skipped_count == 1
        assert processed_run.error_count == 1
        assert processed_run.processing_errors[0]["index"] == 7
        assert processed_run.duration_seconds >= 0

    def test_duration_needs_both_timestamps(self, processed_run):
        assert processed_run.duration_seconds is None
        processed_run.processing_started_at = timezone.now() - timedelta(seconds=30)
        processed_run.ended_at = timezone.now()
        assert processed_run.duration_seconds == pytest.approx(30, abs=1)


@pytest.mark.django_db
class TestCoupon:

    def test_is_archived(self):
        from coupons.models import Coupon

        coupon = Coupon.objects.create(
            id="c1", id_in_site="1", merchant_name="Acme", source_url="https://a/"
        )
        assert not coupon.is_archived

        coupon.archived_at = timezone.now()
        assert coupon.is_archived
        assert str(coupon) == "Acme: 1"

    @pytest.mark.parametrize("name", ["id_in_site", "merchant_name", "code"])
    def test_scraped_text_columns_are_unbounded(self, name):
        from coupons.models import Coupon

        assert Coupon._meta.get_field(name).get_internal_type() == "TextField"
