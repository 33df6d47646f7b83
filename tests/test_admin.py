"""
Tests for Django Admin functionality.

These tests verify the admin actions operators use to intervene in
ingestion: re-processing runs, manual archives and page re-enabling.
"""

import pytest
from django.contrib.admin.sites import AdminSite
from django.contrib.auth import get_user_model
from django.contrib.messages.storage.fallback import FallbackStorage
from django.contrib.sessions.middleware import SessionMiddleware
from django.test import RequestFactory
from django.utils import timezone
from unittest.mock import patch


@pytest.fixture
def admin_user(db):
    """Create an admin user for testing."""
    User = get_user_model()
    return User.objects.create_superuser(
        username="admin",
        email="admin@test.com",
        password="testpass123",
    )


@pytest.fixture
def admin_request(admin_user):
    """Create an admin request with user and messages support attached."""
    request = RequestFactory().get("/admin/")
    request.user = admin_user

    middleware = SessionMiddleware(lambda x: None)
    middleware.process_request(request)
    request.session.save()

    setattr(request, "_messages", FallbackStorage(request))

    return request


@pytest.mark.django_db
class TestProcessedRunAdmin:

    def test_retry_action_enqueues_runs(self, admin_request, processed_run):
        from coupons.admin import ProcessedRunAdmin
        from coupons.models import ProcessedRun

        admin = ProcessedRunAdmin(ProcessedRun, AdminSite())

        with patch("coupons.admin.process_coupon_run.apply_async") as mock_apply:
            admin.retry_runs(admin_request, ProcessedRun.objects.all())

        mock_apply.assert_called_once_with(args=[str(processed_run.id)], queue="ingest")

    def test_status_badge(self, processed_run):
        from coupons.admin import ProcessedRunAdmin
        from coupons.models import ProcessedRun

        admin = ProcessedRunAdmin(ProcessedRun, AdminSite())
        badge = admin.status_badge(processed_run)

        assert "#28a745" in badge
        assert "SUCCEEDED" in badge
        assert admin.id_short(processed_run) == str(processed_run.id)[:8]

    def test_runs_cannot_be_added(self, admin_request):
        from coupons.admin import ProcessedRunAdmin
        from coupons.models import ProcessedRun

        assert ProcessedRunAdmin(ProcessedRun, AdminSite()).has_add_permission(admin_request) is False


@pytest.mark.django_db
class TestCouponAdmin:

    def test_manual_archive_action(self, admin_request):
        from coupons.admin import CouponAdmin
        from coupons.models import ArchiveReason, Coupon

        Coupon.objects.create(
            id="c1", id_in_site="c1", merchant_name="Acme", source_url="https://a/"
        )
        admin = CouponAdmin(Coupon, AdminSite())

        admin.archive_manually(admin_request, Coupon.objects.all())

        coupon = Coupon.objects.get(pk="c1")
        assert coupon.archived_reason == ArchiveReason.MANUAL
        assert coupon.archived_at is not None
        assert coupon.is_shown is False


@pytest.mark.django_db
class TestTargetPageAdmin:

    def test_enable_pages_action(self, admin_request):
        from coupons.admin import TargetPageAdmin
        from coupons.models import TargetPage

        TargetPage.objects.create(url="https://a/page", disabled_at=timezone.now())
        admin = TargetPageAdmin(TargetPage, AdminSite())

        admin.enable_pages(admin_request, TargetPage.objects.all())

        assert TargetPage.objects.get(url="https://a/page").disabled_at is None
