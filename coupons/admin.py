"""
Django admin configuration for coupon ingestion models.

Coupons and runs are written by the pipeline, so their admin pages are
read-mostly; reference data (sources, target pages, merchants, locales)
is editable.
"""

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html

from coupons.models import (
    ArchiveReason,
    Coupon,
    CouponStats,
    Locale,
    Merchant,
    ProcessedRun,
    RunStatus,
    Source,
    TargetPage,
)
from coupons.tasks import process_coupon_run


@admin.register(Locale)
class LocaleAdmin(admin.ModelAdmin):
    list_display = ["code", "language_code", "country_code", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["code"]


@admin.register(Merchant)
class MerchantAdmin(admin.ModelAdmin):
    list_display = ["name", "domain", "locale", "created_at"]
    list_filter = ["locale"]
    search_fields = ["name", "domain"]


@admin.register(Source)
class SourceAdmin(admin.ModelAdmin):
    list_display = ["name", "apify_actor_id", "domain_count", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name", "apify_actor_id"]

    def domain_count(self, obj):
        return len(obj.domains or [])
    domain_count.short_description = "Domains"


@admin.register(TargetPage)
class TargetPageAdmin(admin.ModelAdmin):
    list_display = ["url", "source", "locale", "last_apify_run_at", "disabled_at"]
    list_filter = ["source", "locale", ("disabled_at", admin.EmptyFieldListFilter)]
    search_fields = ["url", "domain"]
    actions = ["enable_pages"]

    @admin.action(description="Re-enable selected pages")
    def enable_pages(self, request, queryset):
        """Clear disabled_at so scrapers visit the pages again."""
        count = queryset.update(disabled_at=None)
        self.message_user(request, f"Re-enabled {count} page(s).")


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = [
        "merchant_name",
        "title",
        "code",
        "locale",
        "is_shown",
        "archived_reason",
        "should_be_fake",
        "last_seen_at",
    ]
    list_filter = [
        "archived_reason",
        "is_shown",
        "is_expired",
        "should_be_fake",
        "locale",
    ]
    search_fields = ["merchant_name", "title", "code", "source_url", "id"]
    readonly_fields = [
        "id",
        "source",
        "apify_actor_id",
        "id_in_site",
        "merchant_name",
        "source_url",
        "first_seen_at",
        "last_seen_at",
        "last_crawled_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-last_seen_at"]
    actions = ["archive_manually"]

    @admin.action(description="Archive selected coupons (manual)")
    def archive_manually(self, request, queryset):
        """Manual archives are never reversed by ingestion."""
        count = queryset.update(
            archived_at=timezone.now(),
            archived_reason=ArchiveReason.MANUAL,
            is_shown=False,
        )
        self.message_user(request, f"Archived {count} coupon(s).")


@admin.register(ProcessedRun)
class ProcessedRunAdmin(admin.ModelAdmin):
    list_display = [
        "id_short",
        "actor_id",
        "status_badge",
        "received_at",
        "ended_at",
        "result_count",
        "created_count",
        "updated_count",
        "archived_count",
        "removed_count",
        "error_count",
        "retries_count",
    ]
    list_filter = [
        "status",
        "actor_id",
        ("received_at", admin.DateFieldListFilter),
    ]
    search_fields = ["actor_id", "actor_run_id", "dataset_id"]
    readonly_fields = [field.name for field in ProcessedRun._meta.fields]
    ordering = ["-received_at"]
    actions = ["retry_runs"]

    def id_short(self, obj):
        return str(obj.id)[:8]
    id_short.short_description = "Run ID"

    def status_badge(self, obj):
        """Display status as colored badge."""
        colors = {
            RunStatus.READY: "#ffc107",
            RunStatus.RUNNING: "#007bff",
            RunStatus.SUCCEEDED: "#28a745",
            RunStatus.FAILED: "#dc3545",
            RunStatus.TIMED_OUT: "#fd7e14",
            RunStatus.ABORTED: "#6c757d",
        }
        color = colors.get(obj.status, "#6c757d")
        return format_html(
            '<span style="background-color: {}; color: white; '
            'padding: 2px 8px; border-radius: 4px;">{}</span>',
            color, obj.status
        )
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    @admin.action(description="Re-process selected runs")
    def retry_runs(self, request, queryset):
        count = 0
        for run in queryset:
            process_coupon_run.apply_async(args=[str(run.id)], queue="ingest")
            count += 1
        self.message_user(request, f"Queued {count} run(s) for re-processing.")

    def has_add_permission(self, request):
        return False


@admin.register(CouponStats)
class CouponStatsAdmin(admin.ModelAdmin):
    list_display = [
        "source_url",
        "coupons_count",
        "surge_threshold",
        "plunge_threshold",
        "anomaly_type",
        "created_at",
    ]
    list_filter = ["anomaly_type", ("created_at", admin.DateFieldListFilter)]
    search_fields = ["source_url"]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
