"""
Django models for the Coupon Ingestion Service.

Reference data (Locale, Merchant, Source, TargetPage) is maintained by
the surrounding platform; the ingestion pipeline reads it and writes a
handful of bookkeeping fields. Coupon, ProcessedRun and CouponStats are
owned by the pipeline.
"""

import uuid

from django.db import models
from django.utils import timezone


class ArchiveReason(models.TextChoices):
    """Why a coupon left (or re-entered) the active set."""

    EXPIRED = "expired", "Expired"
    REMOVED = "removed", "Removed"
    UNEXPIRED = "unexpired", "Unexpired"
    MANUAL = "manual", "Manual"


class RunStatus(models.TextChoices):
    """Status of a scraper run as reported by the job runner."""

    READY = "READY", "Ready"
    RUNNING = "RUNNING", "Running"
    SUCCEEDED = "SUCCEEDED", "Succeeded"
    FAILED = "FAILED", "Failed"
    TIMED_OUT = "TIMED-OUT", "Timed Out"
    ABORTED = "ABORTED", "Aborted"

    @classmethod
    def from_external(cls, value):
        """Map a job-runner status string onto a RunStatus."""
        if not value:
            return cls.READY
        value = str(value).upper()
        transitional = {
            "TIMING-OUT": cls.TIMED_OUT,
            "ABORTING": cls.ABORTED,
        }
        if value in transitional:
            return transitional[value]
        try:
            return cls(value)
        except ValueError:
            return cls.READY


class AnomalyType(models.TextChoices):
    SURGE = "surge", "Surge"
    PLUNGE = "plunge", "Plunge"


# ============================================================
# Reference data
# ============================================================


class Locale(models.Model):
    """A market locale such as en_GB or de_DE."""

    code = models.CharField(max_length=16, primary_key=True)
    language_code = models.CharField(max_length=8, blank=True)
    country_code = models.CharField(max_length=8, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "locales"
        ordering = ["code"]

    def __str__(self):
        return self.code


class Merchant(models.Model):
    """A merchant whose offers are aggregated."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    domain = models.CharField(max_length=255, blank=True, db_index=True)
    locale = models.ForeignKey(
        Locale, on_delete=models.SET_NULL, null=True, blank=True, related_name="merchants"
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "merchants"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Source(models.Model):
    """
    A scraper actor and the aggregator domains it covers.

    `domains` holds the locale mapping table:
        [{"domain": "vouchercodes.co.uk", "locales": ["en_GB"],
          "routes": {"/fr/": "fr_FR"}}]
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    apify_actor_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    domains = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "sources"
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.apify_actor_id})"


class TargetPage(models.Model):
    """A page a scraper visits on its schedule."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    url = models.URLField(max_length=2000, unique=True)
    domain = models.CharField(max_length=255, blank=True)
    source = models.ForeignKey(
        Source, on_delete=models.SET_NULL, null=True, blank=True, related_name="target_pages"
    )
    merchant = models.ForeignKey(
        Merchant, on_delete=models.SET_NULL, null=True, blank=True, related_name="target_pages"
    )
    locale = models.ForeignKey(
        Locale, on_delete=models.SET_NULL, null=True, blank=True, related_name="target_pages"
    )
    verified_locale = models.CharField(max_length=16, blank=True)
    last_apify_run_at = models.DateTimeField(null=True, blank=True)
    disabled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "target_pages"
        indexes = [
            models.Index(fields=["disabled_at"], name="target_page_disable_3c1b0e_idx"),
        ]

    def __str__(self):
        return self.url


# ============================================================
# Pipeline-owned data
# ============================================================


class Coupon(models.Model):
    """
    A promotional offer as last seen on an aggregator page.

    The primary key is the content hash from
    coupons.utils.normalization.generate_coupon_id.
    """

    id = models.CharField(max_length=64, primary_key=True)

    source = models.ForeignKey(
        Source, on_delete=models.SET_NULL, null=True, blank=True, related_name="coupons"
    )
    apify_actor_id = models.CharField(max_length=64, blank=True)
    id_in_site = models.TextField()
    merchant_name = models.TextField()
    merchant = models.ForeignKey(
        Merchant, on_delete=models.SET_NULL, null=True, blank=True, related_name="coupons"
    )
    domain = models.CharField(max_length=255, blank=True, null=True)
    locale = models.ForeignKey(
        Locale, on_delete=models.SET_NULL, null=True, blank=True, related_name="coupons"
    )
    source_url = models.URLField(max_length=2000)

    # Content
    title = models.TextField(blank=True, null=True)
    description = models.TextField(blank=True, null=True)
    terms_and_conditions = models.TextField(blank=True, null=True)
    code = models.TextField(blank=True, null=True)
    start_date_at = models.DateTimeField(null=True, blank=True)
    expiry_date_at = models.DateTimeField(null=True, blank=True)

    # Flags
    is_exclusive = models.BooleanField(null=True, blank=True)
    is_shown = models.BooleanField(default=True)
    is_expired = models.BooleanField(null=True, blank=True)
    should_be_fake = models.BooleanField(default=False)

    # Archive state
    archived_at = models.DateTimeField(null=True, blank=True)
    archived_reason = models.CharField(
        max_length=20, choices=ArchiveReason.choices, blank=True, null=True
    )

    # Sighting timestamps
    first_seen_at = models.DateTimeField(default=timezone.now)
    last_seen_at = models.DateTimeField(default=timezone.now)
    last_crawled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "coupons"
        ordering = ["-last_seen_at"]
        indexes = [
            models.Index(fields=["source_url"], name="coupons_source__2b6c7d_idx"),
            models.Index(fields=["archived_at", "source_url"], name="coupons_archive_9a4e12_idx"),
            models.Index(fields=["last_seen_at"], name="coupons_last_se_61f0c3_idx"),
        ]

    def __str__(self):
        return f"{self.merchant_name}: {self.title or self.id_in_site}"

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None


class ProcessedRun(models.Model):
    """
    One webhook-announced scraper run and the outcome of ingesting it.

    actor_run_id is unique: a second webhook for the same run is a no-op.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    actor_id = models.CharField(max_length=64, db_index=True)
    actor_run_id = models.CharField(max_length=64, unique=True)
    dataset_id = models.CharField(max_length=64)
    locale_id = models.CharField(max_length=16, blank=True)

    status = models.CharField(
        max_length=20, choices=RunStatus.choices, default=RunStatus.READY
    )

    # Timing
    received_at = models.DateTimeField(default=timezone.now)
    started_at = models.DateTimeField(null=True, blank=True)
    processing_started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)

    # Counters
    result_count = models.IntegerField(default=0)
    duplicate_count = models.IntegerField(default=0)
    created_count = models.IntegerField(default=0)
    updated_count = models.IntegerField(default=0)
    archived_count = models.IntegerField(default=0)
    unarchived_count = models.IntegerField(default=0)
    removed_count = models.IntegerField(default=0)
    skipped_count = models.IntegerField(default=0)
    error_count = models.IntegerField(default=0)

    cost_usd = models.DecimalField(max_digits=12, decimal_places=6, null=True, blank=True)

    # Raw webhook body, kept so unfinished runs can be replayed
    payload = models.JSONField(default=dict, blank=True)
    processing_errors = models.JSONField(default=list, blank=True)
    retries_count = models.IntegerField(default=0)

    class Meta:
        db_table = "processed_runs"
        ordering = ["-received_at"]
        indexes = [
            models.Index(fields=["ended_at", "received_at"], name="processed_r_ended_a_8d2f41_idx"),
            models.Index(fields=["actor_id", "received_at"], name="processed_r_actor_i_5e7a90_idx"),
        ]

    def __str__(self):
        return f"Run {self.actor_run_id} ({self.actor_id}, {self.status})"

    @property
    def is_finished(self) -> bool:
        return self.ended_at is not None

    @property
    def duration_seconds(self):
        """Processing duration."""
        if self.processing_started_at and self.ended_at:
            return (self.ended_at - self.processing_started_at).total_seconds()
        return None

    def start(self):
        """
        Mark processing as started and clear results of an earlier attempt.

        Observations a previous attempt stored are dropped so a replay adds
        each page count to the anomaly history once.
        """
        self.coupon_stats.all().delete()
        self.processing_started_at = timezone.now()
        self.ended_at = None
        self.result_count = 0
        self.duplicate_count = 0
        self.created_count = 0
        self.updated_count = 0
        self.archived_count = 0
        self.unarchived_count = 0
        self.removed_count = 0
        self.skipped_count = 0
        self.error_count = 0
        self.processing_errors = []
        self.save(
            update_fields=[
                "processing_started_at",
                "ended_at",
                "result_count",
                "duplicate_count",
                "created_count",
                "updated_count",
                "archived_count",
                "unarchived_count",
                "removed_count",
                "skipped_count",
                "error_count",
                "processing_errors",
            ]
        )

    def record_fetch_failure(self, error: str):
        """Record a failed dataset fetch, leaving the run unfinished for the retry sweep."""
        self.result_count = 0
        self.processing_errors = [
            {"index": None, "error": f"Dataset fetch failed: {error}", "item": None}
        ]
        self.error_count = 1
        self.save(update_fields=["result_count", "processing_errors", "error_count"])

    def finalize(self, stats, result_count: int, duplicate_count: int = 0):
        """Write final counters from a RunStats accumulator and mark the run ended."""
        self.result_count = result_count
        self.duplicate_count = duplicate_count
        self.created_count = stats.created
        self.updated_count = stats.updated
        self.archived_count = stats.archived
        self.unarchived_count = stats.unarchived
        self.removed_count = stats.removed
        self.skipped_count = stats.skipped
        self.error_count = len(stats.errors)
        self.processing_errors = stats.errors
        self.ended_at = timezone.now()
        self.save(
            update_fields=[
                "result_count",
                "duplicate_count",
                "created_count",
                "updated_count",
                "archived_count",
                "unarchived_count",
                "removed_count",
                "skipped_count",
                "error_count",
                "processing_errors",
                "ended_at",
            ]
        )


class CouponStats(models.Model):
    """Per-source-URL coupon count observation; training data for anomaly detection."""

    id = models.BigAutoField(primary_key=True)
    source_url = models.URLField(max_length=2000)
    coupons_count = models.IntegerField()
    surge_threshold = models.FloatField()
    plunge_threshold = models.FloatField()
    anomaly_type = models.CharField(
        max_length=10, choices=AnomalyType.choices, blank=True, null=True
    )
    run = models.ForeignKey(
        ProcessedRun,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="coupon_stats",
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "coupon_stats"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["source_url", "created_at"], name="coupon_stat_source__7f3b28_idx"),
        ]

    def __str__(self):
        return f"{self.source_url}: {self.coupons_count}"
