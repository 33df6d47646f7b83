import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Locale",
            fields=[
                ("code", models.CharField(max_length=16, primary_key=True, serialize=False)),
                ("language_code", models.CharField(blank=True, max_length=8)),
                ("country_code", models.CharField(blank=True, max_length=8)),
                ("is_active", models.BooleanField(default=True)),
            ],
            options={
                "db_table": "locales",
                "ordering": ["code"],
            },
        ),
        migrations.CreateModel(
            name="Merchant",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("domain", models.CharField(blank=True, db_index=True, max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "locale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="merchants",
                        to="coupons.locale",
                    ),
                ),
            ],
            options={
                "db_table": "merchants",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Source",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("apify_actor_id", models.CharField(max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("domains", models.JSONField(blank=True, default=list)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "db_table": "sources",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="TargetPage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("url", models.URLField(max_length=2000, unique=True)),
                ("domain", models.CharField(blank=True, max_length=255)),
                ("verified_locale", models.CharField(blank=True, max_length=16)),
                ("last_apify_run_at", models.DateTimeField(blank=True, null=True)),
                ("disabled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "locale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="target_pages",
                        to="coupons.locale",
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="target_pages",
                        to="coupons.merchant",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="target_pages",
                        to="coupons.source",
                    ),
                ),
            ],
            options={
                "db_table": "target_pages",
                "indexes": [models.Index(fields=["disabled_at"], name="target_page_disable_3c1b0e_idx")],
            },
        ),
        migrations.CreateModel(
            name="ProcessedRun",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("actor_id", models.CharField(db_index=True, max_length=64)),
                ("actor_run_id", models.CharField(max_length=64, unique=True)),
                ("dataset_id", models.CharField(max_length=64)),
                ("locale_id", models.CharField(blank=True, max_length=16)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("READY", "Ready"),
                            ("RUNNING", "Running"),
                            ("SUCCEEDED", "Succeeded"),
                            ("FAILED", "Failed"),
                            ("TIMED-OUT", "Timed Out"),
                            ("ABORTED", "Aborted"),
                        ],
                        default="READY",
                        max_length=20,
                    ),
                ),
                ("received_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("processing_started_at", models.DateTimeField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                ("result_count", models.IntegerField(default=0)),
                ("duplicate_count", models.IntegerField(default=0)),
                ("created_count", models.IntegerField(default=0)),
                ("updated_count", models.IntegerField(default=0)),
                ("archived_count", models.IntegerField(default=0)),
                ("unarchived_count", models.IntegerField(default=0)),
                ("removed_count", models.IntegerField(default=0)),
                ("skipped_count", models.IntegerField(default=0)),
                ("error_count", models.IntegerField(default=0)),
                ("cost_usd", models.DecimalField(blank=True, decimal_places=6, max_digits=12, null=True)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("processing_errors", models.JSONField(blank=True, default=list)),
                ("retries_count", models.IntegerField(default=0)),
            ],
            options={
                "db_table": "processed_runs",
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(fields=["ended_at", "received_at"], name="processed_r_ended_a_8d2f41_idx"),
                    models.Index(fields=["actor_id", "received_at"], name="processed_r_actor_i_5e7a90_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Coupon",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("apify_actor_id", models.CharField(blank=True, max_length=64)),
                ("id_in_site", models.TextField()),
                ("merchant_name", models.TextField()),
                ("domain", models.CharField(blank=True, max_length=255, null=True)),
                ("source_url", models.URLField(max_length=2000)),
                ("title", models.TextField(blank=True, null=True)),
                ("description", models.TextField(blank=True, null=True)),
                ("terms_and_conditions", models.TextField(blank=True, null=True)),
                ("code", models.TextField(blank=True, null=True)),
                ("start_date_at", models.DateTimeField(blank=True, null=True)),
                ("expiry_date_at", models.DateTimeField(blank=True, null=True)),
                ("is_exclusive", models.BooleanField(blank=True, null=True)),
                ("is_shown", models.BooleanField(default=True)),
                ("is_expired", models.BooleanField(blank=True, null=True)),
                ("should_be_fake", models.BooleanField(default=False)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
                (
                    "archived_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("expired", "Expired"),
                            ("removed", "Removed"),
                            ("unexpired", "Unexpired"),
                            ("manual", "Manual"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("first_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_seen_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("last_crawled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "locale",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="coupons",
                        to="coupons.locale",
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="coupons",
                        to="coupons.merchant",
                    ),
                ),
                (
                    "source",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="coupons",
                        to="coupons.source",
                    ),
                ),
            ],
            options={
                "db_table": "coupons",
                "ordering": ["-last_seen_at"],
                "indexes": [
                    models.Index(fields=["source_url"], name="coupons_source__2b6c7d_idx"),
                    models.Index(fields=["archived_at", "source_url"], name="coupons_archive_9a4e12_idx"),
                    models.Index(fields=["last_seen_at"], name="coupons_last_se_61f0c3_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CouponStats",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("source_url", models.URLField(max_length=2000)),
                ("coupons_count", models.IntegerField()),
                ("surge_threshold", models.FloatField()),
                ("plunge_threshold", models.FloatField()),
                (
                    "anomaly_type",
                    models.CharField(
                        blank=True,
                        choices=[("surge", "Surge"), ("plunge", "Plunge")],
                        max_length=10,
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "run",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="coupon_stats",
                        to="coupons.processedrun",
                    ),
                ),
            ],
            options={
                "db_table": "coupon_stats",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["source_url", "created_at"], name="coupon_stat_source__7f3b28_idx"),
                ],
            },
        ),
    ]
