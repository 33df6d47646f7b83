"""
Celery configuration for the Coupon Ingestion Service.

Webhook-triggered dataset ingestion runs on the "ingest" queue; the
periodic retry and cleanup sweeps run on "maintenance".
"""

import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("coupon_ingest")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

app.conf.task_queues = {
    "ingest": {
        "exchange": "ingest",
        "routing_key": "ingest",
    },
    "maintenance": {
        "exchange": "maintenance",
        "routing_key": "maintenance",
    },
    "default": {
        "exchange": "default",
        "routing_key": "default",
    },
}

app.conf.task_default_queue = "default"
app.conf.task_default_exchange = "default"
app.conf.task_default_routing_key = "default"

app.conf.task_routes = {
    "coupons.tasks.process_coupon_run": {"queue": "ingest"},
    "coupons.tasks.retry_unfinished_runs": {"queue": "maintenance"},
    "coupons.tasks.cleanup_coupon_data": {"queue": "maintenance"},
}

app.conf.beat_schedule = {
    "retry-unfinished-runs-every-15-minutes": {
        "task": "coupons.tasks.retry_unfinished_runs",
        "schedule": crontab(minute="*/15"),
    },
    "cleanup-coupon-data-daily": {
        "task": "coupons.tasks.cleanup_coupon_data",
        "schedule": crontab(hour=3, minute=30),
    },
}
