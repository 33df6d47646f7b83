"""
Service-level views.

Includes health check endpoint for monitoring and load balancer checks.
"""

import redis
from django.conf import settings
from django.db import connection
from django.http import JsonResponse

from coupons.models import ProcessedRun


def get_redis_connection():
    """
    Get a Redis client for the Celery broker.

    Returns:
        Redis client if the broker is Redis, None otherwise.
    """
    broker_url = getattr(settings, "CELERY_BROKER_URL", "") or ""
    if not broker_url.startswith(("redis://", "rediss://")):
        return None
    return redis.Redis.from_url(broker_url, socket_connect_timeout=2, socket_timeout=2)


def get_celery_worker_count():
    """
    Get the count of active Celery workers.

    Returns:
        int: Number of active workers, 0 if Celery not available.
    """
    try:
        from config.celery import app as celery_app

        inspect = celery_app.control.inspect(timeout=1.0)
        active = inspect.active()
        if active:
            return len(active)
        return 0
    except Exception:
        return 0


def health_check(request):
    """
    Health check endpoint for the ingestion service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured", or "error"
        - celery_workers: integer count of active workers
        - last_processed_run: ISO timestamp of the last finished run

    Returns:
        JsonResponse: HTTP 200 for healthy, HTTP 503 for unhealthy
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except Exception:
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    # Broker problems degrade the report but not the status
    redis_status = "not_configured"
    try:
        redis_client = get_redis_connection()
        if redis_client is not None:
            redis_status = "connected" if redis_client.ping() else "error"
    except Exception:
        redis_status = "error"

    celery_workers = get_celery_worker_count()

    last_processed_run = None
    if database_status == "connected":
        try:
            latest = (
                ProcessedRun.objects.filter(ended_at__isnull=False)
                .order_by("-ended_at")
                .values_list("ended_at", flat=True)
                .first()
            )
            if latest:
                last_processed_run = latest.isoformat()
        except Exception:
            last_processed_run = None

    return JsonResponse(
        {
            "status": status,
            "database": database_status,
            "redis": redis_status,
            "celery_workers": celery_workers,
            "last_processed_run": last_processed_run,
        },
        status=http_status,
    )
