"""
Tests for the health check endpoint.
"""

from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone

from coupons.models import ProcessedRun

HEALTH_URL = "/api/health/"


@pytest.fixture
def no_broker():
    with patch("coupons.views.get_redis_connection", return_value=None), patch(
        "coupons.views.get_celery_worker_count", return_value=0
    ):
        yield


@pytest.mark.django_db
class TestHealthCheck:

    def test_healthy_without_broker(self, client, no_broker):
        response = client.get(HEALTH_URL)

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["redis"] == "not_configured"
        assert data["celery_workers"] == 0
        assert data["last_processed_run"] is None

    def test_reports_last_finished_run(self, client, no_broker):
        ended = timezone.now()
        ProcessedRun.objects.create(
            actor_id="a", actor_run_id="r1", dataset_id="d", ended_at=ended
        )
        ProcessedRun.objects.create(actor_id="a", actor_run_id="r2", dataset_id="d")

        data = client.get(HEALTH_URL).json()

        assert data["last_processed_run"] == ended.isoformat()

    def test_redis_ping(self, client):
        redis_client = MagicMock()
        redis_client.ping.return_value = True

        with patch("coupons.views.get_redis_connection", return_value=redis_client), patch(
            "coupons.views.get_celery_worker_count", return_value=2
        ):
            data = client.get(HEALTH_URL).json()

        assert data["redis"] == "connected"
        assert data["celery_workers"] == 2

    def test_redis_failure_degrades_but_stays_healthy(self, client):
        redis_client = MagicMock()
        redis_client.ping.side_effect = ConnectionError("refused")

        with patch("coupons.views.get_redis_connection", return_value=redis_client), patch(
            "coupons.views.get_celery_worker_count", return_value=0
        ):
            response = client.get(HEALTH_URL)

        assert response.status_code == 200
        assert response.json()["redis"] == "error"

    def test_database_failure_is_unhealthy(self, client, no_broker):
        with patch("coupons.views.connection") as mock_connection:
            mock_connection.ensure_connection.side_effect = Exception("db down")
            response = client.get(HEALTH_URL)

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert data["database"] == "error"
        assert data["last_processed_run"] is None
