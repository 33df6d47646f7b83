"""
Tests for the coupon webhook and run statistics endpoints.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse

from coupons.models import ProcessedRun, RunStatus

WEBHOOK_URL = "/api/v1/webhooks/coupons/"
STATS_URL = "/api/v1/runs/stats/"


def webhook_body(**overrides):
    body = {
        "eventData": {"actorId": "actor-123", "actorRunId": "run-1"},
        "resource": {
            "defaultDatasetId": "dataset-1",
            "status": "SUCCEEDED",
            "usageTotalUsd": 0.125,
            "startedAt": "2024-05-01T10:00:00Z",
        },
        "localeId": "en_GB",
    }
    body.update(overrides)
    return body


@pytest.fixture
def enqueue():
    with patch("coupons.tasks.process_coupon_run.apply_async") as mock_apply:
        yield mock_apply


@pytest.mark.django_db
class TestCouponWebhook:

    def test_url_names(self):
        assert reverse("coupons_api:coupon_webhook") == WEBHOOK_URL
        assert reverse("coupons_api:run_stats") == STATS_URL

    def test_accepts_run_and_enqueues(self, api_client, enqueue):
        response = api_client.post(WEBHOOK_URL, webhook_body(), format="json")

        assert response.status_code == 202
        assert response.data["status"] == "SUCCESS"
        run = ProcessedRun.objects.get(actor_run_id="run-1")
        assert response.data["data"]["runId"] == str(run.id)
        assert run.actor_id == "actor-123"
        assert run.dataset_id == "dataset-1"
        assert run.locale_id == "en_GB"
        assert run.status == RunStatus.SUCCEEDED
        assert run.cost_usd == Decimal("0.125")
        assert run.started_at is not None
        assert run.payload["eventData"]["actorRunId"] == "run-1"
        enqueue.assert_called_once_with(args=[str(run.id)], queue="ingest")

    def test_duplicate_delivery_is_a_noop(self, api_client, enqueue):
        api_client.post(WEBHOOK_URL, webhook_body(), format="json")
        response = api_client.post(WEBHOOK_URL, webhook_body(), format="json")

        assert response.status_code == 200
        assert response.data == {"status": "SUCCESS", "statusMessage": "Run already processed"}
        assert ProcessedRun.objects.filter(actor_run_id="run-1").count() == 1
        assert enqueue.call_count == 1

    def test_transitional_status_is_mapped(self, api_client, enqueue):
        body = webhook_body()
        body["resource"]["status"] = "TIMING-OUT"

        api_client.post(WEBHOOK_URL, body, format="json")

        assert ProcessedRun.objects.get(actor_run_id="run-1").status == RunStatus.TIMED_OUT

    def test_optional_fields_may_be_missing(self, api_client, enqueue):
        body = {
            "eventData": {"actorId": "actor-123", "actorRunId": "run-2"},
            "resource": {"defaultDatasetId": "dataset-2"},
        }

        response = api_client.post(WEBHOOK_URL, body, format="json")

        assert response.status_code == 202
        run = ProcessedRun.objects.get(actor_run_id="run-2")
        assert run.status == RunStatus.READY
        assert run.locale_id == ""
        assert run.cost_usd is None

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"resource": {"defaultDatasetId": "d"}},
            {"eventData": {"actorId": "a"}, "resource": {"defaultDatasetId": "d"}},
            {"eventData": {"actorId": "a", "actorRunId": "r"}, "resource": {}},
        ],
    )
    def test_validation_errors(self, api_client, enqueue, body):
        response = api_client.post(WEBHOOK_URL, body, format="json")

        assert response.status_code == 400
        assert response.data["status"] == "ERROR"
        assert "data" in response.data
        assert ProcessedRun.objects.count() == 0
        enqueue.assert_not_called()

    def test_get_not_allowed(self, api_client):
        assert api_client.get(WEBHOOK_URL).status_code == 405


@pytest.mark.django_db
class TestRunStats:

    @pytest.fixture
    def user(self):
        return get_user_model().objects.create_user(username="dashboard", password="pw")

    def _run(self, actor_id, run_id, **counts):
        return ProcessedRun.objects.create(
            actor_id=actor_id, actor_run_id=run_id, dataset_id="d", **counts
        )

    def test_requires_authentication(self, api_client):
        assert api_client.get(STATS_URL).status_code in (401, 403)

    def test_aggregates_per_actor(self, api_client, user):
        self._run("actor-a", "r1", created_count=3, error_count=1, cost_usd=Decimal("0.5"))
        self._run("actor-a", "r2", created_count=2, updated_count=4, cost_usd=Decimal("0.25"))
        self._run("actor-b", "r3", archived_count=7)
        api_client.force_authenticate(user=user)

        response = api_client.get(STATS_URL)

        assert response.status_code == 200
        actors = {row["actor_id"]: row for row in response.data["data"]["actors"]}
        assert actors["actor-a"]["runs"] == 2
        assert actors["actor-a"]["created_count"] == 5
        assert actors["actor-a"]["updated_count"] == 4
        assert actors["actor-a"]["error_count"] == 1
        assert actors["actor-a"]["cost_usd"] == pytest.approx(0.75)
        assert actors["actor-b"]["archived_count"] == 7
        assert actors["actor-b"]["cost_usd"] is None

    def test_filters_by_actor(self, api_client, user):
        self._run("actor-a", "r1")
        self._run("actor-b", "r2")
        api_client.force_authenticate(user=user)

        response = api_client.get(STATS_URL, {"actor_id": "actor-b"})

        assert [row["actor_id"] for row in response.data["data"]["actors"]] == ["actor-b"]

    def test_rejects_inverted_date_range(self, api_client, user):
        api_client.force_authenticate(user=user)

        response = api_client.get(STATS_URL, {"date_from": "2024-05-02", "date_to": "2024-05-01"})

        assert response.status_code == 400
        assert response.data["status"] == "ERROR"
