"""
Coupon ingestion API views.

The webhook only records the run and enqueues it; ingestion happens in the
process_coupon_run Celery task after the response has been sent. Every
response uses the same envelope:

    {"status": "SUCCESS" | "ERROR", "statusMessage": "...", "data": ...}
"""

import logging
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from coupons.api.serializers import RunStatsQuerySerializer, WebhookRequestSerializer
from coupons.models import ProcessedRun, RunStatus

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"


def _envelope(status_value: str, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    body = {"status": status_value, "statusMessage": message}
    if data is not None:
        body["data"] = data
    return body


def _enqueue_run(run: ProcessedRun) -> None:
    """Hand the run to the ingest queue (lazy import to avoid circular imports)."""
    from coupons.tasks import process_coupon_run

    process_coupon_run.apply_async(args=[str(run.id)], queue="ingest")


@api_view(['POST'])
@permission_classes([AllowAny])
def coupon_webhook(request):
    """
    Accept a scraper run completion webhook.

    A repeated delivery for the same actorRunId is acknowledged with
    SUCCESS and does nothing else.
    """
    serializer = WebhookRequestSerializer(data=request.data)
    if not serializer.is_valid():
        logger.warning(f"Rejected coupon webhook: {serializer.errors}")
        return Response(
            _envelope(STATUS_ERROR, "Invalid webhook payload", serializer.errors),
            status=status.HTTP_400_BAD_REQUEST,
        )

    data = serializer.validated_data
    event = data["eventData"]
    resource = data["resource"]
    actor_run_id = event["actorRunId"]

    if ProcessedRun.objects.filter(actor_run_id=actor_run_id).exists():
        logger.info(f"Duplicate webhook for run {actor_run_id}, ignoring")
        return Response(_envelope(STATUS_SUCCESS, "Run already processed"))

    try:
        with transaction.atomic():
            run = ProcessedRun.objects.create(
                actor_id=event["actorId"],
                actor_run_id=actor_run_id,
                dataset_id=resource["defaultDatasetId"],
                locale_id=data.get("localeId") or "",
                status=RunStatus.from_external(resource.get("status")),
                started_at=resource.get("startedAt"),
                cost_usd=resource.get("usageTotalUsd"),
                payload=request.data,
                retries_count=event.get("retriesCount") or 0,
            )
    except IntegrityError:
        # Concurrent delivery of the same run won the insert
        logger.info(f"Duplicate webhook for run {actor_run_id} (concurrent), ignoring")
        return Response(_envelope(STATUS_SUCCESS, "Run already processed"))

    _enqueue_run(run)

    logger.info(
        f"Accepted run {actor_run_id} from actor {run.actor_id} "
        f"(dataset {run.dataset_id}, status {run.status})"
    )

    return Response(
        _envelope(STATUS_SUCCESS, "Run accepted", {"runId": str(run.id)}),
        status=status.HTTP_202_ACCEPTED,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def run_stats(request):
    """
    Aggregate run counters per actor.

    Query params: date_from, date_to (YYYY-MM-DD, on received_at), actor_id.
    """
    query = RunStatsQuerySerializer(data=request.query_params)
    if not query.is_valid():
        return Response(
            _envelope(STATUS_ERROR, "Invalid query parameters", query.errors),
            status=status.HTTP_400_BAD_REQUEST,
        )

    params = query.validated_data
    runs = ProcessedRun.objects.all()
    if params.get("date_from"):
        runs = runs.filter(received_at__date__gte=params["date_from"])
    if params.get("date_to"):
        runs = runs.filter(received_at__date__lte=params["date_to"])
    if params.get("actor_id"):
        runs = runs.filter(actor_id=params["actor_id"])

    rows = (
        runs.values("actor_id")
        .annotate(
            runs=Count("id"),
            result_count=Sum("result_count"),
            created_count=Sum("created_count"),
            updated_count=Sum("updated_count"),
            archived_count=Sum("archived_count"),
            unarchived_count=Sum("unarchived_count"),
            removed_count=Sum("removed_count"),
            error_count=Sum("error_count"),
            cost_usd=Sum("cost_usd"),
        )
        .order_by("actor_id")
    )

    actors = []
    for row in rows:
        row["cost_usd"] = float(row["cost_usd"]) if row["cost_usd"] is not None else None
        actors.append(row)

    return Response(_envelope(STATUS_SUCCESS, f"{len(actors)} actor(s)", {"actors": actors}))
