"""
Request serializers for the coupon ingestion API.
"""

from rest_framework import serializers


class EventDataSerializer(serializers.Serializer):
    actorId = serializers.CharField(max_length=64)
    actorRunId = serializers.CharField(max_length=64)
    retriesCount = serializers.IntegerField(required=False, min_value=0, default=0)


class ResourceSerializer(serializers.Serializer):
    defaultDatasetId = serializers.CharField(max_length=64)
    status = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    usageTotalUsd = serializers.DecimalField(
        max_digits=12, decimal_places=6, required=False, allow_null=True, default=None
    )
    startedAt = serializers.DateTimeField(required=False, allow_null=True, default=None)


class WebhookRequestSerializer(serializers.Serializer):
    """
    Body of a scraper run completion webhook.

    {
        "eventData": {"actorId": "...", "actorRunId": "...", "retriesCount": 0},
        "resource": {"defaultDatasetId": "...", "status": "SUCCEEDED",
                     "usageTotalUsd": 0.12, "startedAt": "2024-05-01T10:00:00Z"},
        "localeId": "en_GB"
    }
    """

    eventData = EventDataSerializer()
    resource = ResourceSerializer()
    localeId = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")


class RunStatsQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    actor_id = serializers.CharField(max_length=64, required=False)

    def validate(self, attrs):
        date_from = attrs.get("date_from")
        date_to = attrs.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise serializers.ValidationError("date_from must not be after date_to")
        return attrs
