from rest_framework import serializers

from ..models import RecalculationBatch, RecalculationJob
from ..services.recalculation import SELECTORS


class RecalculationJobSerializer(serializers.ModelSerializer):
    class Meta:
        model = RecalculationJob
        fields = [
            'id', 'batch', 'assessment', 'status', 'priority', 'attempt_count', 'max_attempts',
            'last_error', 'error_details', 'next_retry_at', 'created_at',
            'processing_started_at', 'processing_completed_at',
        ]
        read_only_fields = fields


class RecalculationBatchSerializer(serializers.ModelSerializer):
    pending_jobs = serializers.IntegerField(read_only=True)
    completion_percentage = serializers.FloatField(read_only=True)

    class Meta:
        model = RecalculationBatch
        fields = [
            'id', 'name', 'description', 'selector', 'organization', 'status', 'priority',
            'total_jobs', 'completed_jobs', 'failed_jobs', 'pending_jobs', 'completion_percentage',
            'error_summary', 'triggered_by', 'trigger_reason', 'created_at',
            'processing_started_at', 'processing_completed_at',
        ]
        read_only_fields = fields


class EnqueueRecalculationSerializer(serializers.Serializer):
    selector = serializers.ChoiceField(choices=sorted(SELECTORS), required=False, default='missing_single_score')
    assessment_ids = serializers.ListField(child=serializers.IntegerField(), required=False, allow_empty=False)
    organization = serializers.IntegerField(required=False, allow_null=True)
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    trigger_reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
    priority = serializers.IntegerField(required=False, min_value=1, max_value=10)


class CompleteJobSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    error = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class SweepJobsSerializer(serializers.Serializer):
    timeout_minutes = serializers.IntegerField(required=False, allow_null=True, min_value=0)
