import logging

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..exceptions import ImpactEngineError
from ..models import Organization, RecalculationBatch, RecalculationJob
from ..permissions import IsPlatformAdmin
from ..serializers import (
    CompleteJobSerializer, EnqueueRecalculationSerializer,
    RecalculationBatchSerializer, RecalculationJobSerializer, SweepJobsSerializer,
)
from ..services.recalculation import (
    batch_progress, cancel_batch, claim_next_job, complete_job,
    enqueue_recalculation, sweep_stale_jobs,
)
from .errors import engine_error_response

logger = logging.getLogger(__name__)


class RecalculationBatchViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Recalculation batches (operator progress view).

    POST creates a batch from a selector (or an explicit assessment_ids list).
    """
    queryset = RecalculationBatch.objects.select_related('organization')
    serializer_class = RecalculationBatchSerializer
    permission_classes = [IsPlatformAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['status', 'organization']

    def create(self, request, *args, **kwargs):
        serializer = EnqueueRecalculationSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        organization = None
        if data.get('organization'):
            organization = get_object_or_404(Organization, pk=data['organization'])
        metadata = {
            'name': data.get('name'),
            'description': data.get('description', ''),
            'trigger_reason': data.get('trigger_reason', ''),
            'triggered_by': request.user.get_username(),
            'priority': data.get('priority'),
        }
        selector = data.get('assessment_ids') or data['selector']
        try:
            batch = enqueue_recalculation(selector, metadata, organization=organization)
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(RecalculationBatchSerializer(batch).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def progress(self, request, pk=None):
        return Response(batch_progress(self.get_object()))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        batch = cancel_batch(self.get_object())
        return Response(RecalculationBatchSerializer(batch).data)


class RecalculationJobViewSet(viewsets.ReadOnlyModelViewSet):
    """ Queue jobs; workers use claim and complete. """
    queryset = RecalculationJob.objects.select_related('batch', 'assessment')
    serializer_class = RecalculationJobSerializer
    permission_classes = [IsPlatformAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['batch', 'status', 'assessment']

    @action(detail=False, methods=['post'])
    def claim(self, request):
        job = claim_next_job()
        if job is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(RecalculationJobSerializer(job).data)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        serializer = CompleteJobSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        job = self.get_object()
        try:
            job = complete_job(job.pk, serializer.validated_data['success'], serializer.validated_data.get('error'))
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(RecalculationJobSerializer(job).data)

    @action(detail=False, methods=['post'])
    def sweep(self, request):
        """ Reset jobs stuck in processing (optional body: {"timeout_minutes": 30}). """
        serializer = SweepJobsSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        stats = sweep_stale_jobs(serializer.validated_data.get('timeout_minutes'))
        return Response(stats)
