import logging

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..exceptions import ImpactEngineError, LockedRecordError
from ..models import (
    AllocationRecord, Facility, FacilityEnergyInput, FacilityPeriodTotals,
    Product, ProductionMixEntry,
)
from ..serializers import (
    AllocationCreateSerializer, AllocationRecordSerializer, AllocationTransitionSerializer,
    FacilityEnergyInputSerializer, FacilityPeriodTotalsSerializer, FacilitySerializer,
    ProductionMixEntrySerializer,
)
from ..services.allocation import (
    add_production_mix_entry, allocate, lock_allocation, lock_period_totals,
    recalculate_allocation, transition_allocation_status,
)
from .errors import engine_error_response

logger = logging.getLogger(__name__)


class FacilityViewSet(viewsets.ModelViewSet):
    queryset = Facility.objects.select_related('organization')
    serializer_class = FacilitySerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['organization', 'is_contract_manufacturer']


class FacilityPeriodTotalsViewSet(viewsets.ModelViewSet):
    """ Facility period totals; saving changed totals recomputes their allocations after commit. """
    queryset = FacilityPeriodTotals.objects.select_related('facility').prefetch_related('energy_inputs')
    serializer_class = FacilityPeriodTotalsSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {
        'facility': ['exact'],
        'reporting_period_start': ['exact', 'gte', 'lte'],
        'entry_method': ['exact'],
    }

    def perform_destroy(self, instance):
        if instance.is_locked:
            raise LockedRecordError(f"Facility period totals {instance.pk} are locked for allocation")
        instance.delete()

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ImpactEngineError as e:
            return engine_error_response(e)

    @action(detail=True, methods=['post'])
    def lock(self, request, pk=None):
        totals = lock_period_totals(self.get_object())
        return Response(self.get_serializer(totals).data)


class FacilityEnergyInputViewSet(viewsets.ModelViewSet):
    queryset = FacilityEnergyInput.objects.select_related('period_totals')
    serializer_class = FacilityEnergyInputSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['period_totals', 'scope']

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ImpactEngineError as e:
            return engine_error_response(e)


class AllocationRecordViewSet(viewsets.ModelViewSet):
    """
    Allocation records.

    Figures are always computed server-side: create with product, period_totals and
    client_production_volume; use the recalculate, lock and transition actions afterwards.
    """
    queryset = AllocationRecord.objects.select_related('product', 'facility', 'period_totals').prefetch_related('snapshots')
    serializer_class = AllocationRecordSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = {
        'product': ['exact'],
        'facility': ['exact'],
        'status': ['exact'],
        'reporting_period_start': ['exact', 'gte', 'lte'],
    }
    http_method_names = ['get', 'post', 'delete', 'head', 'options']

    def create(self, request, *args, **kwargs):
        serializer = AllocationCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        product = get_object_or_404(Product, pk=data['product'])
        totals = get_object_or_404(FacilityPeriodTotals, pk=data['period_totals'])
        try:
            record = allocate(
                totals,
                data['client_production_volume'],
                product=product,
                is_energy_intensive_process=data['is_energy_intensive_process'],
            )
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(AllocationRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def recalculate(self, request, pk=None):
        record = self.get_object()
        try:
            record = recalculate_allocation(record, client_volume=request.data.get('client_production_volume'))
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(AllocationRecordSerializer(record).data)

    @action(detail=True, methods=['post'])
    def lock(self, request, pk=None):
        try:
            record = lock_allocation(self.get_object())
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(AllocationRecordSerializer(record).data)

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        serializer = AllocationTransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        try:
            record = transition_allocation_status(
                self.get_object(),
                serializer.validated_data['status'],
                user=request.user,
                rollback=serializer.validated_data['rollback'],
            )
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(AllocationRecordSerializer(record).data)


class ProductionMixEntryViewSet(viewsets.ModelViewSet):
    queryset = ProductionMixEntry.objects.select_related('product', 'facility')
    serializer_class = ProductionMixEntrySerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['product', 'facility']

    def _save_entry(self, data, status_code):
        try:
            entry = add_production_mix_entry(data['product'], data['facility'], data['share'])
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(ProductionMixEntrySerializer(entry).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        return self._save_entry(serializer.validated_data, status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        entry = self.get_object()
        serializer = self.get_serializer(entry, data=request.data, partial=kwargs.get('partial', False))
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = {
            'product': entry.product,
            'facility': entry.facility,
            'share': serializer.validated_data.get('share', entry.share),
        }
        return self._save_entry(data, status.HTTP_200_OK)
