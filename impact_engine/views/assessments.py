import logging

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from ..exceptions import ImpactEngineError
from ..models import MaterialLineItem, Organization, Product, ProductAssessment
from ..permissions import IsPlatformAdminOrReadOnly
from ..serializers import (
    AggregatedImpactSerializer, MaterialLineItemSerializer, OrganizationSerializer,
    ProductAssessmentSerializer, ProductSerializer, ResolvedImpactSerializer,
    ResolveRequestSerializer,
)
from ..services.aggregation import refresh_assessment_impacts, resolve_weighting_set, score_breakdown, scoring_parameters
from ..services.allocation import finalise_assessment, mark_mix_complete, production_mix_summary
from ..services.resolver import resolve, resolve_assessment, resolve_line_item
from .errors import engine_error_response

logger = logging.getLogger(__name__)


class OrganizationViewSet(viewsets.ModelViewSet):
    queryset = Organization.objects.all()
    serializer_class = OrganizationSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [filters.SearchFilter]
    search_fields = ['name']


class ProductViewSet(viewsets.ModelViewSet):
    queryset = Product.objects.select_related('organization')
    serializer_class = ProductSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['organization']
    search_fields = ['name', 'sku']

    @action(detail=True, methods=['get'], url_path='production-mix')
    def production_mix(self, request, pk=None):
        """ Facility shares of this product's output and whether they sum to 1. """
        return Response(production_mix_summary(self.get_object()))


class ProductAssessmentViewSet(viewsets.ModelViewSet):
    """
    Product assessments.

    - resolve: run the resolver over every active line item
    - aggregate: recompute totals and the single score
    - single-score: score the current totals with a chosen weighting set (?weighting_set=<id>)
    - mark-mix-complete / finalise: blocked while the production mix does not sum to 1
    """
    queryset = ProductAssessment.objects.select_related('product', 'aggregated_impact')
    serializer_class = ProductAssessmentSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['product', 'status', 'recalculation_status']

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        assessment = self.get_object()
        stats = resolve_assessment(assessment)
        return Response(stats)

    @action(detail=True, methods=['post'])
    def aggregate(self, request, pk=None):
        assessment = self.get_object()
        try:
            aggregated = refresh_assessment_impacts(assessment, weighting_set_id=request.data.get('weighting_set'))
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(AggregatedImpactSerializer(aggregated).data)

    @action(detail=True, methods=['get'], url_path='single-score')
    def single_score(self, request, pk=None):
        assessment = self.get_object()
        aggregated = getattr(assessment, 'aggregated_impact', None)
        if aggregated is None:
            return Response(
                {'error': 'not_aggregated', 'message': f"Assessment {assessment.pk} has not been aggregated yet"},
                status=status.HTTP_404_NOT_FOUND
            )
        weighting_set_id = request.query_params.get('weighting_set') or assessment.weighting_set_id
        try:
            weighting_set = resolve_weighting_set(weighting_set_id)
        except ImpactEngineError as e:
            return engine_error_response(e)
        breakdown = score_breakdown(aggregated.totals, scoring_parameters(weighting_set))
        breakdown['weighting_set'] = weighting_set.pk
        breakdown['quality_grade'] = aggregated.quality_grade
        breakdown['needs_review'] = aggregated.needs_review
        return Response(breakdown)

    @action(detail=True, methods=['post'], url_path='mark-mix-complete')
    def mark_mix_complete(self, request, pk=None):
        try:
            assessment = mark_mix_complete(self.get_object())
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(self.get_serializer(assessment).data)

    @action(detail=True, methods=['post'])
    def finalise(self, request, pk=None):
        try:
            assessment = finalise_assessment(self.get_object())
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(self.get_serializer(assessment).data)


class MaterialLineItemViewSet(viewsets.ModelViewSet):
    serializer_class = MaterialLineItemSerializer
    permission_classes = [IsAuthenticated]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['assessment', 'category']
    search_fields = ['name']

    def get_queryset(self):
        queryset = MaterialLineItem.objects.select_related('assessment__product__organization', 'supplier_product')
        if self.request.query_params.get('include_superseded', '').lower() not in ('1', 'true'):
            queryset = queryset.active()
        return queryset

    def destroy(self, request, *args, **kwargs):
        try:
            return super().destroy(request, *args, **kwargs)
        except ImpactEngineError as e:
            return engine_error_response(e)

    @action(detail=True, methods=['post'])
    def resolve(self, request, pk=None):
        """ Re-resolve one line item; unresolved items come back with needs_review=true. """
        impact = resolve_line_item(self.get_object())
        return Response(ResolvedImpactSerializer(impact).data)

    @action(detail=True, methods=['post'])
    def supersede(self, request, pk=None):
        line_item = self.get_object()
        replacement_id = request.data.get('replacement')
        replacement = get_object_or_404(MaterialLineItem, pk=replacement_id) if replacement_id else None
        line_item.supersede(replacement)
        return Response(self.get_serializer(line_item).data)


class ResolveMaterialView(APIView):
    """
    Resolve a material without saving anything.

    POST {"material_name": "...", "category": "...", "quantity": 1, "unit": "kg",
          "organization": <id>, "region": "UK", "year": 2024}
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ResolveRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        data = serializer.validated_data
        organization = None
        if data.get('organization'):
            organization = get_object_or_404(Organization, pk=data['organization'])
        try:
            impact = resolve(
                data['material_name'],
                category=data.get('category') or None,
                quantity=data.get('quantity'),
                unit=data.get('unit'),
                organization=organization,
                region=data.get('region') or None,
                year=data.get('year'),
            )
        except ImpactEngineError as e:
            return engine_error_response(e)
        return Response(ResolvedImpactSerializer(impact).data)
