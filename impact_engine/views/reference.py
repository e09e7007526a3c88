from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import (
    GHGEmissionFactor, ImpactCategory, MaterialCategoryRule, MaterialProxy,
    OrganizationMaterialOverride, WeightingFactor, WeightingSet,
)
from ..permissions import IsPlatformAdminOrReadOnly
from ..serializers import (
    GHGEmissionFactorSerializer, ImpactCategorySerializer, MaterialCategoryRuleSerializer,
    MaterialProxySerializer, OrganizationMaterialOverrideSerializer,
    WeightingFactorSerializer, WeightingSetSerializer,
)
from ..services.categories import classify_material, load_category_rules


class OrganizationMaterialOverrideViewSet(viewsets.ModelViewSet):
    queryset = OrganizationMaterialOverride.objects.select_related('organization')
    serializer_class = OrganizationMaterialOverrideSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter]
    filterset_fields = ['organization']
    search_fields = ['name']


class MaterialProxyViewSet(viewsets.ModelViewSet):
    queryset = MaterialProxy.objects.all()
    serializer_class = MaterialProxySerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['category', 'geography', 'is_active']
    search_fields = ['name', 'source']
    ordering_fields = ['data_quality_score', 'name']


class GHGEmissionFactorViewSet(viewsets.ModelViewSet):
    """ Government reference factors used for the climate half of hybrid resolutions. """
    queryset = GHGEmissionFactor.objects.all().order_by('-year', 'category', 'sub_category')
    serializer_class = GHGEmissionFactorSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = {
        'category': ['exact'],
        'sub_category': ['exact', 'icontains'],
        'year': ['exact', 'gte', 'lte'],
        'region': ['exact', 'icontains'],
        'scope': ['exact'],
    }
    search_fields = ['name', 'sub_category', 'source']
    ordering_fields = ['year', 'category', 'sub_category', 'value']


class MaterialCategoryRuleViewSet(viewsets.ModelViewSet):
    queryset = MaterialCategoryRule.objects.all()
    serializer_class = MaterialCategoryRuleSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['version', 'category', 'is_active']

    @action(detail=False, methods=['get'])
    def classify(self, request):
        """ ?name=<material name>[&version=<rules version>] -> category """
        name = request.query_params.get('name')
        if not name:
            return Response({'error': 'missing_name', 'message': "Query parameter 'name' is required"}, status=status.HTTP_400_BAD_REQUEST)
        rules = load_category_rules(request.query_params.get('version'))
        return Response({'name': name, 'category': classify_material(name, rules)})


class ImpactCategoryViewSet(viewsets.ModelViewSet):
    queryset = ImpactCategory.objects.all()
    serializer_class = ImpactCategorySerializer
    permission_classes = [IsPlatformAdminOrReadOnly]


class WeightingSetViewSet(viewsets.ModelViewSet):
    """ Weighting sets. Changing one does not rescore existing assessments; enqueue a recalculation batch. """
    queryset = WeightingSet.objects.prefetch_related('factors__category')
    serializer_class = WeightingSetSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]


class WeightingFactorViewSet(viewsets.ModelViewSet):
    queryset = WeightingFactor.objects.select_related('weighting_set', 'category')
    serializer_class = WeightingFactorSerializer
    permission_classes = [IsPlatformAdminOrReadOnly]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['weighting_set']
