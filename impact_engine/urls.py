from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    AllocationRecordViewSet, FacilityEnergyInputViewSet, FacilityPeriodTotalsViewSet,
    FacilityViewSet, GHGEmissionFactorViewSet, ImpactCategoryViewSet,
    MaterialCategoryRuleViewSet, MaterialLineItemViewSet, MaterialProxyViewSet,
    OrganizationMaterialOverrideViewSet, OrganizationViewSet, ProductAssessmentViewSet,
    ProductionMixEntryViewSet, ProductViewSet, RecalculationBatchViewSet,
    RecalculationJobViewSet, ResolveMaterialView, WeightingFactorViewSet, WeightingSetViewSet,
)

router = DefaultRouter()

# Products and assessments
router.register(r'organizations', OrganizationViewSet, basename='organization')
router.register(r'products', ProductViewSet, basename='product')
router.register(r'assessments', ProductAssessmentViewSet, basename='assessment')
router.register(r'line-items', MaterialLineItemViewSet, basename='line-item')

# Facilities and allocation
router.register(r'facilities', FacilityViewSet, basename='facility')
router.register(r'facility-totals', FacilityPeriodTotalsViewSet, basename='facility-totals')
router.register(r'energy-inputs', FacilityEnergyInputViewSet, basename='energy-input')
router.register(r'allocations', AllocationRecordViewSet, basename='allocation')
router.register(r'production-mix', ProductionMixEntryViewSet, basename='production-mix')

# Reference data and methodology
router.register(r'material-overrides', OrganizationMaterialOverrideViewSet, basename='material-override')
router.register(r'material-proxies', MaterialProxyViewSet, basename='material-proxy')
router.register(r'emission-factors', GHGEmissionFactorViewSet, basename='emission-factor')
router.register(r'category-rules', MaterialCategoryRuleViewSet, basename='category-rule')
router.register(r'impact-categories', ImpactCategoryViewSet, basename='impact-category')
router.register(r'weighting-sets', WeightingSetViewSet, basename='weighting-set')
router.register(r'weighting-factors', WeightingFactorViewSet, basename='weighting-factor')

# Recalculation queue
router.register(r'recalculation-batches', RecalculationBatchViewSet, basename='recalculation-batch')
router.register(r'recalculation-jobs', RecalculationJobViewSet, basename='recalculation-job')

urlpatterns = router.urls

urlpatterns += [
    path('resolve/', ResolveMaterialView.as_view(), name='resolve-material'),
]
