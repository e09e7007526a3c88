"""
Impact engine API views.
"""

from .assessments import (
    OrganizationViewSet, ProductViewSet, ProductAssessmentViewSet,
    MaterialLineItemViewSet, ResolveMaterialView,
)
from .allocation import (
    FacilityViewSet, FacilityPeriodTotalsViewSet, FacilityEnergyInputViewSet,
    AllocationRecordViewSet, ProductionMixEntryViewSet,
)
from .reference import (
    OrganizationMaterialOverrideViewSet, MaterialProxyViewSet, GHGEmissionFactorViewSet,
    MaterialCategoryRuleViewSet, ImpactCategoryViewSet, WeightingSetViewSet, WeightingFactorViewSet,
)
from .recalculation import RecalculationBatchViewSet, RecalculationJobViewSet
