from .reference import (
    OrganizationMaterialOverrideSerializer, MaterialProxySerializer, GHGEmissionFactorSerializer,
    MaterialCategoryRuleSerializer, ImpactCategorySerializer, WeightingSetSerializer,
    WeightingFactorSerializer, ResolveRequestSerializer,
)
from .assessments import (
    OrganizationSerializer, ProductSerializer, ProductAssessmentSerializer,
    MaterialLineItemSerializer, ResolvedImpactSerializer, AggregatedImpactSerializer,
)
from .allocation import (
    FacilitySerializer, FacilityPeriodTotalsSerializer, FacilityEnergyInputSerializer,
    AllocationRecordSerializer, AllocationCreateSerializer, AllocationTransitionSerializer,
    CalculationSnapshotSerializer, ProductionMixEntrySerializer,
)
from .recalculation import (
    RecalculationBatchSerializer, RecalculationJobSerializer,
    EnqueueRecalculationSerializer, CompleteJobSerializer, SweepJobsSerializer,
)
