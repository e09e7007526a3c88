from .organizations import Organization, Product, Facility
from .assessments import ProductAssessment, MaterialLineItem, ResolvedImpact
from .reference import (
    OrganizationMaterialOverride,
    MaterialProxy,
    GHGEmissionFactor,
    MaterialCategoryRule,
)
from .allocation import (
    FacilityPeriodTotals,
    FacilityEnergyInput,
    AllocationRecord,
    CalculationSnapshot,
    ProductionMixEntry,
)
from .scoring import ImpactCategory, WeightingSet, WeightingFactor, AggregatedImpact
from .recalculation import RecalculationBatch, RecalculationJob

__all__ = [
    'Organization', 'Product', 'Facility',
    'ProductAssessment', 'MaterialLineItem', 'ResolvedImpact',
    'OrganizationMaterialOverride', 'MaterialProxy', 'GHGEmissionFactor', 'MaterialCategoryRule',
    'FacilityPeriodTotals', 'FacilityEnergyInput', 'AllocationRecord', 'CalculationSnapshot', 'ProductionMixEntry',
    'ImpactCategory', 'WeightingSet', 'WeightingFactor', 'AggregatedImpact',
    'RecalculationBatch', 'RecalculationJob',
]
