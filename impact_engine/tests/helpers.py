import datetime
from decimal import Decimal

from impact_engine.constants import PROVENANCE_ORGANISATION_OVERRIDE, QUALITY_HIGH
from impact_engine.models import (
    Facility, FacilityPeriodTotals, ImpactCategory, MaterialLineItem, Organization,
    Product, ProductAssessment, ResolvedImpact, WeightingFactor, WeightingSet,
)


def create_organization(name="Acme Bakery"):
    return Organization.objects.create(name=name)


def create_product(organization, name="Sourdough Loaf"):
    return Product.objects.create(organization=organization, name=name)


def create_facility(organization, name="Shared Bakery Plant"):
    return Facility.objects.create(organization=organization, name=name, is_contract_manufacturer=True)


def create_assessment(product, status=ProductAssessment.STATUS_DRAFT, **kwargs):
    return ProductAssessment.objects.create(product=product, status=status, **kwargs)


def create_totals(facility, volume='10000', emissions='3000', start=datetime.date(2024, 1, 1), end=datetime.date(2025, 1, 1), **kwargs):
    return FacilityPeriodTotals.objects.create(
        facility=facility,
        reporting_period_start=start,
        reporting_period_end=end,
        total_production_volume=Decimal(volume),
        total_emissions=Decimal(emissions),
        volume_unit='l',
        **kwargs
    )


def add_line_item(assessment, name, quantity, unit='kg', category='manufacturing_material', **kwargs):
    return MaterialLineItem.objects.create(
        assessment=assessment, name=name, quantity=Decimal(str(quantity)), unit=unit, category=category, **kwargs
    )


def attach_impact(line_item, impacts, provenance=PROVENANCE_ORGANISATION_OVERRIDE, match_type='exact', **kwargs):
    """ Store a current resolved impact directly, bypassing the resolver. """
    defaults = {
        'status': ResolvedImpact.STATUS_RESOLVED,
        'confidence': 70,
        'quality_rating': QUALITY_HIGH,
        'source_reference': 'test data',
    }
    defaults.update(kwargs)
    return ResolvedImpact.objects.create(
        line_item=line_item, is_current=True, provenance=provenance,
        match_type=match_type, impacts=impacts, **defaults
    )


def create_weighting_set(name="EF 3.1 Default", is_default=True, weights=None, normalisation=None):
    """
    Weighting set over climate change and water use by default.

    `weights` maps code -> weight, `normalisation` maps code -> reference value.
    """
    normalisation = normalisation or {'CC': 8090.0, 'WU': 11500.0}
    weights = weights or {'CC': 0.2106, 'WU': 0.0851}
    keys = {'CC': 'climate_change', 'WU': 'water_scarcity', 'LU': 'land_use', 'AC': 'acidification'}
    weighting_set = WeightingSet.objects.create(name=name, is_default=is_default)
    for order, (code, weight) in enumerate(sorted(weights.items())):
        category, _ = ImpactCategory.objects.get_or_create(
            code=code,
            defaults={
                'name': code,
                'impact_key': keys[code],
                'normalisation_value': normalisation.get(code),
                'display_order': order,
            }
        )
        WeightingFactor.objects.create(weighting_set=weighting_set, category=category, weight=weight)
    return weighting_set
