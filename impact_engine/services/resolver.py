"""
Data source resolution for material and energy line items.

Tiers are tried in strict order and the first hit wins:

0. Verified supplier data (line items linked to a supplier product with a completed assessment)
1. Organisation override, exact name match
2. Organisation override, substring match
3. Global industry-average proxy, substring match, best declared data quality first
4. Hybrid: government reference factor for the climate figures plus a proxy for the rest
   (energy, transport and commuting only)

`resolve` is a pure lookup; it returns an unsaved ResolvedImpact or raises MaterialNotResolved.
`resolve_line_item` persists the result and keeps exactly one current record per line item.
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from django.db import transaction
from django.db.models import Q
from django.db.models.functions import Length

from ..conf import get_setting
from ..constants import (
    CLIMATE_CHANGE, CLIMATE_FOSSIL, CLIMATE_BIOGENIC, CLIMATE_DLUC, CLIMATE_KEYS,
    GLOBAL_GEOGRAPHY, HYBRID_CATEGORIES,
    PROVENANCE_VERIFIED_SUPPLIER, PROVENANCE_ORGANISATION_OVERRIDE,
    PROVENANCE_INDUSTRY_PROXY, PROVENANCE_HYBRID, PROVENANCE_NONE,
    QUALITY_HIGH, QUALITY_MEDIUM, QUALITY_LOW,
    normalize_material_name,
)
from ..exceptions import MaterialNotResolved
from ..models.assessments import MaterialLineItem, ProductAssessment, ResolvedImpact
from ..models.reference import GHGEmissionFactor, MaterialProxy, OrganizationMaterialOverride
from .categories import classify_material
from .units import convert_unit, normalize_quantity, units_compatible

logger = logging.getLogger(__name__)


# --- Reference factor lookup ---

def _universal_region_q():
    return Q(region='ALL') | Q(region='') | Q(region__isnull=True)


def find_matching_emission_factor(
    category: str,
    sub_category: str,
    region: str = None,
    year: int = None
) -> Optional[GHGEmissionFactor]:
    """
    Find the most appropriate reference factor for a category/sub-category with fallback logic.

    Order: exact region and year, universal region and year, then the newest earlier year
    (exact region before universal). Without a year the newest factor is used.
    """
    query = Q(category=category, sub_category=sub_category)
    factors = GHGEmissionFactor.objects.filter(query).order_by('-year', 'pk')

    if year is not None:
        same_year = factors.filter(year=year)
        if region:
            factor = same_year.filter(region=region).first()
            if factor:
                logger.debug(f"Found exact region match for {category}/{sub_category} in {region}")
                return factor
        factor = same_year.filter(_universal_region_q()).first()
        if factor:
            logger.debug(f"Found universal region match for {category}/{sub_category}")
            return factor
        factors = factors.filter(year__lt=year)

    if region:
        factor = factors.filter(region=region).first()
        if factor:
            logger.debug(f"Found {factor.year} match for {category}/{sub_category} in {region}")
            return factor

    factor = factors.filter(_universal_region_q()).first()
    if factor:
        logger.debug(f"Found universal {factor.year} match for {category}/{sub_category}")
        return factor

    logger.debug(f"No reference factor for {category}/{sub_category}, region={region}, year={year}")
    return None


def find_reference_factor(category: str, material_name: str, region: str = None, year: int = None) -> Optional[GHGEmissionFactor]:
    """ Reference factor whose sub-category occurs in the material name; longest sub-category wins. """
    name = normalize_material_name(material_name)
    sub_categories = {
        sub_category
        for sub_category in GHGEmissionFactor.objects.filter(category=category).values_list('sub_category', flat=True).distinct()
        if normalize_material_name(sub_category) and normalize_material_name(sub_category) in name
    }
    for sub_category in sorted(sub_categories, key=lambda s: (-len(s), s)):
        factor = find_matching_emission_factor(category, sub_category, region=region, year=year)
        if factor:
            return factor
    return None


# --- Impact vector helpers ---

def _numeric_impacts(impacts) -> Dict[str, float]:
    result = {}
    for key, value in (impacts or {}).items():
        if value is None:
            continue
        try:
            result[key] = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric impact value {key}={value!r}")
    return result


def _rescale_impacts(impacts, source_unit: str, base_unit: str) -> Optional[Dict[str, float]]:
    """ Re-express per-source-unit impacts per base unit; None when the units are incompatible. """
    numeric = _numeric_impacts(impacts)
    if not units_compatible(base_unit, source_unit):
        logger.warning(f"Impact data per {source_unit} cannot be applied to a quantity in {base_unit}")
        return None
    factor, _ = convert_unit(Decimal('1'), base_unit, source_unit)
    factor = float(factor)
    return {key: value * factor for key, value in numeric.items()}


def apply_climate_split(impacts: Dict[str, float]) -> Dict[str, float]:
    """ Fill the fossil/biogenic/land-use-change breakdown when a source only gives the total. """
    impacts = dict(impacts)
    fossil_share = float(get_setting('CLIMATE_FOSSIL_SHARE'))
    if CLIMATE_CHANGE in impacts:
        total = impacts[CLIMATE_CHANGE]
        impacts.setdefault(CLIMATE_FOSSIL, total * fossil_share)
        impacts.setdefault(CLIMATE_BIOGENIC, total * (1 - fossil_share))
        impacts.setdefault(CLIMATE_DLUC, 0.0)
    elif CLIMATE_FOSSIL in impacts or CLIMATE_BIOGENIC in impacts:
        impacts[CLIMATE_CHANGE] = sum(impacts.get(key, 0.0) for key in (CLIMATE_FOSSIL, CLIMATE_BIOGENIC, CLIMATE_DLUC))
    return impacts


def _emission_unit_multiplier(factor: GHGEmissionFactor) -> float:
    emission_unit = factor.get_emission_unit().strip().lower()
    if emission_unit.startswith('tco2'):
        return 1000.0
    if emission_unit.startswith('gco2'):
        return 0.001
    return 1.0


# --- Tiers ---

def _resolve_verified_supplier(supplier_product) -> Optional[ResolvedImpact]:
    supplier_assessment = (
        ProductAssessment.objects
        .filter(product=supplier_product, status=ProductAssessment.STATUS_COMPLETED,
                aggregated_impact__isnull=False, aggregated_impact__needs_review=False)
        .select_related('aggregated_impact')
        .order_by('-created_at', '-pk')
        .first()
    )
    if supplier_assessment is None:
        logger.debug(f"[RESOLVER] Supplier product {supplier_product.pk} has no verified assessment")
        return None
    return ResolvedImpact(
        provenance=PROVENANCE_VERIFIED_SUPPLIER,
        match_type='supplier',
        confidence=get_setting('VERIFIED_SUPPLIER_CONFIDENCE'),
        quality_rating=QUALITY_HIGH,
        impacts=apply_climate_split(_numeric_impacts(supplier_assessment.aggregated_impact.totals)),
        source_reference=f"Supplier assessment {supplier_assessment.pk} for {supplier_product.name}",
        geography=supplier_product.organization.facilities.values_list('country_code', flat=True).first() or GLOBAL_GEOGRAPHY,
        climate_source=PROVENANCE_VERIFIED_SUPPLIER,
        non_climate_source=PROVENANCE_VERIFIED_SUPPLIER,
    )


def _override_to_impact(override, match_type, base_unit) -> Optional[ResolvedImpact]:
    impacts = _rescale_impacts(override.impacts, override.unit, base_unit)
    if impacts is None:
        return None
    return ResolvedImpact(
        provenance=PROVENANCE_ORGANISATION_OVERRIDE,
        match_type=match_type,
        confidence=get_setting('ORGANISATION_OVERRIDE_CONFIDENCE'),
        quality_rating=QUALITY_HIGH if match_type == 'exact' else QUALITY_MEDIUM,
        impacts=apply_climate_split(impacts),
        source_reference=override.source_reference or f"Organisation override: {override.name}",
        geography=override.geography or GLOBAL_GEOGRAPHY,
        climate_source=PROVENANCE_ORGANISATION_OVERRIDE,
        non_climate_source=PROVENANCE_ORGANISATION_OVERRIDE,
    )


def _resolve_organisation_override(organization, normalized_name, base_unit) -> Optional[ResolvedImpact]:
    overrides = OrganizationMaterialOverride.objects.filter(organization=organization)

    exact = overrides.filter(normalized_name=normalized_name).first()
    if exact:
        impact = _override_to_impact(exact, 'exact', base_unit)
        if impact:
            logger.debug(f"[RESOLVER] Organisation exact match '{exact.name}'")
            return impact

    for candidate in overrides.filter(normalized_name__contains=normalized_name).order_by(Length('normalized_name'), 'pk'):
        impact = _override_to_impact(candidate, 'substring', base_unit)
        if impact:
            logger.debug(f"[RESOLVER] Organisation substring match '{candidate.name}'")
            return impact
    return None


def proxy_confidence(data_quality_score) -> int:
    return min(100, int(round(float(data_quality_score) * 20)))


def _resolve_industry_proxy(normalized_name, base_unit) -> Optional[ResolvedImpact]:
    candidates = (
        MaterialProxy.objects
        .filter(is_active=True, normalized_name__contains=normalized_name)
        .order_by('-data_quality_score', Length('normalized_name'), 'pk')
    )
    for proxy in candidates:
        impacts = _rescale_impacts(proxy.impacts, proxy.unit, base_unit)
        if impacts is None:
            continue
        logger.debug(f"[RESOLVER] Industry proxy match '{proxy.name}' (DQ {proxy.data_quality_score})")
        return ResolvedImpact(
            provenance=PROVENANCE_INDUSTRY_PROXY,
            match_type='substring',
            confidence=proxy_confidence(proxy.data_quality_score),
            quality_rating=QUALITY_MEDIUM,
            impacts=apply_climate_split(impacts),
            source_reference=f"{proxy.source}: {proxy.name}" if proxy.source else proxy.name,
            geography=proxy.geography or GLOBAL_GEOGRAPHY,
            climate_source=PROVENANCE_INDUSTRY_PROXY,
            non_climate_source=PROVENANCE_INDUSTRY_PROXY,
        )
    return None


def _best_category_proxy(proxy_category, base_unit):
    if not proxy_category:
        return None, None
    for proxy in MaterialProxy.objects.filter(is_active=True, category=proxy_category).order_by('-data_quality_score', 'pk'):
        impacts = _rescale_impacts(proxy.impacts, proxy.unit, base_unit)
        if impacts is not None:
            return proxy, impacts
    return None, None


def _resolve_hybrid(material_name, category, base_unit, region, year) -> Optional[ResolvedImpact]:
    factor = find_reference_factor(category, material_name, region=region, year=year)
    if factor is None:
        return None
    if not units_compatible(base_unit, factor.activity_unit):
        logger.warning(f"[RESOLVER] Reference factor {factor.pk} is per {factor.activity_unit}, line item is in {base_unit}")
        return None

    per_base, _ = convert_unit(Decimal('1'), base_unit, factor.activity_unit)
    climate_value = float(factor.value) * float(per_base) * _emission_unit_multiplier(factor)

    proxy, proxy_impacts = _best_category_proxy(factor.proxy_category, base_unit)
    impacts = {key: value for key, value in (proxy_impacts or {}).items() if key not in CLIMATE_KEYS}
    impacts[CLIMATE_CHANGE] = climate_value

    climate_reference = f"{factor.source or 'Reference factor'} {factor.year}: {factor.name}"
    non_climate_reference = f"{proxy.source}: {proxy.name}" if proxy else ''
    if proxy is None:
        logger.info(f"[RESOLVER] Hybrid for '{material_name}' has no non-climate proxy (proxy_category={factor.proxy_category!r})")

    return ResolvedImpact(
        provenance=PROVENANCE_HYBRID,
        match_type='category',
        confidence=get_setting('HYBRID_CONFIDENCE'),
        quality_rating=QUALITY_MEDIUM,
        impacts=apply_climate_split(impacts),
        source_reference=' + '.join(ref for ref in (climate_reference, non_climate_reference) if ref),
        geography=factor.region if factor.region and factor.region != 'ALL' else GLOBAL_GEOGRAPHY,
        is_hybrid=True,
        climate_source=factor.source or 'reference_factor',
        climate_reference=climate_reference,
        non_climate_source=(proxy.source or PROVENANCE_INDUSTRY_PROXY) if proxy else '',
        non_climate_reference=non_climate_reference,
    )


# --- Public API ---

def resolve(
    material_name: str,
    category: str = None,
    quantity=Decimal('1'),
    unit: str = 'kg',
    organization=None,
    region: str = None,
    year: int = None,
    supplier_product=None
) -> ResolvedImpact:
    """
    Resolve one material to its best available impact record.

    Returns:
        An unsaved ResolvedImpact with impacts per base unit of `unit`

    Raises:
        MaterialNotResolved when no tier matches; callers must not substitute zero.
    """
    normalized_name = normalize_material_name(material_name)
    if not normalized_name:
        raise MaterialNotResolved(material_name, category)
    category = category or classify_material(material_name)
    base_quantity, base_unit = normalize_quantity(quantity, unit)

    logger.debug(f"[RESOLVER] Resolving '{material_name}' | category={category} | {base_quantity} {base_unit}")

    impact = None
    if supplier_product is not None:
        impact = _resolve_verified_supplier(supplier_product)
    if impact is None and organization is not None:
        impact = _resolve_organisation_override(organization, normalized_name, base_unit)
    if impact is None:
        impact = _resolve_industry_proxy(normalized_name, base_unit)
    if impact is None and category in HYBRID_CATEGORIES:
        impact = _resolve_hybrid(material_name, category, base_unit, region, year)

    if impact is None:
        logger.warning(f"[RESOLVER] No data source for '{material_name}' (category={category})")
        raise MaterialNotResolved(material_name, category)

    impact.status = ResolvedImpact.STATUS_RESOLVED
    impact.quantity = base_quantity
    impact.base_unit = base_unit
    return impact


def unresolved_impact(line_item, error) -> ResolvedImpact:
    """ Placeholder recorded for a line item nothing could resolve: no values, confidence 0. """
    base_quantity, base_unit = normalize_quantity(line_item.quantity, line_item.unit)
    return ResolvedImpact(
        status=ResolvedImpact.STATUS_UNRESOLVED,
        provenance=PROVENANCE_NONE,
        confidence=0,
        quality_rating=QUALITY_LOW,
        impacts={},
        source_reference=str(error),
        quantity=base_quantity,
        base_unit=base_unit,
    )


def resolve_line_item(line_item: MaterialLineItem, cache: Optional[dict] = None) -> ResolvedImpact:
    """
    Resolve a line item and make the result its only current ResolvedImpact.

    Unresolvable items get an "unresolved" record so they surface for review.
    `cache` is an optional dict shared across calls within one run.
    """
    assessment = line_item.assessment
    product = assessment.product
    key = (normalize_material_name(line_item.name), line_item.category, line_item.unit, line_item.supplier_product_id)

    if cache is not None and key in cache:
        template = cache[key]
    else:
        try:
            template = resolve(
                line_item.name,
                category=line_item.category or None,
                quantity=line_item.quantity,
                unit=line_item.unit,
                organization=product.organization,
                region=assessment.region or None,
                year=assessment.reference_year,
                supplier_product=line_item.supplier_product,
            )
        except MaterialNotResolved as e:
            template = e
        if cache is not None:
            cache[key] = template

    if isinstance(template, MaterialNotResolved):
        impact = unresolved_impact(line_item, template)
    else:
        impact = ResolvedImpact(**{
            field.attname: getattr(template, field.attname)
            for field in ResolvedImpact._meta.concrete_fields
            if not field.primary_key
        })
        impact.impacts = dict(template.impacts)
        impact.quantity, impact.base_unit = normalize_quantity(line_item.quantity, line_item.unit)

    with transaction.atomic():
        MaterialLineItem.objects.select_for_update().filter(pk=line_item.pk).first()
        ResolvedImpact.objects.filter(line_item=line_item, is_current=True).update(is_current=False)
        impact.line_item = line_item
        impact.is_current = True
        impact.save()

    logger.info(
        f"[RESOLVER] Line item {line_item.pk} '{line_item.name}' -> {impact.provenance} "
        f"(confidence {impact.confidence}, status {impact.status})"
    )
    return impact


def resolve_assessment(assessment: ProductAssessment) -> dict:
    """ Resolve every active line item of an assessment. Returns counts by outcome. """
    stats = {'resolved': 0, 'unresolved': 0, 'by_provenance': {}}
    cache = {}
    for line_item in assessment.line_items.active().select_related('assessment__product__organization', 'supplier_product'):
        impact = resolve_line_item(line_item, cache=cache)
        if impact.needs_review:
            stats['unresolved'] += 1
        else:
            stats['resolved'] += 1
        stats['by_provenance'][impact.provenance] = stats['by_provenance'].get(impact.provenance, 0) + 1
    return stats
