"""
Impact aggregation and single-score calculation.

`aggregate` sums quantity-weighted impacts over a product's line items and grades the
result; `calculate_single_score` normalises the totals against per-capita references and
combines them with a weighting set. Both are deterministic for the same inputs.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import transaction
from django.db.models import Prefetch

from ..conf import get_setting
from ..constants import (
    PROVENANCE_ORGANISATION_OVERRIDE, PROVENANCE_VERIFIED_SUPPLIER,
    QUALITY_HIGH, QUALITY_MEDIUM, QUALITY_LOW,
)
from ..exceptions import NoDefaultWeightingSet, NotFound
from ..models.assessments import MaterialLineItem, ProductAssessment, ResolvedImpact
from ..models.scoring import AggregatedImpact, WeightingFactor, WeightingSet
from .units import normalize_quantity

logger = logging.getLogger(__name__)


def _is_high_quality(impact: ResolvedImpact) -> bool:
    if impact.provenance == PROVENANCE_VERIFIED_SUPPLIER:
        return True
    return impact.provenance == PROVENANCE_ORGANISATION_OVERRIDE and impact.match_type == 'exact' and not impact.is_hybrid


def aggregate(line_items: Iterable[MaterialLineItem]) -> dict:
    """
    Sum `quantity * impact value` per category across line items.

    Unresolved items contribute nothing to the totals; they are listed for review and
    cap the quality grade at "low".
    """
    totals: Dict[str, float] = {}
    resolved_count = 0
    unresolved_ids: List[int] = []
    all_high = True
    non_uniform = False

    for line_item in sorted(line_items, key=lambda item: item.pk or 0):
        impact = line_item.current_impact
        if impact is None or impact.status != ResolvedImpact.STATUS_RESOLVED:
            unresolved_ids.append(line_item.pk)
            continue

        quantity, _ = normalize_quantity(line_item.quantity, line_item.unit)
        quantity = float(quantity)
        for key in sorted(impact.impacts):
            totals[key] = totals.get(key, 0.0) + quantity * float(impact.impacts[key])

        resolved_count += 1
        if impact.is_hybrid:
            non_uniform = True
        if not _is_high_quality(impact):
            all_high = False

    if unresolved_ids:
        grade = QUALITY_LOW
    elif resolved_count and all_high:
        grade = QUALITY_HIGH
    elif resolved_count:
        grade = QUALITY_MEDIUM
    else:
        grade = QUALITY_LOW

    return {
        'totals': {key: totals[key] for key in sorted(totals)},
        'quality_grade': grade,
        'is_non_uniform_quality': non_uniform,
        'resolved_item_count': resolved_count,
        'unresolved_item_count': len(unresolved_ids),
        'unresolved_line_items': unresolved_ids,
        'needs_review': bool(unresolved_ids),
    }


def resolve_weighting_set(weighting_set_id=None) -> WeightingSet:
    """
    Pick the weighting set: the explicit one, or the default when none is given.

    Raises:
        NotFound when an explicit id does not exist.
        NoDefaultWeightingSet when no id is given and no default set exists.
    """
    if weighting_set_id is not None:
        try:
            weighting_set = WeightingSet.objects.filter(pk=int(weighting_set_id)).first()
        except (TypeError, ValueError):
            weighting_set = None
        if weighting_set is None:
            raise NotFound(f"Weighting set {weighting_set_id} does not exist")
        return weighting_set
    weighting_set = WeightingSet.objects.filter(is_default=True).first()
    if weighting_set is None:
        raise NoDefaultWeightingSet()
    return weighting_set


def scoring_parameters(weighting_set: WeightingSet) -> List[Tuple[str, str, Optional[float], float]]:
    """ (impact_key, code, normalisation value, weight) for every weighted category, in display order. """
    factors = (
        WeightingFactor.objects.filter(weighting_set=weighting_set)
        .select_related('category')
        .order_by('category__display_order', 'category__code')
    )
    return [
        (factor.category.impact_key, factor.category.code, factor.category.normalisation_value, factor.weight)
        for factor in factors
    ]


def score_breakdown(impacts: Dict[str, float], parameters) -> dict:
    """
    normalised = total / reference, weighted = normalised * weight, score = sum(weighted).

    Categories without a normalisation reference, or without an impact value, are skipped.
    """
    normalised = {}
    weighted = {}
    skipped = []
    score = 0.0
    for impact_key, code, reference, weight in parameters:
        value = impacts.get(impact_key)
        if value is None or reference is None or reference <= 0:
            skipped.append(code)
            continue
        normalised[code] = float(value) / float(reference)
        weighted[code] = normalised[code] * float(weight)
        score += weighted[code]
    return {
        'normalised': normalised,
        'weighted': weighted,
        'skipped_categories': skipped,
        'single_score': score,
    }


def calculate_single_score(impacts: Dict[str, float], weighting_set_id=None) -> float:
    weighting_set = resolve_weighting_set(weighting_set_id)
    return score_breakdown(impacts, scoring_parameters(weighting_set))['single_score']


def assessment_line_items(assessment: ProductAssessment):
    return (
        assessment.line_items.active()
        .prefetch_related(Prefetch(
            'resolved_impacts',
            queryset=ResolvedImpact.objects.filter(is_current=True),
            to_attr='current_impacts',
        ))
    )


@transaction.atomic
def refresh_assessment_impacts(assessment: ProductAssessment, weighting_set_id=None) -> AggregatedImpact:
    """
    Aggregate an assessment and, when scoring is enabled, compute its single score.

    Persists the AggregatedImpact and returns it.
    """
    result = aggregate(assessment_line_items(assessment))
    defaults = {
        'totals': result['totals'],
        'quality_grade': result['quality_grade'],
        'is_non_uniform_quality': result['is_non_uniform_quality'],
        'resolved_item_count': result['resolved_item_count'],
        'unresolved_item_count': result['unresolved_item_count'],
        'unresolved_line_items': result['unresolved_line_items'],
        'needs_review': result['needs_review'],
        'normalised': {},
        'weighted': {},
        'single_score': None,
        'weighting_set': None,
    }

    if get_setting('SINGLE_SCORE_ENABLED'):
        weighting_set = resolve_weighting_set(weighting_set_id if weighting_set_id is not None else assessment.weighting_set_id)
        breakdown = score_breakdown(result['totals'], scoring_parameters(weighting_set))
        defaults.update({
            'normalised': breakdown['normalised'],
            'weighted': breakdown['weighted'],
            'single_score': breakdown['single_score'],
            'weighting_set': weighting_set,
        })

    aggregated, _ = AggregatedImpact.objects.update_or_create(assessment=assessment, defaults=defaults)
    if result['needs_review']:
        logger.warning(
            f"[AGGREGATION] Assessment {assessment.pk} has {result['unresolved_item_count']} unresolved line item(s) needing review"
        )
    logger.info(
        f"[AGGREGATION] Assessment {assessment.pk}: grade={aggregated.quality_grade} score={aggregated.single_score}"
    )
    return aggregated
