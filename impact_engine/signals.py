"""
Change observers that keep derived figures in step with their inputs.

All recomputation runs after the surrounding transaction commits.
"""

import logging

from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver

from .conf import get_setting
from .exceptions import ImpactEngineError, LockedRecordError
from .models import (
    FacilityEnergyInput, FacilityPeriodTotals, ImpactCategory, ProductAssessment,
    ProductionMixEntry, ResolvedImpact, WeightingFactor,
)
from .services.aggregation import refresh_assessment_impacts
from .services.allocation import (
    recalculate_allocations_for_totals, recalculate_totals_from_energy, validate_production_mix,
)
from .services.recalculation import enqueue_rescore_for_weighting_set

logger = logging.getLogger(__name__)


@receiver(post_save, sender=FacilityPeriodTotals)
def recalculate_allocations_on_totals_change(sender, instance, created, **kwargs):
    """ Re-run the allocation calculator for every record drawn from the changed totals. """
    if kwargs.get('raw', False) or created:
        return
    totals_pk = instance.pk

    def run_after_commit():
        totals = FacilityPeriodTotals.objects.filter(pk=totals_pk).first()
        if totals is None:
            return
        stats = recalculate_allocations_for_totals(totals)
        logger.info(f"[SIGNALS] Totals {totals_pk} changed: {stats['recalculated']} allocation(s) recalculated")

    transaction.on_commit(run_after_commit)


@receiver([post_save, post_delete], sender=FacilityEnergyInput)
def recalculate_totals_on_energy_input_change(sender, instance, **kwargs):
    if kwargs.get('raw', False):
        return
    totals_pk = instance.period_totals_id

    def run_after_commit():
        totals = FacilityPeriodTotals.objects.filter(pk=totals_pk).first()
        if totals is None or totals.entry_method != FacilityPeriodTotals.ENTRY_CALCULATED_FROM_ENERGY:
            return
        try:
            recalculate_totals_from_energy(totals)
        except LockedRecordError as e:
            logger.error(f"[SIGNALS] Energy inputs changed on locked totals {totals_pk}: {e}")

    transaction.on_commit(run_after_commit)


@receiver(post_save, sender=ResolvedImpact)
def refresh_aggregate_on_resolution(sender, instance, **kwargs):
    """ A new current resolution changes the owning assessment's totals. """
    if kwargs.get('raw', False) or not instance.is_current or instance.line_item_id is None:
        return
    if not get_setting('AUTO_AGGREGATE_ON_RESOLVE'):
        return
    line_item_pk = instance.line_item_id

    def run_after_commit():
        assessment = ProductAssessment.objects.filter(line_items__pk=line_item_pk).first()
        if assessment is None:
            return
        try:
            refresh_assessment_impacts(assessment)
        except ImpactEngineError as e:
            logger.error(f"[SIGNALS] Could not refresh impacts for assessment {assessment.pk}: {e}")

    transaction.on_commit(run_after_commit)


@receiver([post_save, post_delete], sender=ProductionMixEntry)
def revalidate_mix_on_entry_change(sender, instance, **kwargs):
    """ A changed mix withdraws "mix complete" from the product's assessments when it no longer sums to 1. """
    if kwargs.get('raw', False):
        return
    product_pk = instance.product_id

    def run_after_commit():
        assessments = ProductAssessment.objects.filter(product_id=product_pk, is_mix_complete=True)
        if not assessments.exists():
            return
        try:
            validate_production_mix(product_pk)
        except ImpactEngineError as e:
            updated = assessments.update(is_mix_complete=False)
            logger.warning(f"[SIGNALS] Production mix of product {product_pk} no longer complete ({e}); {updated} assessment(s) reopened")

    transaction.on_commit(run_after_commit)


def _queue_rescore_after_commit(weighting_set_ids, reason):
    if not get_setting('AUTO_RESCORE_ON_WEIGHTING_CHANGE'):
        return
    weighting_set_ids = sorted(set(weighting_set_ids))

    def run_after_commit():
        for weighting_set_id in weighting_set_ids:
            batch = enqueue_rescore_for_weighting_set(weighting_set_id, reason)
            if batch is not None:
                logger.info(f"[SIGNALS] {reason}: batch {batch.pk} queued {batch.total_jobs} assessment(s) for re-scoring")

    transaction.on_commit(run_after_commit)


@receiver([post_save, post_delete], sender=WeightingFactor)
def rescore_on_weighting_factor_change(sender, instance, **kwargs):
    """ Stored single scores computed with this set are stale once one of its weights changes. """
    if kwargs.get('raw', False):
        return
    _queue_rescore_after_commit(
        [instance.weighting_set_id],
        f"Weighting factor {instance.category_id} of set {instance.weighting_set_id} changed",
    )


@receiver(post_save, sender=ImpactCategory)
def rescore_on_normalisation_change(sender, instance, created, **kwargs):
    if kwargs.get('raw', False) or created:
        return
    weighting_set_ids = list(
        WeightingFactor.objects.filter(category=instance).values_list('weighting_set_id', flat=True)
    )
    if weighting_set_ids:
        _queue_rescore_after_commit(weighting_set_ids, f"Normalisation of impact category {instance.code} changed")
