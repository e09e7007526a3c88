from decimal import Decimal

from django.test import TestCase, override_settings

from impact_engine.models import (
    AggregatedImpact, FacilityEnergyInput, FacilityPeriodTotals, ImpactCategory, MaterialProxy, ProductAssessment,
    RecalculationBatch, RecalculationJob, WeightingFactor,
)
from impact_engine.services.aggregation import refresh_assessment_impacts
from impact_engine.services.allocation import add_production_mix_entry, allocate, mark_mix_complete
from impact_engine.services.recalculation import run_worker
from impact_engine.services.resolver import resolve_line_item

from .helpers import (
    add_line_item, attach_impact, create_assessment, create_facility, create_organization, create_product,
    create_totals, create_weighting_set,
)


class AllocationSignalsTest(TestCase):
    """Derived allocation figures follow their inputs once the transaction commits"""

    def setUp(self):
        org = create_organization()
        self.facility = create_facility(org)
        self.product = create_product(org)

    def test_totals_change_recalculates_allocations(self):
        totals = create_totals(self.facility)
        record = allocate(totals, Decimal('2500'), product=self.product)

        with self.captureOnCommitCallbacks(execute=True):
            totals.total_emissions = Decimal('4000')
            totals.save()

        record.refresh_from_db()
        self.assertEqual(record.allocated_emissions, Decimal('1000'))
        self.assertEqual(record.snapshots.count(), 2)

    def test_energy_input_change_rebuilds_totals_and_allocations(self):
        totals = create_totals(self.facility, emissions='0', entry_method=FacilityPeriodTotals.ENTRY_CALCULATED_FROM_ENERGY)
        record = allocate(totals, Decimal('2500'), product=self.product)

        with self.captureOnCommitCallbacks(execute=True):
            FacilityEnergyInput.objects.create(
                period_totals=totals, fuel_type='Natural gas', consumption_value=Decimal('2000'),
                consumption_unit='kWh', emission_factor=Decimal('0.2'), scope='1',
            )

        totals.refresh_from_db()
        record.refresh_from_db()
        self.assertEqual(totals.total_emissions, Decimal('400'))
        self.assertEqual(totals.scope1_emissions, Decimal('400'))
        self.assertEqual(record.allocated_emissions, Decimal('100'))
        self.assertFalse(record.uses_default_scope_split)


class ResolutionSignalsTest(TestCase):
    def test_new_resolution_refreshes_the_aggregate(self):
        """Test that resolving a line item updates the assessment totals"""
        create_weighting_set()
        assessment = create_assessment(create_product(create_organization()))
        line_item = add_line_item(assessment, "Cane Sugar", 2)
        MaterialProxy.objects.create(name="Cane Sugar", data_quality_score=Decimal('3'), impacts={'climate_change': 1.0})

        with self.captureOnCommitCallbacks(execute=True):
            resolve_line_item(line_item)

        aggregated = AggregatedImpact.objects.get(assessment=assessment)
        self.assertAlmostEqual(aggregated.totals['climate_change'], 2.0)
        self.assertIsNotNone(aggregated.single_score)

    def test_missing_weighting_set_is_logged_not_raised(self):
        assessment = create_assessment(create_product(create_organization()))
        line_item = add_line_item(assessment, "Cane Sugar", 2)

        with self.assertLogs('impact_engine.signals', level='ERROR'):
            with self.captureOnCommitCallbacks(execute=True):
                resolve_line_item(line_item)
        self.assertFalse(AggregatedImpact.objects.exists())


class ProductionMixSignalsTest(TestCase):
    def test_mix_change_reopens_complete_assessments(self):
        """Test that breaking a complete mix withdraws the mix-complete flag"""
        org = create_organization()
        product = create_product(org)
        plant_a = create_facility(org, "Plant A")
        plant_b = create_facility(org, "Plant B")
        add_production_mix_entry(product, plant_a, Decimal('0.6'))
        add_production_mix_entry(product, plant_b, Decimal('0.4'))
        assessment = mark_mix_complete(create_assessment(product))

        with self.captureOnCommitCallbacks(execute=True):
            add_production_mix_entry(product, plant_b, Decimal('0.3'))

        self.assertFalse(ProductAssessment.objects.get(pk=assessment.pk).is_mix_complete)


class WeightingSignalsTest(TestCase):
    """A methodology change queues re-scoring of every assessment scored with it"""

    def setUp(self):
        org = create_organization()
        self.weighting_set = create_weighting_set()
        self.assessment = create_assessment(create_product(org), status=ProductAssessment.STATUS_COMPLETED)
        attach_impact(add_line_item(self.assessment, "Organic Wheat Flour", 1), {'climate_change': 8090.0})
        refresh_assessment_impacts(self.assessment)

        # Neither of these was scored with the changed set
        draft = create_assessment(create_product(org, "Draft Loaf"))
        attach_impact(add_line_item(draft, "Organic Wheat Flour", 1), {'climate_change': 1.0})
        refresh_assessment_impacts(draft)
        self.climate_only = create_weighting_set(name="Climate only", is_default=False, weights={'CC': 1.0})
        other = create_assessment(create_product(org, "Rye Loaf"), status=ProductAssessment.STATUS_COMPLETED)
        attach_impact(add_line_item(other, "Organic Wheat Flour", 1), {'climate_change': 1.0})
        refresh_assessment_impacts(other, weighting_set_id=self.climate_only.pk)

    def test_weight_change_queues_and_updates_stale_scores(self):
        self.assertAlmostEqual(AggregatedImpact.objects.get(assessment=self.assessment).single_score, 0.2106)

        factor = WeightingFactor.objects.get(weighting_set=self.weighting_set, category__code='CC')
        with self.captureOnCommitCallbacks(execute=True):
            factor.weight = 10.0
            factor.save()

        batch = RecalculationBatch.objects.get()
        self.assertEqual(list(batch.jobs.values_list('assessment_id', flat=True)), [self.assessment.pk])
        self.assertIn('changed', batch.trigger_reason)

        run_worker(stop_when_idle=True)
        self.assertAlmostEqual(AggregatedImpact.objects.get(assessment=self.assessment).single_score, 10.0)

    def test_pending_assessments_are_not_queued_twice(self):
        factor = WeightingFactor.objects.get(weighting_set=self.weighting_set, category__code='CC')
        with self.captureOnCommitCallbacks(execute=True):
            factor.weight = 1.0
            factor.save()
        with self.captureOnCommitCallbacks(execute=True):
            factor.delete()

        self.assertEqual(RecalculationBatch.objects.count(), 1)
        self.assertEqual(RecalculationJob.objects.count(), 1)

    def test_normalisation_change_queues_rescoring(self):
        category = ImpactCategory.objects.get(code='CC')
        with self.captureOnCommitCallbacks(execute=True):
            category.normalisation_value = 4045.0
            category.save()

        queued = set(RecalculationJob.objects.values_list('assessment_id', flat=True))
        self.assertEqual(len(queued), 2)
        self.assertIn(self.assessment.pk, queued)

    @override_settings(IMPACT_ENGINE={'AUTO_RESCORE_ON_WEIGHTING_CHANGE': False})
    def test_rescoring_can_be_disabled(self):
        factor = WeightingFactor.objects.get(weighting_set=self.weighting_set, category__code='CC')
        with self.captureOnCommitCallbacks(execute=True):
            factor.weight = 1.0
            factor.save()
        self.assertFalse(RecalculationBatch.objects.exists())
