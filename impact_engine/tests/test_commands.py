from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone

from impact_engine.constants import ENERGY, PROVENANCE_HYBRID
from impact_engine.fixtures.reference_data import DEFAULT_WEIGHTING_SET_NAME, EF31_CATEGORIES, SAMPLE_PROXIES
from impact_engine.models import (
    AggregatedImpact, GHGEmissionFactor, ImpactCategory, MaterialCategoryRule, MaterialProxy,
    ProductAssessment, RecalculationBatch, RecalculationJob, ResolvedImpact, WeightingSet,
)
from impact_engine.services.categories import DEFAULT_CATEGORY_RULES, classify_material
from impact_engine.services.recalculation import claim_next_job, enqueue_recalculation
from impact_engine.services.resolver import resolve

from .helpers import add_line_item, attach_impact, create_assessment, create_organization, create_product


class LoadReferenceDataTest(TestCase):
    """Tests for seeding impact categories, weights and rules"""

    def test_load_reference_data(self):
        out = StringIO()
        call_command('load_reference_data', stdout=out)

        self.assertEqual(ImpactCategory.objects.count(), len(EF31_CATEGORIES))
        weighting_set = WeightingSet.objects.get(name=DEFAULT_WEIGHTING_SET_NAME)
        self.assertTrue(weighting_set.is_default)
        self.assertEqual(weighting_set.factors.count(), len(EF31_CATEGORIES))
        self.assertAlmostEqual(sum(factor.weight for factor in weighting_set.factors.all()), 1.0, places=2)
        self.assertEqual(MaterialCategoryRule.objects.count(), len(DEFAULT_CATEGORY_RULES))
        self.assertEqual(classify_material("UK Grid Electricity"), ENERGY)
        self.assertFalse(GHGEmissionFactor.objects.exists())
        self.assertIn('Completed!', out.getvalue())

    def test_reloading_is_idempotent(self):
        call_command('load_reference_data', stdout=StringIO())
        call_command('load_reference_data', '--with-sample-factors', stdout=StringIO())
        call_command('load_reference_data', '--with-sample-factors', stdout=StringIO())

        self.assertEqual(ImpactCategory.objects.count(), len(EF31_CATEGORIES))
        self.assertEqual(WeightingSet.objects.count(), 1)
        self.assertEqual(MaterialProxy.objects.count(), len(SAMPLE_PROXIES))

    def test_existing_default_is_kept(self):
        WeightingSet.objects.create(name="Company weighting", is_default=True)
        call_command('load_reference_data', stdout=StringIO())
        self.assertFalse(WeightingSet.objects.get(name=DEFAULT_WEIGHTING_SET_NAME).is_default)

    def test_sample_data_supports_hybrid_resolution(self):
        call_command('load_reference_data', '--with-sample-factors', stdout=StringIO())

        impact = resolve("UK Grid Electricity", category=ENERGY, quantity=Decimal('1000'), unit='kWh', region='UK', year=2024)
        self.assertEqual(impact.provenance, PROVENANCE_HYBRID)
        self.assertAlmostEqual(impact.impacts['climate_change'], 0.20705)
        self.assertAlmostEqual(impact.impacts['land_use'], 0.0108)


class RecalculationCommandsTest(TestCase):
    """Tests for the queue operator commands"""

    def setUp(self):
        call_command('load_reference_data', stdout=StringIO())
        organization = create_organization()
        for index in range(2):
            assessment = create_assessment(create_product(organization, f"Product {index}"), status=ProductAssessment.STATUS_COMPLETED)
            attach_impact(add_line_item(assessment, "Organic Wheat Flour", 1), {'climate_change': 0.6})

    def test_enqueue_and_run_worker(self):
        out = StringIO()
        call_command('enqueue_recalculation', '--selector', 'all_completed', '--reason', 'EF 3.1 weights', stdout=out)
        batch = RecalculationBatch.objects.get()
        self.assertEqual(batch.total_jobs, 2)
        self.assertEqual(batch.trigger_reason, 'EF 3.1 weights')
        self.assertIn('created with 2 job(s)', out.getvalue())

        call_command('run_recalculation_worker', '--once', stdout=StringIO())

        batch.refresh_from_db()
        self.assertEqual(batch.status, RecalculationBatch.STATUS_COMPLETED)
        self.assertEqual(AggregatedImpact.objects.filter(single_score__isnull=False).count(), 2)

    def test_sweep_command(self):
        enqueue_recalculation('all_completed')
        claim_next_job()
        RecalculationJob.objects.filter(status=RecalculationJob.STATUS_PROCESSING).update(
            processing_started_at=timezone.now() - timedelta(hours=1)
        )

        out = StringIO()
        call_command('sweep_stale_recalculation_jobs', '--timeout-minutes', '30', stdout=out)
        self.assertIn('1 reset', out.getvalue())
        self.assertFalse(RecalculationJob.objects.filter(status=RecalculationJob.STATUS_PROCESSING).exists())


class SchemaTest(TestCase):
    """The shipped migrations match the models and carry the partial unique constraints"""

    def test_migrations_are_up_to_date(self):
        out = StringIO()
        call_command('makemigrations', 'impact_engine', '--check', '--dry-run', stdout=out)
        self.assertIn('No changes detected', out.getvalue())

    def test_only_one_default_weighting_set(self):
        WeightingSet.objects.create(name="EF 3.1", is_default=True)
        WeightingSet.objects.create(name="Climate only", is_default=False)
        with self.assertRaises(IntegrityError), transaction.atomic():
            WeightingSet.objects.create(name="Second default", is_default=True)

    def test_only_one_current_resolution_per_line_item(self):
        line_item = add_line_item(create_assessment(create_product(create_organization())), "Organic Wheat Flour", 1)
        attach_impact(line_item, {'climate_change': 0.6})
        ResolvedImpact.objects.create(line_item=line_item, is_current=False, impacts={'climate_change': 0.7})
        with self.assertRaises(IntegrityError), transaction.atomic():
            attach_impact(line_item, {'climate_change': 0.8})
