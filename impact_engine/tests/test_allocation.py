import datetime
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings

from impact_engine.exceptions import (
    IncompleteMix, InvalidAllocation, InvalidStatusTransition, LockedRecordError, OverlappingPeriod,
)
from impact_engine.models import (
    AllocationRecord, CalculationSnapshot, FacilityEnergyInput, FacilityPeriodTotals,
    ProductAssessment, ProductionMixEntry,
)
from impact_engine.services import allocation as allocation_service
from impact_engine.services.allocation import (
    FORMULA_VERSION, add_production_mix_entry, allocate, calculate_allocation, finalise_assessment,
    lock_allocation, lock_period_totals, mark_mix_complete, production_mix_summary,
    recalculate_allocation, recalculate_allocations_for_totals, recalculate_totals_from_energy,
    transition_allocation_status, validate_production_mix,
)

from .helpers import create_assessment, create_facility, create_organization, create_product, create_totals


class AllocationCalculatorTest(TestCase):
    """Tests for the physical allocation formula"""

    def setUp(self):
        self.org = create_organization()
        self.facility = create_facility(self.org)
        self.product = create_product(self.org)
        self.totals = create_totals(self.facility, volume='10000', emissions='3000')

    def test_quarter_share_of_shared_facility(self):
        """Test the worked example: 2,500 of 10,000 litres from a 3,000 kg CO2e facility"""
        record = allocate(self.totals, Decimal('2500'), product=self.product)

        self.assertEqual(record.attribution_ratio, Decimal('0.25'))
        self.assertEqual(record.allocated_emissions, Decimal('750'))
        self.assertEqual(record.scope1_emissions, Decimal('262.5'))
        self.assertEqual(record.scope2_emissions, Decimal('487.5'))
        self.assertEqual(record.scope3_emissions, Decimal('0'))
        self.assertTrue(record.uses_default_scope_split)
        self.assertEqual(record.emission_intensity_per_unit, Decimal('0.3'))
        self.assertEqual(record.status, AllocationRecord.STATUS_DRAFT)
        self.assertEqual(record.reporting_period_start, self.totals.reporting_period_start)
        self.assertIsNotNone(record.calculated_at)

    def test_snapshot_records_inputs_and_assumptions(self):
        """Test that each calculation leaves an audit snapshot behind"""
        record = allocate(self.totals, Decimal('2500'), product=self.product)
        snapshot = record.snapshots.get()

        self.assertEqual(snapshot.formula_version, FORMULA_VERSION)
        self.assertEqual(snapshot.inputs['client_production_volume'], '2500.000000')
        self.assertEqual(snapshot.inputs['total_emissions'], '3000.000000')
        self.assertEqual(snapshot.outputs['allocated_emissions'], '750.000000')
        self.assertEqual(len(snapshot.assumptions), 1)
        self.assertIn('35%', snapshot.assumptions[0])
        self.assertEqual(snapshot.as_bundle()['outputs'], snapshot.outputs)

    def test_reported_scope_split_is_used(self):
        self.totals.scope1_emissions = Decimal('1000')
        self.totals.scope2_emissions = Decimal('2000')
        self.totals.scope3_emissions = Decimal('400')

        result = calculate_allocation(self.totals, Decimal('2500'))
        self.assertFalse(result['uses_default_scope_split'])
        self.assertEqual(result['scope1_emissions'], Decimal('250'))
        self.assertEqual(result['scope2_emissions'], Decimal('500'))
        self.assertEqual(result['scope3_emissions'], Decimal('100'))
        self.assertEqual(result['metadata']['assumptions'], [])

    def test_water_and_waste_follow_the_same_ratio(self):
        self.totals.total_water = Decimal('400')
        self.totals.total_waste = Decimal('80')
        result = calculate_allocation(self.totals, Decimal('2500'))
        self.assertEqual(result['allocated_water'], Decimal('100'))
        self.assertEqual(result['allocated_waste'], Decimal('20'))

        self.totals.total_water = None
        self.assertIsNone(calculate_allocation(self.totals, Decimal('2500'))['allocated_water'])

    @override_settings(IMPACT_ENGINE={'DEFAULT_SCOPE1_SHARE': '0.5'})
    def test_default_split_is_configurable(self):
        result = calculate_allocation(self.totals, Decimal('2500'))
        self.assertEqual(result['scope1_emissions'], Decimal('375'))
        self.assertEqual(result['scope2_emissions'], Decimal('375'))

    def test_ratio_bounds_and_conservation(self):
        """Test that the ratio stays within [0, 1] and allocated = total * ratio"""
        for volume in ('0', '1', '3333', '9999.5', '10000'):
            result = calculate_allocation(self.totals, Decimal(volume))
            self.assertGreaterEqual(result['attribution_ratio'], 0)
            self.assertLessEqual(result['attribution_ratio'], 1)
            self.assertEqual(
                result['allocated_emissions'],
                (Decimal('3000') * result['attribution_ratio']).quantize(Decimal('0.000001')),
            )
            self.assertEqual(result['scope1_emissions'] + result['scope2_emissions'], result['allocated_emissions'])

    def test_zero_client_volume_has_zero_intensity(self):
        result = calculate_allocation(self.totals, Decimal('0'))
        self.assertEqual(result['attribution_ratio'], Decimal('0'))
        self.assertEqual(result['emission_intensity_per_unit'], Decimal('0'))

    def test_invalid_volumes_are_rejected(self):
        """Test that nothing is stored for impossible volumes"""
        with self.assertRaises(InvalidAllocation):
            allocate(self.totals, Decimal('10001'), product=self.product)
        with self.assertRaises(InvalidAllocation):
            allocate(self.totals, Decimal('-1'), product=self.product)

        empty_totals = create_totals(self.facility, volume='0', start=datetime.date(2030, 1, 1), end=datetime.date(2031, 1, 1))
        with self.assertRaises(InvalidAllocation):
            allocate(empty_totals, Decimal('0'), product=self.product)
        with self.assertRaises(InvalidAllocation):
            allocate(self.totals, Decimal('10'))

        self.assertFalse(AllocationRecord.objects.exists())
        self.assertFalse(CalculationSnapshot.objects.exists())


class AllocationPersistenceTest(TestCase):
    """Tests for storing, recalculating and locking allocation records"""

    def setUp(self):
        self.org = create_organization()
        self.facility = create_facility(self.org)
        self.product = create_product(self.org)
        self.totals = create_totals(self.facility)
        self.record = allocate(self.totals, Decimal('2500'), product=self.product)

    def test_recalculation_is_idempotent(self):
        """Test that recalculating unchanged inputs changes nothing and adds no snapshot"""
        self.record.refresh_from_db()
        calculated_at = self.record.calculated_at

        first = recalculate_allocation(self.record)
        second = recalculate_allocation(self.record.pk)

        self.assertEqual(first.allocated_emissions, second.allocated_emissions)
        self.assertEqual(second.calculated_at, calculated_at)
        self.assertEqual(self.record.snapshots.count(), 1)

    def test_recalculation_after_totals_change(self):
        """Test that edited totals flow into the allocation and a new snapshot"""
        self.totals.total_emissions = Decimal('4000')
        self.totals.save()

        record = recalculate_allocation(self.record)
        self.assertEqual(record.allocated_emissions, Decimal('1000'))
        self.assertEqual(record.snapshots.count(), 2)

    def test_recalculation_with_new_client_volume(self):
        record = recalculate_allocation(self.record, client_volume=Decimal('5000'))
        self.assertEqual(record.attribution_ratio, Decimal('0.5'))
        self.assertEqual(record.allocated_emissions, Decimal('1500'))

    def test_recalculate_all_allocations_of_totals(self):
        other_product = create_product(self.org, "Rye Loaf")
        allocate(self.totals, Decimal('1000'), product=other_product)
        FacilityPeriodTotals.objects.filter(pk=self.totals.pk).update(total_emissions=Decimal('6000'))

        stats = recalculate_allocations_for_totals(self.totals)
        self.assertEqual(stats, {'recalculated': 2, 'errors': []})
        self.record.refresh_from_db()
        self.assertEqual(self.record.allocated_emissions, Decimal('1500'))

    def test_overlapping_period_is_rejected(self):
        """Test that a product cannot be allocated twice for overlapping periods at one facility"""
        overlapping = create_totals(self.facility, start=datetime.date(2024, 6, 1), end=datetime.date(2025, 6, 1))
        with self.assertRaises(OverlappingPeriod) as ctx:
            allocate(overlapping, Decimal('100'), product=self.product)
        self.assertEqual(ctx.exception.conflicting_ids, [self.record.pk])
        self.assertEqual(ctx.exception.to_dict()['conflicting_allocation_ids'], [self.record.pk])

    def test_overlap_check_runs_under_product_lock(self):
        """Test that concurrent allocations of one product are serialised on the product row"""
        calls = []
        real_lock = allocation_service.lock_product_allocations
        real_check = allocation_service.check_overlapping_period

        def lock(product):
            calls.append(('lock', product.pk))
            return real_lock(product)

        def check(product, *args, **kwargs):
            calls.append(('check', product.pk))
            return real_check(product, *args, **kwargs)

        following = create_totals(self.facility, start=datetime.date(2025, 1, 1), end=datetime.date(2026, 1, 1))
        with mock.patch.object(allocation_service, 'lock_product_allocations', side_effect=lock), \
                mock.patch.object(allocation_service, 'check_overlapping_period', side_effect=check):
            allocate(following, Decimal('100'), product=self.product)
            self.assertEqual(calls, [('lock', self.product.pk), ('check', self.product.pk)])

            calls.clear()
            FacilityPeriodTotals.objects.filter(pk=self.totals.pk).update(reporting_period_start=datetime.date(2023, 7, 1))
            record = recalculate_allocation(self.record)
            self.assertEqual(calls, [('lock', self.product.pk), ('check', self.product.pk)])
        self.assertEqual(record.reporting_period_start, datetime.date(2023, 7, 1))

    def test_adjacent_periods_and_other_products_are_allowed(self):
        following = create_totals(self.facility, start=datetime.date(2025, 1, 1), end=datetime.date(2026, 1, 1))
        allocate(following, Decimal('100'), product=self.product)
        allocate(self.totals, Decimal('100'), product=create_product(self.org, "Rye Loaf"))
        self.assertEqual(AllocationRecord.objects.count(), 3)

    def test_energy_intensive_process_is_provisional(self):
        """Test automatic promotion of energy-intensive processes"""
        other = allocate(self.totals, Decimal('100'), product=create_product(self.org, "Rye Loaf"), is_energy_intensive_process=True)
        self.assertEqual(other.status, AllocationRecord.STATUS_PROVISIONAL)

        other = lock_allocation(other)
        self.assertEqual(other.status, AllocationRecord.STATUS_PROVISIONAL)

    def test_locking_verifies_standard_process(self):
        record = lock_allocation(self.record)
        self.assertIsNotNone(record.locked_at)
        self.assertEqual(record.status, AllocationRecord.STATUS_VERIFIED)

    def test_status_moves_forward_only(self):
        """Test reviewer transitions and admin-only rollback"""
        User = get_user_model()
        reviewer = User.objects.create_user(username='reviewer', password='pass')
        admin = User.objects.create_user(username='admin', password='pass', is_staff=True)

        record = transition_allocation_status(self.record, AllocationRecord.STATUS_APPROVED, user=reviewer)
        self.assertEqual(record.status, AllocationRecord.STATUS_APPROVED)

        with self.assertRaises(InvalidStatusTransition):
            transition_allocation_status(record, AllocationRecord.STATUS_DRAFT, user=admin)
        with self.assertRaises(InvalidStatusTransition):
            transition_allocation_status(record, AllocationRecord.STATUS_DRAFT, user=reviewer, rollback=True)
        with self.assertRaises(InvalidStatusTransition):
            transition_allocation_status(record, 'published', user=admin)

        record = transition_allocation_status(record, AllocationRecord.STATUS_DRAFT, user=admin, rollback=True)
        self.assertEqual(record.status, AllocationRecord.STATUS_DRAFT)

    def test_locked_totals_reject_edits(self):
        lock_period_totals(self.totals)
        self.totals.total_emissions = Decimal('1')
        with self.assertRaises(LockedRecordError):
            self.totals.save()

    def test_snapshots_are_immutable(self):
        snapshot = self.record.snapshots.get()
        snapshot.formula = 'tampered'
        with self.assertRaises(LockedRecordError):
            snapshot.save()
        with self.assertRaises(LockedRecordError):
            snapshot.delete()


class EnergyDerivedTotalsTest(TestCase):
    """Tests for totals calculated from metered energy inputs"""

    def setUp(self):
        self.facility = create_facility(create_organization())
        self.totals = create_totals(
            self.facility, emissions='0', entry_method=FacilityPeriodTotals.ENTRY_CALCULATED_FROM_ENERGY,
        )

    def test_totals_rebuilt_from_inputs(self):
        FacilityEnergyInput.objects.create(
            period_totals=self.totals, fuel_type='Diesel', consumption_value=Decimal('1000'),
            consumption_unit='litres', emission_factor=Decimal('2.5'), scope='1',
        )
        FacilityEnergyInput.objects.create(
            period_totals=self.totals, fuel_type='Grid electricity', consumption_value=Decimal('10000'),
            consumption_unit='kWh', emission_factor=Decimal('0.2'), scope='2',
        )

        totals = recalculate_totals_from_energy(self.totals)
        self.assertEqual(totals.scope1_emissions, Decimal('2500'))
        self.assertEqual(totals.scope2_emissions, Decimal('2000'))
        self.assertEqual(totals.total_emissions, Decimal('4500'))
        self.assertTrue(totals.has_reported_scope_split)

    def test_direct_totals_are_left_alone(self):
        direct = create_totals(self.facility, emissions='3000', start=datetime.date(2025, 1, 1), end=datetime.date(2026, 1, 1))
        self.assertEqual(recalculate_totals_from_energy(direct).total_emissions, Decimal('3000'))

    def test_inputs_of_locked_totals_cannot_change(self):
        lock_period_totals(self.totals)
        with self.assertRaises(LockedRecordError):
            FacilityEnergyInput.objects.create(
                period_totals=self.totals, fuel_type='Diesel', consumption_value=Decimal('1'),
                consumption_unit='litres', emission_factor=Decimal('2.5'),
            )

    def test_inputs_of_locked_totals_cannot_be_deleted(self):
        """Test that the audit inputs stay in step with locked totals"""
        energy_input = FacilityEnergyInput.objects.create(
            period_totals=self.totals, fuel_type='Diesel', consumption_value=Decimal('1000'),
            consumption_unit='litres', emission_factor=Decimal('2.5'), scope='1',
        )
        lock_period_totals(self.totals)

        with self.assertRaises(LockedRecordError):
            FacilityEnergyInput.objects.get(pk=energy_input.pk).delete()
        self.assertTrue(FacilityEnergyInput.objects.filter(pk=energy_input.pk).exists())

    def test_inputs_of_open_totals_can_be_deleted(self):
        energy_input = FacilityEnergyInput.objects.create(
            period_totals=self.totals, fuel_type='Diesel', consumption_value=Decimal('1000'),
            consumption_unit='litres', emission_factor=Decimal('2.5'), scope='1',
        )
        energy_input.delete()
        self.assertFalse(self.totals.energy_inputs.exists())


class ProductionMixTest(TestCase):
    """Tests for multi-facility production mix validation"""

    def setUp(self):
        self.org = create_organization()
        self.product = create_product(self.org)
        self.plant_a = create_facility(self.org, "Plant A")
        self.plant_b = create_facility(self.org, "Plant B")
        self.assessment = create_assessment(self.product)

    def test_complete_mix(self):
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.6'))
        add_production_mix_entry(self.product, self.plant_b, Decimal('0.4'))

        self.assertEqual(validate_production_mix(self.product), Decimal('1'))
        assessment = mark_mix_complete(self.assessment)
        self.assertTrue(assessment.is_mix_complete)

    def test_incomplete_mix_reports_total(self):
        """Test that 0.6 + 0.3 is rejected with the actual total"""
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.6'))
        add_production_mix_entry(self.product, self.plant_b, Decimal('0.3'))

        with self.assertRaises(IncompleteMix) as ctx:
            mark_mix_complete(self.assessment)
        self.assertEqual(ctx.exception.total, Decimal('0.9'))
        self.assertEqual(Decimal(ctx.exception.to_dict()['total']), Decimal('0.9'))
        self.assertFalse(ProductAssessment.objects.get(pk=self.assessment.pk).is_mix_complete)

    def test_single_partial_entry_is_incomplete(self):
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.5'))
        with self.assertRaises(IncompleteMix):
            validate_production_mix(self.product)

    def test_single_source_product_passes(self):
        self.assertEqual(validate_production_mix(self.product), Decimal('1'))
        summary = production_mix_summary(self.product)
        self.assertTrue(summary['is_single_source'])
        self.assertTrue(summary['is_complete'])

    def test_shares_cannot_exceed_one(self):
        """Test that an entry pushing the total past 1 is refused and nothing is saved"""
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.7'))
        with self.assertRaises(IncompleteMix):
            add_production_mix_entry(self.product, self.plant_b, Decimal('0.4'))
        self.assertEqual(ProductionMixEntry.objects.filter(product=self.product).count(), 1)

        with self.assertRaises(InvalidAllocation):
            add_production_mix_entry(self.product, self.plant_b, Decimal('1.5'))

    def test_updating_an_entry_replaces_its_share(self):
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.7'))
        add_production_mix_entry(self.product, self.plant_b, Decimal('0.3'))
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.5'))

        summary = production_mix_summary(self.product)
        self.assertEqual(Decimal(summary['total']), Decimal('0.8'))
        self.assertEqual(Decimal(summary['remaining']), Decimal('0.2'))
        self.assertFalse(summary['is_complete'])

    def test_finalise_requires_complete_mix(self):
        add_production_mix_entry(self.product, self.plant_a, Decimal('0.6'))
        with self.assertRaises(IncompleteMix):
            finalise_assessment(self.assessment)

        add_production_mix_entry(self.product, self.plant_b, Decimal('0.4'))
        assessment = finalise_assessment(self.assessment)
        self.assertEqual(assessment.status, ProductAssessment.STATUS_COMPLETED)
        self.assertIsNotNone(assessment.finalised_at)

        with self.assertRaises(LockedRecordError):
            finalise_assessment(assessment)
