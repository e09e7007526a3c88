from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient

from impact_engine.models import (
    AllocationRecord, FacilityEnergyInput, FacilityPeriodTotals, MaterialProxy, OrganizationMaterialOverride, RecalculationJob,
)
from impact_engine.services.allocation import add_production_mix_entry, allocate, lock_period_totals

from .helpers import (
    add_line_item, create_assessment, create_facility, create_organization, create_product,
    create_totals, create_weighting_set,
)


class APITestBase(TestCase):
    def setUp(self):
        User = get_user_model()
        self.user = User.objects.create_user(username='analyst', password='pass')
        self.admin = User.objects.create_user(username='ops', password='pass', is_staff=True)
        self.client = APIClient()
        self.client.force_authenticate(user=self.user)

        self.org = create_organization()
        self.facility = create_facility(self.org)
        self.product = create_product(self.org)


class AuthenticationTest(APITestBase):
    def test_anonymous_requests_are_rejected(self):
        self.assertEqual(APIClient().get('/api/assessments/').status_code, status.HTTP_401_UNAUTHORIZED)


class AllocationAPITest(APITestBase):
    """Allocation endpoints"""

    def setUp(self):
        super().setUp()
        self.totals = create_totals(self.facility)

    def test_create_allocation(self):
        response = self.client.post('/api/allocations/', {
            'product': self.product.pk,
            'period_totals': self.totals.pk,
            'client_production_volume': '2500',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Decimal(response.data['attribution_ratio']), Decimal('0.25'))
        self.assertEqual(Decimal(response.data['allocated_emissions']), Decimal('750'))
        self.assertEqual(Decimal(response.data['scope1_emissions']), Decimal('262.5'))
        self.assertEqual(Decimal(response.data['scope2_emissions']), Decimal('487.5'))
        self.assertEqual(len(response.data['snapshots']), 1)

    def test_invalid_and_overlapping_allocations(self):
        response = self.client.post('/api/allocations/', {
            'product': self.product.pk, 'period_totals': self.totals.pk, 'client_production_volume': '20000',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'invalid_allocation')

        allocate(self.totals, Decimal('100'), product=self.product)
        response = self.client.post('/api/allocations/', {
            'product': self.product.pk, 'period_totals': self.totals.pk, 'client_production_volume': '100',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'overlapping_period')
        self.assertEqual(AllocationRecord.objects.count(), 1)

    def test_transition_rollback_requires_admin(self):
        record = allocate(self.totals, Decimal('100'), product=self.product)
        url = f'/api/allocations/{record.pk}/transition/'

        response = self.client.post(url, {'status': 'approved'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.post(url, {'status': 'draft', 'rollback': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(url, {'status': 'draft', 'rollback': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'draft')

    def test_facility_totals_default_to_one_year(self):
        response = self.client.post('/api/facility-totals/', {
            'facility': self.facility.pk,
            'reporting_period_start': '2026-04-01',
            'total_production_volume': '500',
            'total_emissions': '120',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['reporting_period_end'], '2027-04-01')

    def test_locked_totals_cannot_be_edited(self):
        response = self.client.post(f'/api/facility-totals/{self.totals.pk}/lock/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(FacilityPeriodTotals.objects.get(pk=self.totals.pk).locked_at)

        response = self.client.patch(f'/api/facility-totals/{self.totals.pk}/', {'total_emissions': '1'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ProductionMixAPITest(APITestBase):
    def test_incomplete_mix_is_reported_with_total(self):
        """Test that mark-mix-complete fails for 0.6 + 0.3 and reports the sum"""
        plant_b = create_facility(self.org, "Plant B")
        add_production_mix_entry(self.product, self.facility, Decimal('0.6'))
        add_production_mix_entry(self.product, plant_b, Decimal('0.3'))
        assessment = create_assessment(self.product)

        response = self.client.post(f'/api/assessments/{assessment.pk}/mark-mix-complete/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'incomplete_mix')
        self.assertEqual(Decimal(response.data['total']), Decimal('0.9'))

        response = self.client.get(f'/api/products/{self.product.pk}/production-mix/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data['is_complete'])

    def test_mix_entry_over_one_is_refused(self):
        add_production_mix_entry(self.product, self.facility, Decimal('0.8'))
        response = self.client.post('/api/production-mix/', {
            'product': self.product.pk, 'facility': create_facility(self.org, "Plant B").pk, 'share': '0.3',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'incomplete_mix')


class ResolutionAPITest(APITestBase):
    def test_resolve_material(self):
        OrganizationMaterialOverride.objects.create(organization=self.org, name="Organic Wheat Flour", impacts={'climate_change': 0.6})
        MaterialProxy.objects.create(name="Organic Wheat Flour", data_quality_score=Decimal('5'), impacts={'climate_change': 0.8})

        response = self.client.post('/api/resolve/', {
            'material_name': 'Organic Wheat Flour', 'quantity': '2', 'unit': 'kg', 'organization': self.org.pk,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['provenance'], 'organisation_override')
        self.assertEqual(response.data['confidence'], 70)

    def test_unresolvable_material_is_not_found(self):
        response = self.client.post('/api/resolve/', {'material_name': 'Unobtainium'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'material_not_resolved')

    def test_resolve_and_aggregate_assessment(self):
        create_weighting_set()
        assessment = create_assessment(self.product)
        add_line_item(assessment, "Cane Sugar", 2)
        add_line_item(assessment, "Mystery Glaze", 1)
        MaterialProxy.objects.create(name="Cane Sugar", data_quality_score=Decimal('3'), impacts={'climate_change': 1.0})

        response = self.client.post(f'/api/assessments/{assessment.pk}/resolve/')
        self.assertEqual(response.data['resolved'], 1)
        self.assertEqual(response.data['unresolved'], 1)

        response = self.client.post(f'/api/assessments/{assessment.pk}/aggregate/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertAlmostEqual(response.data['totals']['climate_change'], 2.0)
        self.assertTrue(response.data['needs_review'])
        self.assertEqual(response.data['quality_grade'], 'low')

        response = self.client.get(f'/api/assessments/{assessment.pk}/single-score/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['skipped_categories'], ['WU'])

        response = self.client.get(f'/api/assessments/{assessment.pk}/single-score/', {'weighting_set': 987654})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'not_found')

    def test_aggregate_without_weighting_set(self):
        assessment = create_assessment(self.product)
        response = self.client.post(f'/api/assessments/{assessment.pk}/aggregate/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'no_default_weighting_set')

    def test_line_items_of_finalised_assessments_are_locked(self):
        assessment = create_assessment(self.product)
        line_item = add_line_item(assessment, "Cane Sugar", 2)
        self.client.post(f'/api/assessments/{assessment.pk}/finalise/')

        response = self.client.delete(f'/api/line-items/{line_item.pk}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        response = self.client.post(f'/api/line-items/{line_item.pk}/supersede/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNotNone(response.data['superseded_at'])


class RecalculationAPITest(APITestBase):
    """Operator endpoints of the recalculation queue"""

    def setUp(self):
        super().setUp()
        create_weighting_set()
        create_assessment(self.product, status='completed')

    def test_queue_is_admin_only(self):
        response = self.client.post('/api/recalculation-batches/', {'selector': 'all_completed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_enqueue_claim_complete(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post('/api/recalculation-batches/', {'selector': 'all_completed', 'trigger_reason': 'EF 3.1 update'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        batch_id = response.data['id']
        self.assertEqual(response.data['total_jobs'], 1)
        self.assertEqual(response.data['triggered_by'], 'ops')

        response = self.client.post('/api/recalculation-jobs/claim/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        job_id = response.data['id']
        self.assertEqual(response.data['status'], RecalculationJob.STATUS_PROCESSING)

        self.assertEqual(self.client.post('/api/recalculation-jobs/claim/').status_code, status.HTTP_204_NO_CONTENT)

        response = self.client.post(f'/api/recalculation-jobs/{job_id}/complete/', {'success': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], RecalculationJob.STATUS_COMPLETED)

        response = self.client.get(f'/api/recalculation-batches/{batch_id}/progress/')
        self.assertEqual(response.data['status'], 'completed')
        self.assertEqual(response.data['completion_percentage'], 100.0)

    def test_completing_unclaimed_job_conflicts(self):
        self.client.force_authenticate(user=self.admin)
        self.client.post('/api/recalculation-batches/', {'selector': 'all_completed'}, format='json')
        job = RecalculationJob.objects.get()

        response = self.client.post(f'/api/recalculation-jobs/{job.pk}/complete/', {'success': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'job_not_claimed')

    def test_sweep_rejects_non_numeric_timeout(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.post('/api/recalculation-jobs/sweep/', {'timeout_minutes': 'soon'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('timeout_minutes', response.data)

        response = self.client.post('/api/recalculation-jobs/sweep/', {'timeout_minutes': 30}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'reset': 0, 'failed': 0})


class EnergyInputAPITest(APITestBase):
    """Energy inputs behind locked facility totals"""

    def test_energy_input_of_locked_totals_cannot_be_deleted(self):
        totals = create_totals(self.facility, entry_method=FacilityPeriodTotals.ENTRY_CALCULATED_FROM_ENERGY)
        energy_input = FacilityEnergyInput.objects.create(
            period_totals=totals, fuel_type='Natural gas', consumption_value=Decimal('1000'),
            consumption_unit='kWh', emission_factor=Decimal('0.18'), scope='1',
        )
        lock_period_totals(totals)

        response = self.client.delete(f'/api/energy-inputs/{energy_input.pk}/')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['error'], 'locked_record')
        self.assertTrue(FacilityEnergyInput.objects.filter(pk=energy_input.pk).exists())
