import logging
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from ..exceptions import LockedRecordError
from .organizations import Facility, Product

logger = logging.getLogger(__name__)


class FacilityPeriodTotals(models.Model):
    """ Total production volume and emissions of one facility over one reporting period. """
    ENTRY_DIRECT = 'direct'
    ENTRY_CALCULATED_FROM_ENERGY = 'calculated_from_energy'
    ENTRY_METHOD_CHOICES = [
        (ENTRY_DIRECT, 'Entered directly'),
        (ENTRY_CALCULATED_FROM_ENERGY, 'Calculated from energy inputs'),
    ]

    facility = models.ForeignKey(Facility, on_delete=models.CASCADE, related_name='period_totals')
    reporting_period_start = models.DateField()
    reporting_period_end = models.DateField()

    total_production_volume = models.DecimalField(max_digits=20, decimal_places=6)
    volume_unit = models.CharField(max_length=20, default='units')
    total_emissions = models.DecimalField(max_digits=20, decimal_places=6, help_text="kg CO2e")
    scope1_emissions = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    scope2_emissions = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    scope3_emissions = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    total_water = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True, help_text="m3")
    total_waste = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True, help_text="kg")

    entry_method = models.CharField(max_length=30, choices=ENTRY_METHOD_CHOICES, default=ENTRY_DIRECT)
    locked_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "Facility period totals"
        ordering = ['facility', '-reporting_period_start']

    def __str__(self):
        return f"{self.facility} {self.reporting_period_start} - {self.reporting_period_end}"

    @property
    def is_locked(self):
        return self.locked_at is not None

    @property
    def has_reported_scope_split(self):
        return self.scope1_emissions is not None and self.scope2_emissions is not None

    def clean(self):
        if self.reporting_period_start and self.reporting_period_end and self.reporting_period_end <= self.reporting_period_start:
            raise ValidationError({'reporting_period_end': "Reporting period end must be after its start"})

    def save(self, *args, **kwargs):
        if self.pk:
            persisted_lock = FacilityPeriodTotals.objects.filter(pk=self.pk).values_list('locked_at', flat=True).first()
            if persisted_lock is not None:
                raise LockedRecordError(f"Facility period totals {self.pk} are locked for allocation")
        super().save(*args, **kwargs)


class FacilityEnergyInput(models.Model):
    """ Raw energy consumption behind a FacilityPeriodTotals entered from energy data. """
    SCOPE_CHOICES = [('1', 'Scope 1'), ('2', 'Scope 2')]

    period_totals = models.ForeignKey(FacilityPeriodTotals, on_delete=models.CASCADE, related_name='energy_inputs')
    fuel_type = models.CharField(max_length=100)
    consumption_value = models.DecimalField(max_digits=20, decimal_places=6)
    consumption_unit = models.CharField(max_length=20)
    emission_factor = models.DecimalField(max_digits=15, decimal_places=7, help_text="kg CO2e per consumption unit")
    emission_factor_year = models.PositiveIntegerField(null=True, blank=True)
    emission_factor_source = models.CharField(max_length=255, blank=True)
    scope = models.CharField(max_length=1, choices=SCOPE_CHOICES, default='1')

    class Meta:
        ordering = ['period_totals', 'pk']

    def __str__(self):
        return f"{self.fuel_type}: {self.consumption_value} {self.consumption_unit}"

    @property
    def calculated_emissions(self):
        return self.consumption_value * self.emission_factor

    def save(self, *args, **kwargs):
        if self.period_totals.is_locked:
            raise LockedRecordError(f"Facility period totals {self.period_totals_id} are locked for allocation")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if FacilityPeriodTotals.objects.filter(pk=self.period_totals_id, locked_at__isnull=False).exists():
            raise LockedRecordError(f"Facility period totals {self.period_totals_id} are locked for allocation")
        return super().delete(*args, **kwargs)


class AllocationRecord(models.Model):
    """ One client product's physical-allocation claim against a facility's period totals. """
    STATUS_DRAFT = 'draft'
    STATUS_PROVISIONAL = 'provisional'
    STATUS_VERIFIED = 'verified'
    STATUS_APPROVED = 'approved'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PROVISIONAL, 'Provisional'),
        (STATUS_VERIFIED, 'Verified'),
        (STATUS_APPROVED, 'Approved'),
    ]
    # Forward order of the lifecycle; verified and approved share a rank
    STATUS_RANK = {
        STATUS_DRAFT: 0,
        STATUS_PROVISIONAL: 1,
        STATUS_VERIFIED: 2,
        STATUS_APPROVED: 2,
    }

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='allocations')
    facility = models.ForeignKey(Facility, on_delete=models.CASCADE, related_name='allocations')
    period_totals = models.ForeignKey(FacilityPeriodTotals, on_delete=models.PROTECT, related_name='allocations')
    reporting_period_start = models.DateField()
    reporting_period_end = models.DateField()

    client_production_volume = models.DecimalField(max_digits=20, decimal_places=6)
    attribution_ratio = models.DecimalField(max_digits=12, decimal_places=10, default=Decimal('0'))
    allocated_emissions = models.DecimalField(max_digits=20, decimal_places=6, default=Decimal('0'))
    scope1_emissions = models.DecimalField(max_digits=20, decimal_places=6, default=Decimal('0'))
    scope2_emissions = models.DecimalField(max_digits=20, decimal_places=6, default=Decimal('0'))
    scope3_emissions = models.DecimalField(max_digits=20, decimal_places=6, default=Decimal('0'))
    uses_default_scope_split = models.BooleanField(default=False)
    allocated_water = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    allocated_waste = models.DecimalField(max_digits=20, decimal_places=6, null=True, blank=True)
    emission_intensity_per_unit = models.DecimalField(max_digits=20, decimal_places=10, default=Decimal('0'))

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    is_energy_intensive_process = models.BooleanField(default=False)
    locked_at = models.DateTimeField(null=True, blank=True)

    calculation_metadata = models.JSONField(default=dict, blank=True)
    calculated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['product', 'facility', '-reporting_period_start']
        indexes = [
            models.Index(fields=['product', 'facility', 'reporting_period_start'], name='allocation_product_period_idx'),
        ]

    def __str__(self):
        return f"{self.product.name} @ {self.facility.name} {self.reporting_period_start} ({self.status})"


class CalculationSnapshot(models.Model):
    """ Append-only audit bundle of one allocation calculation. """
    allocation = models.ForeignKey(AllocationRecord, on_delete=models.CASCADE, related_name='snapshots')
    formula_version = models.CharField(max_length=50)
    formula = models.CharField(max_length=255)
    inputs = models.JSONField(default=dict)
    outputs = models.JSONField(default=dict)
    assumptions = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['allocation', 'created_at', 'pk']

    def __str__(self):
        return f"Snapshot {self.pk} of allocation {self.allocation_id} ({self.formula_version})"

    def save(self, *args, **kwargs):
        if self.pk:
            raise LockedRecordError("Calculation snapshots are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LockedRecordError("Calculation snapshots are immutable")

    def as_bundle(self):
        return {
            'formula_version': self.formula_version,
            'formula': self.formula,
            'inputs': self.inputs,
            'outputs': self.outputs,
            'assumptions': self.assumptions,
        }


class ProductionMixEntry(models.Model):
    """ Share (0..1) of a product's total output made at one facility. """
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='production_mix')
    facility = models.ForeignKey(Facility, on_delete=models.CASCADE, related_name='production_mix_entries')
    share = models.DecimalField(
        max_digits=7, decimal_places=6,
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1'))]
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [['product', 'facility']]
        verbose_name_plural = "Production mix entries"
        ordering = ['product', 'facility']

    def __str__(self):
        return f"{self.product.name} @ {self.facility.name}: {self.share}"
