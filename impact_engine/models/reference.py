import logging

from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models

from ..constants import MATERIAL_CATEGORY_CHOICES, normalize_material_name
from .organizations import Organization

logger = logging.getLogger(__name__)


class OrganizationMaterialOverride(models.Model):
    """ Organisation-specific impact data for a named material (first tiers of the waterfall). """
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name='material_overrides')
    name = models.CharField(max_length=255)
    normalized_name = models.CharField(max_length=255, db_index=True, editable=False)
    unit = models.CharField(max_length=20, default='kg', help_text="Base unit the impact values refer to")
    impacts = models.JSONField(default=dict, help_text="Impact values per unit, keyed by impact category")
    geography = models.CharField(max_length=50, blank=True)
    source_reference = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [['organization', 'normalized_name']]
        ordering = ['organization', 'name']

    def __str__(self):
        return f"{self.name} [{self.organization}]"

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_material_name(self.name)
        super().save(*args, **kwargs)


class MaterialProxy(models.Model):
    """ Global industry-average impact profile (e.g., an Ecoinvent or Agribalyse dataset). """
    name = models.CharField(max_length=255)
    normalized_name = models.CharField(max_length=255, db_index=True, editable=False)
    category = models.CharField(max_length=100, blank=True, db_index=True, help_text="Proxy family; reference factors point at it for non-climate data")
    unit = models.CharField(max_length=20, default='kg')
    geography = models.CharField(max_length=50, blank=True)
    data_quality_score = models.DecimalField(
        max_digits=3, decimal_places=2, default=3,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
        help_text="Declared data quality, 1 (poor) to 5 (excellent)"
    )
    impacts = models.JSONField(default=dict)
    source = models.CharField(max_length=255, blank=True, help_text="Database and version (e.g., Ecoinvent 3.10)")
    is_active = models.BooleanField(default=True)

    class Meta:
        verbose_name_plural = "Material proxies"
        ordering = ['-data_quality_score', 'name']

    def __str__(self):
        return f"{self.name} ({self.geography or 'GLO'}, DQ {self.data_quality_score})"

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_material_name(self.name)
        super().save(*args, **kwargs)


class GHGEmissionFactor(models.Model):
    """ Government reference emission factor (climate only), used by the hybrid path. """
    name = models.CharField(max_length=255, help_text="Descriptive name (e.g., Grid Electricity - UK - DEFRA 2024)")
    source = models.CharField(max_length=255, blank=True, help_text="Source document name (e.g., DEFRA, EPA)")
    source_url = models.URLField(max_length=500, blank=True, null=True)

    year = models.PositiveIntegerField(db_index=True, help_text="Applicable year for the factor")

    category = models.CharField(max_length=30, choices=MATERIAL_CATEGORY_CHOICES, db_index=True)
    sub_category = models.CharField(max_length=255, db_index=True, help_text="Activity matched against material names (e.g., Grid Electricity, Diesel)")
    activity_unit = models.CharField(max_length=50, help_text="Unit of the activity data this factor applies to (e.g., kWh, litres, km)")

    value = models.DecimalField(max_digits=15, decimal_places=7)
    factor_unit = models.CharField(max_length=50, help_text="Unit of the factor (e.g., kgCO2e/kWh)")

    region = models.CharField(max_length=100, blank=True, null=True, db_index=True, help_text="Geographic applicability (e.g., UK, ALL)")
    scope = models.CharField(max_length=10, blank=True, db_index=True)
    proxy_category = models.CharField(max_length=100, blank=True, help_text="MaterialProxy category supplying non-climate data")

    class Meta:
        unique_together = [['year', 'category', 'sub_category', 'activity_unit', 'region', 'scope']]
        ordering = ['-year', 'category', 'sub_category', 'region']
        verbose_name = "GHG Emission Factor"
        verbose_name_plural = "GHG Emission Factors"

    def __str__(self):
        region_str = f" [{self.region}]" if self.region else ""
        return f"{self.category} - {self.sub_category}{region_str} ({self.year}) = {self.value} {self.factor_unit}"

    def get_emission_unit(self):
        """ Emission part of the factor unit, e.g. 'kgCO2e' from 'kgCO2e/kWh'. """
        if '/' in self.factor_unit:
            return self.factor_unit.split('/')[0]
        logger.warning(f"Could not parse emission unit from factor_unit: {self.factor_unit} for factor {self.pk}")
        return "kgCO2e"


class MaterialCategoryRule(models.Model):
    """ One row of the versioned rule table mapping material-name patterns to categories. """
    pattern = models.CharField(max_length=100, help_text="Case-insensitive substring of the material name")
    category = models.CharField(max_length=30, choices=MATERIAL_CATEGORY_CHOICES)
    priority = models.IntegerField(default=0, help_text="Higher priority rules are tried first")
    version = models.CharField(max_length=20, db_index=True)
    is_active = models.BooleanField(default=True)
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        unique_together = [['version', 'pattern']]
        ordering = ['version', '-priority', 'pattern']

    def __str__(self):
        return f"'{self.pattern}' -> {self.category} (v{self.version}, p{self.priority})"
