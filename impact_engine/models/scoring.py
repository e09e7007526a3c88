from django.db import models
from django.db.models import Q

from ..constants import QUALITY_CHOICES, QUALITY_LOW
from .assessments import ProductAssessment
from .organizations import Organization


class ImpactCategory(models.Model):
    """ Reference impact category with its per-capita normalisation value (EF 3.1 style). """
    code = models.CharField(max_length=20, unique=True, help_text="Short code (e.g., CC, WU)")
    name = models.CharField(max_length=255)
    impact_key = models.CharField(max_length=50, unique=True, help_text="Key in the impact vectors (e.g., climate_change)")
    unit = models.CharField(max_length=50, blank=True)
    normalisation_value = models.FloatField(null=True, blank=True, help_text="Annual per-capita reference; categories without one are left out of the single score")
    display_order = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name_plural = "Impact categories"
        ordering = ['display_order', 'code']

    def __str__(self):
        return f"{self.code} - {self.name}"


class WeightingSet(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    version = models.CharField(max_length=20, blank=True)
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, null=True, blank=True, related_name='weighting_sets')
    is_default = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-is_default', 'name']
        constraints = [
            models.UniqueConstraint(fields=['is_default'], condition=Q(is_default=True), name='single_default_weighting_set'),
        ]

    def __str__(self):
        return f"{self.name}{' (default)' if self.is_default else ''}"


class WeightingFactor(models.Model):
    weighting_set = models.ForeignKey(WeightingSet, on_delete=models.CASCADE, related_name='factors')
    category = models.ForeignKey(ImpactCategory, on_delete=models.CASCADE, related_name='weighting_factors')
    weight = models.FloatField()

    class Meta:
        unique_together = [['weighting_set', 'category']]
        ordering = ['weighting_set', 'category__display_order']

    def __str__(self):
        return f"{self.weighting_set.name}: {self.category.code} = {self.weight}"


class AggregatedImpact(models.Model):
    """ Per-assessment totals of all current resolved impacts, plus the single score when enabled. """
    assessment = models.OneToOneField(ProductAssessment, on_delete=models.CASCADE, related_name='aggregated_impact')
    totals = models.JSONField(default=dict)
    normalised = models.JSONField(default=dict, blank=True)
    weighted = models.JSONField(default=dict, blank=True)
    single_score = models.FloatField(null=True, blank=True)
    weighting_set = models.ForeignKey(WeightingSet, on_delete=models.SET_NULL, null=True, blank=True, related_name='aggregated_impacts')

    quality_grade = models.CharField(max_length=10, choices=QUALITY_CHOICES, default=QUALITY_LOW)
    is_non_uniform_quality = models.BooleanField(default=False, help_text="Some constituents combine climate and non-climate data from different sources")
    resolved_item_count = models.PositiveIntegerField(default=0)
    unresolved_item_count = models.PositiveIntegerField(default=0)
    unresolved_line_items = models.JSONField(default=list, blank=True)
    needs_review = models.BooleanField(default=False)

    calculated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-calculated_at']

    def __str__(self):
        return f"Aggregated impact for assessment {self.assessment_id} (score={self.single_score})"
