import logging

from django.db import models
from django.db.models import Q
from django.utils import timezone

from ..constants import (
    MATERIAL_CATEGORY_CHOICES, PROVENANCE_CHOICES, PROVENANCE_NONE,
    QUALITY_CHOICES, QUALITY_LOW,
)
from ..exceptions import LockedRecordError
from .organizations import Product

logger = logging.getLogger(__name__)


class ProductAssessment(models.Model):
    """ One life-cycle assessment of a product; owns the bill of materials. """
    STATUS_DRAFT = 'draft'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_ARCHIVED = 'archived'
    STATUS_CHOICES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_ARCHIVED, 'Archived'),
    ]
    FINALISED_STATUSES = (STATUS_COMPLETED, STATUS_ARCHIVED)

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='assessments')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT, db_index=True)
    reference_year = models.PositiveIntegerField(null=True, blank=True, help_text="Year used for reference factor lookup")
    region = models.CharField(max_length=100, blank=True, help_text="Region used for reference factor lookup (e.g., UK, ALL)")
    weighting_set = models.ForeignKey(
        'impact_engine.WeightingSet', on_delete=models.SET_NULL, null=True, blank=True,
        related_name='assessments',
        help_text="Weighting set for the single score; the default set is used when empty"
    )
    is_mix_complete = models.BooleanField(default=False)
    finalised_at = models.DateTimeField(null=True, blank=True)

    # Mirror of the most recent recalculation job
    recalculation_status = models.CharField(max_length=20, blank=True)
    recalculation_requested_at = models.DateTimeField(null=True, blank=True)
    recalculation_error = models.TextField(blank=True)
    recalculation_attempts = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Assessment {self.pk} - {self.product.name} ({self.status})"

    @property
    def organization(self):
        return self.product.organization

    @property
    def is_finalised(self):
        return self.status in self.FINALISED_STATUSES


class MaterialLineItemQuerySet(models.QuerySet):
    def active(self):
        return self.filter(superseded_at__isnull=True)


class MaterialLineItem(models.Model):
    """ A bill-of-materials entry: a named material or energy input with a quantity. """
    assessment = models.ForeignKey(ProductAssessment, on_delete=models.CASCADE, related_name='line_items')
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=30, choices=MATERIAL_CATEGORY_CHOICES, blank=True, help_text="Classified from the name when left blank")
    quantity = models.DecimalField(max_digits=18, decimal_places=6)
    unit = models.CharField(max_length=20, default='kg')
    supplier_product = models.ForeignKey(
        Product, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='supplied_line_items',
        help_text="Supplier product whose verified assessment can answer this line item"
    )
    superseded_at = models.DateTimeField(null=True, blank=True)
    superseded_by = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='supersedes')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = MaterialLineItemQuerySet.as_manager()

    class Meta:
        ordering = ['assessment', 'pk']

    def __str__(self):
        return f"{self.name}: {self.quantity} {self.unit}"

    def save(self, *args, **kwargs):
        if not self.category:
            from ..services.categories import classify_material
            self.category = classify_material(self.name)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.assessment.is_finalised:
            raise LockedRecordError(
                f"Line item {self.pk} belongs to finalised assessment {self.assessment_id}; supersede it instead"
            )
        return super().delete(*args, **kwargs)

    def supersede(self, replacement=None):
        """ Retire this line item without deleting it. """
        self.superseded_at = timezone.now()
        self.superseded_by = replacement
        self.save(update_fields=['superseded_at', 'superseded_by', 'updated_at'])
        logger.info(f"Line item {self.pk} superseded by {getattr(replacement, 'pk', None)}")

    @property
    def current_impact(self):
        """ The current ResolvedImpact, or None when the item was never resolved. """
        prefetched = getattr(self, 'current_impacts', None)
        if prefetched is not None:
            return prefetched[0] if prefetched else None
        return self.resolved_impacts.filter(is_current=True).first()


class ResolvedImpact(models.Model):
    """
    Output of the resolver for one line item.

    `impacts` holds values per base unit (kg, litre, kWh...) of the line item. Only one
    record per line item is current; earlier ones are kept for history.
    """
    STATUS_RESOLVED = 'resolved'
    STATUS_UNRESOLVED = 'unresolved'
    STATUS_CHOICES = [
        (STATUS_RESOLVED, 'Resolved'),
        (STATUS_UNRESOLVED, 'Unresolved (needs review)'),
    ]

    line_item = models.ForeignKey(
        MaterialLineItem, on_delete=models.CASCADE, related_name='resolved_impacts',
        null=True, blank=True
    )
    is_current = models.BooleanField(default=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_RESOLVED)

    provenance = models.CharField(max_length=30, choices=PROVENANCE_CHOICES, default=PROVENANCE_NONE)
    match_type = models.CharField(max_length=20, blank=True, help_text="exact, substring, category or supplier")
    source_reference = models.TextField(blank=True)
    confidence = models.PositiveSmallIntegerField(default=0)
    geography = models.CharField(max_length=50, blank=True)
    quality_rating = models.CharField(max_length=10, choices=QUALITY_CHOICES, default=QUALITY_LOW)

    impacts = models.JSONField(default=dict, blank=True)
    quantity = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True, help_text="Quantity in the base unit at resolution time")
    base_unit = models.CharField(max_length=20, blank=True)

    # Hybrid resolution keeps both contributing sources
    is_hybrid = models.BooleanField(default=False)
    climate_source = models.CharField(max_length=255, blank=True)
    climate_reference = models.TextField(blank=True)
    non_climate_source = models.CharField(max_length=255, blank=True)
    non_climate_reference = models.TextField(blank=True)

    resolved_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-resolved_at', '-pk']
        constraints = [
            models.UniqueConstraint(
                fields=['line_item'], condition=Q(is_current=True),
                name='unique_current_resolved_impact'
            ),
        ]

    def __str__(self):
        return f"{self.get_provenance_display()} ({self.confidence}) for line item {self.line_item_id}"

    @property
    def needs_review(self):
        return self.status == self.STATUS_UNRESOLVED
