import logging

from django.contrib import admin, messages

from .exceptions import ImpactEngineError
from .models import (
    AggregatedImpact, AllocationRecord, CalculationSnapshot, Facility, FacilityEnergyInput,
    FacilityPeriodTotals, GHGEmissionFactor, ImpactCategory, MaterialCategoryRule,
    MaterialLineItem, MaterialProxy, Organization, OrganizationMaterialOverride, Product,
    ProductAssessment, ProductionMixEntry, RecalculationBatch, RecalculationJob,
    ResolvedImpact, WeightingFactor, WeightingSet,
)
from .services.allocation import recalculate_allocation
from .services.recalculation import cancel_batch, enqueue_recalculation

logger = logging.getLogger(__name__)


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ('name', 'created_at')
    search_fields = ('name',)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ('name', 'organization', 'sku', 'functional_unit')
    list_filter = ('organization',)
    search_fields = ('name', 'sku')


@admin.register(Facility)
class FacilityAdmin(admin.ModelAdmin):
    list_display = ('name', 'organization', 'country_code', 'is_contract_manufacturer')
    list_filter = ('is_contract_manufacturer', 'country_code')
    search_fields = ('name',)


class MaterialLineItemInline(admin.TabularInline):
    model = MaterialLineItem
    fields = ('name', 'category', 'quantity', 'unit', 'supplier_product', 'superseded_at')
    readonly_fields = ('superseded_at',)
    extra = 0


@admin.register(ProductAssessment)
class ProductAssessmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'product', 'status', 'is_mix_complete', 'recalculation_status', 'recalculation_attempts', 'updated_at')
    list_filter = ('status', 'recalculation_status', 'is_mix_complete')
    search_fields = ('product__name',)
    readonly_fields = ('recalculation_status', 'recalculation_requested_at', 'recalculation_error', 'recalculation_attempts', 'finalised_at')
    inlines = [MaterialLineItemInline]
    actions = ['enqueue_selected']

    @admin.action(description="Enqueue recalculation for selected assessments")
    def enqueue_selected(self, request, queryset):
        batch = enqueue_recalculation(
            list(queryset.values_list('pk', flat=True)),
            {'name': f"Admin recalculation by {request.user.get_username()}", 'triggered_by': request.user.get_username(), 'trigger_reason': 'admin action'},
        )
        self.message_user(request, f"Batch {batch.pk} created with {batch.total_jobs} job(s)")


@admin.register(MaterialLineItem)
class MaterialLineItemAdmin(admin.ModelAdmin):
    list_display = ('name', 'assessment', 'category', 'quantity', 'unit', 'superseded_at')
    list_filter = ('category',)
    search_fields = ('name',)


@admin.register(ResolvedImpact)
class ResolvedImpactAdmin(admin.ModelAdmin):
    list_display = ('line_item', 'status', 'provenance', 'match_type', 'confidence', 'quality_rating', 'is_hybrid', 'is_current', 'resolved_at')
    list_filter = ('status', 'provenance', 'is_hybrid', 'is_current', 'quality_rating')
    search_fields = ('line_item__name', 'source_reference')

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(OrganizationMaterialOverride)
class OrganizationMaterialOverrideAdmin(admin.ModelAdmin):
    list_display = ('name', 'organization', 'unit', 'geography', 'updated_at')
    list_filter = ('organization',)
    search_fields = ('name', 'normalized_name')


@admin.register(MaterialProxy)
class MaterialProxyAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'geography', 'data_quality_score', 'source', 'is_active')
    list_filter = ('category', 'geography', 'is_active')
    search_fields = ('name', 'source')


@admin.register(GHGEmissionFactor)
class GHGEmissionFactorAdmin(admin.ModelAdmin):
    list_display = ('name', 'category', 'sub_category', 'activity_unit', 'region', 'year', 'value', 'factor_unit', 'proxy_category')
    list_filter = ('year', 'category', 'region')
    search_fields = ('name', 'sub_category', 'source')
    ordering = ('-year', 'category', 'sub_category')

    fieldsets = (
        ('Identification', {
            'fields': ('name', 'source', 'source_url')
        }),
        ('Classification', {
            'fields': ('category', 'sub_category', 'scope', 'region', 'year')
        }),
        ('Factor Value', {
            'fields': ('value', 'factor_unit', 'activity_unit')
        }),
        ('Hybrid resolution', {
            'fields': ('proxy_category',)
        }),
    )

    def has_delete_permission(self, request, obj=None):
        # Only superusers can delete factors
        return request.user.is_superuser


@admin.register(MaterialCategoryRule)
class MaterialCategoryRuleAdmin(admin.ModelAdmin):
    list_display = ('pattern', 'category', 'priority', 'version', 'is_active')
    list_filter = ('version', 'category', 'is_active')
    search_fields = ('pattern',)


class FacilityEnergyInputInline(admin.TabularInline):
    model = FacilityEnergyInput
    extra = 0


@admin.register(FacilityPeriodTotals)
class FacilityPeriodTotalsAdmin(admin.ModelAdmin):
    list_display = ('facility', 'reporting_period_start', 'reporting_period_end', 'total_production_volume', 'total_emissions', 'entry_method', 'locked_at')
    list_filter = ('entry_method', 'facility')
    inlines = [FacilityEnergyInputInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.is_locked:
            return [field.name for field in obj._meta.fields]
        return ('locked_at',)


class CalculationSnapshotInline(admin.TabularInline):
    model = CalculationSnapshot
    fields = ('formula_version', 'inputs', 'outputs', 'created_at')
    readonly_fields = fields
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(AllocationRecord)
class AllocationRecordAdmin(admin.ModelAdmin):
    list_display = ('product', 'facility', 'reporting_period_start', 'reporting_period_end', 'attribution_ratio', 'allocated_emissions', 'status', 'locked_at')
    list_filter = ('status', 'facility', 'is_energy_intensive_process')
    search_fields = ('product__name', 'facility__name')
    readonly_fields = (
        'attribution_ratio', 'allocated_emissions', 'scope1_emissions', 'scope2_emissions', 'scope3_emissions',
        'uses_default_scope_split', 'allocated_water', 'allocated_waste', 'emission_intensity_per_unit',
        'calculation_metadata', 'calculated_at', 'locked_at',
    )
    inlines = [CalculationSnapshotInline]
    actions = ['recalculate_selected']

    @admin.action(description="Recalculate selected allocations")
    def recalculate_selected(self, request, queryset):
        for record in queryset:
            try:
                recalculate_allocation(record)
            except ImpactEngineError as e:
                self.message_user(request, f"Allocation {record.pk}: {e}", level=messages.ERROR)


@admin.register(ProductionMixEntry)
class ProductionMixEntryAdmin(admin.ModelAdmin):
    list_display = ('product', 'facility', 'share', 'updated_at')
    list_filter = ('facility',)


@admin.register(ImpactCategory)
class ImpactCategoryAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'impact_key', 'unit', 'normalisation_value', 'display_order')
    ordering = ('display_order',)


class WeightingFactorInline(admin.TabularInline):
    model = WeightingFactor
    extra = 0


@admin.register(WeightingSet)
class WeightingSetAdmin(admin.ModelAdmin):
    list_display = ('name', 'version', 'organization', 'is_default', 'created_at')
    list_filter = ('is_default',)
    inlines = [WeightingFactorInline]


@admin.register(AggregatedImpact)
class AggregatedImpactAdmin(admin.ModelAdmin):
    list_display = ('assessment', 'single_score', 'quality_grade', 'is_non_uniform_quality', 'unresolved_item_count', 'needs_review', 'calculated_at')
    list_filter = ('quality_grade', 'needs_review', 'is_non_uniform_quality')

    def has_change_permission(self, request, obj=None):
        return False


class RecalculationJobInline(admin.TabularInline):
    model = RecalculationJob
    fields = ('assessment', 'status', 'attempt_count', 'max_attempts', 'next_retry_at', 'last_error')
    readonly_fields = fields
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(RecalculationBatch)
class RecalculationBatchAdmin(admin.ModelAdmin):
    list_display = ('name', 'status', 'total_jobs', 'completed_jobs', 'failed_jobs', 'completion_percentage', 'created_at')
    list_filter = ('status',)
    readonly_fields = ('total_jobs', 'completed_jobs', 'failed_jobs', 'error_summary', 'processing_started_at', 'processing_completed_at')
    inlines = [RecalculationJobInline]
    actions = ['cancel_selected']

    @admin.action(description="Cancel selected batches")
    def cancel_selected(self, request, queryset):
        for batch in queryset:
            cancel_batch(batch)


@admin.register(RecalculationJob)
class RecalculationJobAdmin(admin.ModelAdmin):
    list_display = ('id', 'batch', 'assessment', 'status', 'priority', 'attempt_count', 'max_attempts', 'next_retry_at')
    list_filter = ('status', 'batch')

    def has_change_permission(self, request, obj=None):
        # Terminal jobs are immutable
        if obj is not None and obj.is_terminal:
            return False
        return super().has_change_permission(request, obj)
