import decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


MATERIAL_CATEGORY_CHOICES = [
    ('energy', 'Energy'),
    ('transport', 'Transport'),
    ('commuting', 'Commuting'),
    ('waste', 'Waste'),
    ('manufacturing_material', 'Manufacturing material'),
]

QUALITY_CHOICES = [('high', 'High'), ('medium', 'Medium'), ('low', 'Low')]

JOB_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('processing', 'Processing'),
    ('completed', 'Completed'),
    ('failed', 'Failed'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Organization',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Facility',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('country_code', models.CharField(blank=True, max_length=10)),
                ('is_contract_manufacturer', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('organization', models.ForeignKey(help_text='Operator of the facility', on_delete=django.db.models.deletion.CASCADE, related_name='facilities', to='impact_engine.organization')),
            ],
            options={
                'verbose_name_plural': 'Facilities',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('sku', models.CharField(blank=True, max_length=100)),
                ('functional_unit', models.CharField(default='unit', help_text='Unit one assessment result refers to (e.g., unit, kg, litre)', max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='products', to='impact_engine.organization')),
            ],
            options={
                'ordering': ['organization', 'name'],
                'unique_together': {('organization', 'name')},
            },
        ),
        migrations.CreateModel(
            name='ImpactCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='Short code (e.g., CC, WU)', max_length=20, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('impact_key', models.CharField(help_text='Key in the impact vectors (e.g., climate_change)', max_length=50, unique=True)),
                ('unit', models.CharField(blank=True, max_length=50)),
                ('normalisation_value', models.FloatField(blank=True, help_text='Annual per-capita reference; categories without one are left out of the single score', null=True)),
                ('display_order', models.PositiveIntegerField(default=0)),
            ],
            options={
                'verbose_name_plural': 'Impact categories',
                'ordering': ['display_order', 'code'],
            },
        ),
        migrations.CreateModel(
            name='WeightingSet',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, unique=True)),
                ('description', models.TextField(blank=True)),
                ('version', models.CharField(blank=True, max_length=20)),
                ('is_default', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('organization', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='weighting_sets', to='impact_engine.organization')),
            ],
            options={
                'ordering': ['-is_default', 'name'],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_default', True)), fields=('is_default',), name='single_default_weighting_set')],
            },
        ),
        migrations.CreateModel(
            name='WeightingFactor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('weight', models.FloatField()),
                ('category', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='weighting_factors', to='impact_engine.impactcategory')),
                ('weighting_set', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='factors', to='impact_engine.weightingset')),
            ],
            options={
                'ordering': ['weighting_set', 'category__display_order'],
                'unique_together': {('weighting_set', 'category')},
            },
        ),
        migrations.CreateModel(
            name='ProductAssessment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('in_progress', 'In progress'), ('completed', 'Completed'), ('archived', 'Archived')], db_index=True, default='draft', max_length=20)),
                ('reference_year', models.PositiveIntegerField(blank=True, help_text='Year used for reference factor lookup', null=True)),
                ('region', models.CharField(blank=True, help_text='Region used for reference factor lookup (e.g., UK, ALL)', max_length=100)),
                ('is_mix_complete', models.BooleanField(default=False)),
                ('finalised_at', models.DateTimeField(blank=True, null=True)),
                ('recalculation_status', models.CharField(blank=True, max_length=20)),
                ('recalculation_requested_at', models.DateTimeField(blank=True, null=True)),
                ('recalculation_error', models.TextField(blank=True)),
                ('recalculation_attempts', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assessments', to='impact_engine.product')),
                ('weighting_set', models.ForeignKey(blank=True, help_text='Weighting set for the single score; the default set is used when empty', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='assessments', to='impact_engine.weightingset')),
            ],
            options={
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='MaterialLineItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('category', models.CharField(blank=True, choices=MATERIAL_CATEGORY_CHOICES, help_text='Classified from the name when left blank', max_length=30)),
                ('quantity', models.DecimalField(decimal_places=6, max_digits=18)),
                ('unit', models.CharField(default='kg', max_length=20)),
                ('superseded_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('assessment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='impact_engine.productassessment')),
                ('superseded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='supersedes', to='impact_engine.materiallineitem')),
                ('supplier_product', models.ForeignKey(blank=True, help_text='Supplier product whose verified assessment can answer this line item', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='supplied_line_items', to='impact_engine.product')),
            ],
            options={
                'ordering': ['assessment', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='ResolvedImpact',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('is_current', models.BooleanField(default=True)),
                ('status', models.CharField(choices=[('resolved', 'Resolved'), ('unresolved', 'Unresolved (needs review)')], default='resolved', max_length=20)),
                ('provenance', models.CharField(choices=[('verified_supplier', 'Verified supplier'), ('organisation_override', 'Organisation override'), ('industry_proxy', 'Industry proxy'), ('hybrid', 'Hybrid'), ('none', 'None (unresolved)')], default='none', max_length=30)),
                ('match_type', models.CharField(blank=True, help_text='exact, substring, category or supplier', max_length=20)),
                ('source_reference', models.TextField(blank=True)),
                ('confidence', models.PositiveSmallIntegerField(default=0)),
                ('geography', models.CharField(blank=True, max_length=50)),
                ('quality_rating', models.CharField(choices=QUALITY_CHOICES, default='low', max_length=10)),
                ('impacts', models.JSONField(blank=True, default=dict)),
                ('quantity', models.DecimalField(blank=True, decimal_places=6, help_text='Quantity in the base unit at resolution time', max_digits=18, null=True)),
                ('base_unit', models.CharField(blank=True, max_length=20)),
                ('is_hybrid', models.BooleanField(default=False)),
                ('climate_source', models.CharField(blank=True, max_length=255)),
                ('climate_reference', models.TextField(blank=True)),
                ('non_climate_source', models.CharField(blank=True, max_length=255)),
                ('non_climate_reference', models.TextField(blank=True)),
                ('resolved_at', models.DateTimeField(auto_now_add=True)),
                ('line_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name='resolved_impacts', to='impact_engine.materiallineitem')),
            ],
            options={
                'ordering': ['-resolved_at', '-pk'],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_current', True)), fields=('line_item',), name='unique_current_resolved_impact')],
            },
        ),
        migrations.CreateModel(
            name='AggregatedImpact',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('totals', models.JSONField(default=dict)),
                ('normalised', models.JSONField(blank=True, default=dict)),
                ('weighted', models.JSONField(blank=True, default=dict)),
                ('single_score', models.FloatField(blank=True, null=True)),
                ('quality_grade', models.CharField(choices=QUALITY_CHOICES, default='low', max_length=10)),
                ('is_non_uniform_quality', models.BooleanField(default=False, help_text='Some constituents combine climate and non-climate data from different sources')),
                ('resolved_item_count', models.PositiveIntegerField(default=0)),
                ('unresolved_item_count', models.PositiveIntegerField(default=0)),
                ('unresolved_line_items', models.JSONField(blank=True, default=list)),
                ('needs_review', models.BooleanField(default=False)),
                ('calculated_at', models.DateTimeField(auto_now=True)),
                ('assessment', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='aggregated_impact', to='impact_engine.productassessment')),
                ('weighting_set', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='aggregated_impacts', to='impact_engine.weightingset')),
            ],
            options={
                'ordering': ['-calculated_at'],
            },
        ),
        migrations.CreateModel(
            name='OrganizationMaterialOverride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('normalized_name', models.CharField(db_index=True, editable=False, max_length=255)),
                ('unit', models.CharField(default='kg', help_text='Base unit the impact values refer to', max_length=20)),
                ('impacts', models.JSONField(default=dict, help_text='Impact values per unit, keyed by impact category')),
                ('geography', models.CharField(blank=True, max_length=50)),
                ('source_reference', models.TextField(blank=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('organization', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='material_overrides', to='impact_engine.organization')),
            ],
            options={
                'ordering': ['organization', 'name'],
                'unique_together': {('organization', 'normalized_name')},
            },
        ),
        migrations.CreateModel(
            name='MaterialProxy',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('normalized_name', models.CharField(db_index=True, editable=False, max_length=255)),
                ('category', models.CharField(blank=True, db_index=True, help_text='Proxy family; reference factors point at it for non-climate data', max_length=100)),
                ('unit', models.CharField(default='kg', max_length=20)),
                ('geography', models.CharField(blank=True, max_length=50)),
                ('data_quality_score', models.DecimalField(decimal_places=2, default=3, help_text='Declared data quality, 1 (poor) to 5 (excellent)', max_digits=3, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ('impacts', models.JSONField(default=dict)),
                ('source', models.CharField(blank=True, help_text='Database and version (e.g., Ecoinvent 3.10)', max_length=255)),
                ('is_active', models.BooleanField(default=True)),
            ],
            options={
                'verbose_name_plural': 'Material proxies',
                'ordering': ['-data_quality_score', 'name'],
            },
        ),
        migrations.CreateModel(
            name='GHGEmissionFactor',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Descriptive name (e.g., Grid Electricity - UK - DEFRA 2024)', max_length=255)),
                ('source', models.CharField(blank=True, help_text='Source document name (e.g., DEFRA, EPA)', max_length=255)),
                ('source_url', models.URLField(blank=True, max_length=500, null=True)),
                ('year', models.PositiveIntegerField(db_index=True, help_text='Applicable year for the factor')),
                ('category', models.CharField(choices=MATERIAL_CATEGORY_CHOICES, db_index=True, max_length=30)),
                ('sub_category', models.CharField(db_index=True, help_text='Activity matched against material names (e.g., Grid Electricity, Diesel)', max_length=255)),
                ('activity_unit', models.CharField(help_text='Unit of the activity data this factor applies to (e.g., kWh, litres, km)', max_length=50)),
                ('value', models.DecimalField(decimal_places=7, max_digits=15)),
                ('factor_unit', models.CharField(help_text='Unit of the factor (e.g., kgCO2e/kWh)', max_length=50)),
                ('region', models.CharField(blank=True, db_index=True, help_text='Geographic applicability (e.g., UK, ALL)', max_length=100, null=True)),
                ('scope', models.CharField(blank=True, db_index=True, max_length=10)),
                ('proxy_category', models.CharField(blank=True, help_text='MaterialProxy category supplying non-climate data', max_length=100)),
            ],
            options={
                'verbose_name': 'GHG Emission Factor',
                'verbose_name_plural': 'GHG Emission Factors',
                'ordering': ['-year', 'category', 'sub_category', 'region'],
                'unique_together': {('year', 'category', 'sub_category', 'activity_unit', 'region', 'scope')},
            },
        ),
        migrations.CreateModel(
            name='MaterialCategoryRule',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('pattern', models.CharField(help_text='Case-insensitive substring of the material name', max_length=100)),
                ('category', models.CharField(choices=MATERIAL_CATEGORY_CHOICES, max_length=30)),
                ('priority', models.IntegerField(default=0, help_text='Higher priority rules are tried first')),
                ('version', models.CharField(db_index=True, max_length=20)),
                ('is_active', models.BooleanField(default=True)),
                ('description', models.CharField(blank=True, max_length=255)),
            ],
            options={
                'ordering': ['version', '-priority', 'pattern'],
                'unique_together': {('version', 'pattern')},
            },
        ),
        migrations.CreateModel(
            name='FacilityPeriodTotals',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reporting_period_start', models.DateField()),
                ('reporting_period_end', models.DateField()),
                ('total_production_volume', models.DecimalField(decimal_places=6, max_digits=20)),
                ('volume_unit', models.CharField(default='units', max_length=20)),
                ('total_emissions', models.DecimalField(decimal_places=6, help_text='kg CO2e', max_digits=20)),
                ('scope1_emissions', models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ('scope2_emissions', models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ('scope3_emissions', models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ('total_water', models.DecimalField(blank=True, decimal_places=6, help_text='m3', max_digits=20, null=True)),
                ('total_waste', models.DecimalField(blank=True, decimal_places=6, help_text='kg', max_digits=20, null=True)),
                ('entry_method', models.CharField(choices=[('direct', 'Entered directly'), ('calculated_from_energy', 'Calculated from energy inputs')], default='direct', max_length=30)),
                ('locked_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('facility', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='period_totals', to='impact_engine.facility')),
            ],
            options={
                'verbose_name_plural': 'Facility period totals',
                'ordering': ['facility', '-reporting_period_start'],
            },
        ),
        migrations.CreateModel(
            name='FacilityEnergyInput',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('fuel_type', models.CharField(max_length=100)),
                ('consumption_value', models.DecimalField(decimal_places=6, max_digits=20)),
                ('consumption_unit', models.CharField(max_length=20)),
                ('emission_factor', models.DecimalField(decimal_places=7, help_text='kg CO2e per consumption unit', max_digits=15)),
                ('emission_factor_year', models.PositiveIntegerField(blank=True, null=True)),
                ('emission_factor_source', models.CharField(blank=True, max_length=255)),
                ('scope', models.CharField(choices=[('1', 'Scope 1'), ('2', 'Scope 2')], default='1', max_length=1)),
                ('period_totals', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='energy_inputs', to='impact_engine.facilityperiodtotals')),
            ],
            options={
                'ordering': ['period_totals', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='AllocationRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reporting_period_start', models.DateField()),
                ('reporting_period_end', models.DateField()),
                ('client_production_volume', models.DecimalField(decimal_places=6, max_digits=20)),
                ('attribution_ratio', models.DecimalField(decimal_places=10, default=decimal.Decimal('0'), max_digits=12)),
                ('allocated_emissions', models.DecimalField(decimal_places=6, default=decimal.Decimal('0'), max_digits=20)),
                ('scope1_emissions', models.DecimalField(decimal_places=6, default=decimal.Decimal('0'), max_digits=20)),
                ('scope2_emissions', models.DecimalField(decimal_places=6, default=decimal.Decimal('0'), max_digits=20)),
                ('scope3_emissions', models.DecimalField(decimal_places=6, default=decimal.Decimal('0'), max_digits=20)),
                ('uses_default_scope_split', models.BooleanField(default=False)),
                ('allocated_water', models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ('allocated_waste', models.DecimalField(blank=True, decimal_places=6, max_digits=20, null=True)),
                ('emission_intensity_per_unit', models.DecimalField(decimal_places=10, default=decimal.Decimal('0'), max_digits=20)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('provisional', 'Provisional'), ('verified', 'Verified'), ('approved', 'Approved')], db_index=True, default='draft', max_length=20)),
                ('is_energy_intensive_process', models.BooleanField(default=False)),
                ('locked_at', models.DateTimeField(blank=True, null=True)),
                ('calculation_metadata', models.JSONField(blank=True, default=dict)),
                ('calculated_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('facility', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allocations', to='impact_engine.facility')),
                ('period_totals', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='allocations', to='impact_engine.facilityperiodtotals')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='allocations', to='impact_engine.product')),
            ],
            options={
                'ordering': ['product', 'facility', '-reporting_period_start'],
                'indexes': [models.Index(fields=['product', 'facility', 'reporting_period_start'], name='allocation_product_period_idx')],
            },
        ),
        migrations.CreateModel(
            name='CalculationSnapshot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('formula_version', models.CharField(max_length=50)),
                ('formula', models.CharField(max_length=255)),
                ('inputs', models.JSONField(default=dict)),
                ('outputs', models.JSONField(default=dict)),
                ('assumptions', models.JSONField(blank=True, default=list)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('allocation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='snapshots', to='impact_engine.allocationrecord')),
            ],
            options={
                'ordering': ['allocation', 'created_at', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='ProductionMixEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('share', models.DecimalField(decimal_places=6, max_digits=7, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0')), django.core.validators.MaxValueValidator(decimal.Decimal('1'))])),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('facility', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='production_mix_entries', to='impact_engine.facility')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='production_mix', to='impact_engine.product')),
            ],
            options={
                'verbose_name_plural': 'Production mix entries',
                'ordering': ['product', 'facility'],
                'unique_together': {('product', 'facility')},
            },
        ),
        migrations.CreateModel(
            name='RecalculationBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True)),
                ('selector', models.CharField(blank=True, help_text='Selection rule used to pick the assessments', max_length=100)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed'), ('cancelled', 'Cancelled')], db_index=True, default='pending', max_length=20)),
                ('priority', models.PositiveSmallIntegerField(default=5)),
                ('total_jobs', models.PositiveIntegerField(default=0)),
                ('completed_jobs', models.PositiveIntegerField(default=0)),
                ('failed_jobs', models.PositiveIntegerField(default=0)),
                ('error_summary', models.JSONField(blank=True, default=list)),
                ('triggered_by', models.CharField(blank=True, max_length=150)),
                ('trigger_reason', models.CharField(blank=True, max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('processing_started_at', models.DateTimeField(blank=True, null=True)),
                ('processing_completed_at', models.DateTimeField(blank=True, null=True)),
                ('organization', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recalculation_batches', to='impact_engine.organization')),
            ],
            options={
                'verbose_name_plural': 'Recalculation batches',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='RecalculationJob',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('status', models.CharField(choices=JOB_STATUS_CHOICES, default='pending', max_length=20)),
                ('priority', models.PositiveSmallIntegerField(default=5)),
                ('attempt_count', models.PositiveIntegerField(default=0)),
                ('max_attempts', models.PositiveIntegerField(default=3)),
                ('last_error', models.TextField(blank=True)),
                ('error_details', models.JSONField(blank=True, default=dict)),
                ('next_retry_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('processing_started_at', models.DateTimeField(blank=True, null=True)),
                ('processing_completed_at', models.DateTimeField(blank=True, null=True)),
                ('assessment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='recalculation_jobs', to='impact_engine.productassessment')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='jobs', to='impact_engine.recalculationbatch')),
            ],
            options={
                'ordering': ['-priority', 'created_at', 'pk'],
                'indexes': [models.Index(fields=['status', 'next_retry_at'], name='recalc_job_claim_idx')],
                'unique_together': {('batch', 'assessment')},
            },
        ),
    ]
