from dateutil.relativedelta import relativedelta
from rest_framework import serializers

from ..models import (
    AllocationRecord, CalculationSnapshot, Facility, FacilityEnergyInput,
    FacilityPeriodTotals, ProductionMixEntry,
)


class FacilitySerializer(serializers.ModelSerializer):
    class Meta:
        model = Facility
        fields = ['id', 'organization', 'name', 'country_code', 'is_contract_manufacturer', 'created_at']
        read_only_fields = ['created_at']


class FacilityEnergyInputSerializer(serializers.ModelSerializer):
    calculated_emissions = serializers.DecimalField(max_digits=24, decimal_places=6, read_only=True)

    class Meta:
        model = FacilityEnergyInput
        fields = [
            'id', 'period_totals', 'fuel_type', 'consumption_value', 'consumption_unit',
            'emission_factor', 'emission_factor_year', 'emission_factor_source', 'scope',
            'calculated_emissions',
        ]

    def validate(self, data):
        totals = data.get('period_totals') or getattr(self.instance, 'period_totals', None)
        if totals is not None and totals.is_locked:
            raise serializers.ValidationError("These facility totals are locked for allocation")
        return data


class FacilityPeriodTotalsSerializer(serializers.ModelSerializer):
    energy_inputs = FacilityEnergyInputSerializer(many=True, read_only=True)

    class Meta:
        model = FacilityPeriodTotals
        fields = [
            'id', 'facility', 'reporting_period_start', 'reporting_period_end',
            'total_production_volume', 'volume_unit', 'total_emissions',
            'scope1_emissions', 'scope2_emissions', 'scope3_emissions',
            'total_water', 'total_waste', 'entry_method', 'locked_at',
            'energy_inputs', 'created_at', 'updated_at',
        ]
        read_only_fields = ['locked_at', 'created_at', 'updated_at']
        extra_kwargs = {'reporting_period_end': {'required': False}}

    def validate(self, data):
        if self.instance is not None and self.instance.is_locked:
            raise serializers.ValidationError("These facility totals are locked for allocation")
        if self.instance is None and data.get('reporting_period_start') and not data.get('reporting_period_end'):
            # Annual reporting unless told otherwise
            data['reporting_period_end'] = data['reporting_period_start'] + relativedelta(years=1)
        start = data.get('reporting_period_start', getattr(self.instance, 'reporting_period_start', None))
        end = data.get('reporting_period_end', getattr(self.instance, 'reporting_period_end', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'reporting_period_end': "Reporting period end must be after its start"})
        volume = data.get('total_production_volume')
        if volume is not None and volume <= 0:
            raise serializers.ValidationError({'total_production_volume': "Total production volume must be positive"})
        return data


class CalculationSnapshotSerializer(serializers.ModelSerializer):
    class Meta:
        model = CalculationSnapshot
        fields = ['id', 'formula_version', 'formula', 'inputs', 'outputs', 'assumptions', 'created_at']
        read_only_fields = fields


class AllocationRecordSerializer(serializers.ModelSerializer):
    snapshots = CalculationSnapshotSerializer(many=True, read_only=True)

    class Meta:
        model = AllocationRecord
        fields = [
            'id', 'product', 'facility', 'period_totals', 'reporting_period_start', 'reporting_period_end',
            'client_production_volume', 'attribution_ratio', 'allocated_emissions',
            'scope1_emissions', 'scope2_emissions', 'scope3_emissions', 'uses_default_scope_split',
            'allocated_water', 'allocated_waste', 'emission_intensity_per_unit',
            'status', 'is_energy_intensive_process', 'locked_at', 'calculation_metadata',
            'calculated_at', 'snapshots', 'created_at', 'updated_at',
        ]
        read_only_fields = [f for f in fields if f not in ('product', 'period_totals', 'client_production_volume', 'is_energy_intensive_process')]


class AllocationCreateSerializer(serializers.Serializer):
    product = serializers.IntegerField()
    period_totals = serializers.IntegerField()
    client_production_volume = serializers.DecimalField(max_digits=20, decimal_places=6)
    is_energy_intensive_process = serializers.BooleanField(required=False, default=False)


class AllocationTransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=AllocationRecord.STATUS_CHOICES)
    rollback = serializers.BooleanField(required=False, default=False)


class ProductionMixEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = ProductionMixEntry
        fields = ['id', 'product', 'facility', 'share', 'updated_at']
        read_only_fields = ['updated_at']
