from rest_framework import serializers

from ..constants import MATERIAL_CATEGORY_CHOICES
from ..models import (
    GHGEmissionFactor, ImpactCategory, MaterialCategoryRule, MaterialProxy,
    OrganizationMaterialOverride, WeightingFactor, WeightingSet,
)


def _validate_impact_vector(value):
    if not isinstance(value, dict):
        raise serializers.ValidationError("Impacts must be an object of category -> value")
    for key, number in value.items():
        if not isinstance(number, (int, float)) or isinstance(number, bool):
            raise serializers.ValidationError(f"Impact '{key}' must be numeric")
    return value


class OrganizationMaterialOverrideSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrganizationMaterialOverride
        fields = ['id', 'organization', 'name', 'normalized_name', 'unit', 'impacts', 'geography', 'source_reference', 'updated_at']
        read_only_fields = ['normalized_name', 'updated_at']

    def validate_impacts(self, value):
        return _validate_impact_vector(value)


class MaterialProxySerializer(serializers.ModelSerializer):
    class Meta:
        model = MaterialProxy
        fields = ['id', 'name', 'normalized_name', 'category', 'unit', 'geography', 'data_quality_score', 'impacts', 'source', 'is_active']
        read_only_fields = ['normalized_name']

    def validate_impacts(self, value):
        return _validate_impact_vector(value)


class GHGEmissionFactorSerializer(serializers.ModelSerializer):
    class Meta:
        model = GHGEmissionFactor
        fields = [
            'id', 'name', 'source', 'source_url', 'year', 'category',
            'sub_category', 'activity_unit', 'value', 'factor_unit',
            'region', 'scope', 'proxy_category'
        ]

    def validate_value(self, value):
        """Validate that the emission factor value is positive"""
        if value <= 0:
            raise serializers.ValidationError("Emission factor value must be positive")
        return value

    def validate_year(self, value):
        if value < 2000 or value > 2100:
            raise serializers.ValidationError("Year must be between 2000 and 2100")
        return value


class MaterialCategoryRuleSerializer(serializers.ModelSerializer):
    class Meta:
        model = MaterialCategoryRule
        fields = ['id', 'pattern', 'category', 'priority', 'version', 'is_active', 'description']


class ImpactCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ImpactCategory
        fields = ['id', 'code', 'name', 'impact_key', 'unit', 'normalisation_value', 'display_order']


class WeightingFactorSerializer(serializers.ModelSerializer):
    category_code = serializers.CharField(source='category.code', read_only=True)

    class Meta:
        model = WeightingFactor
        fields = ['id', 'weighting_set', 'category', 'category_code', 'weight']

    def validate_weight(self, value):
        if value < 0:
            raise serializers.ValidationError("Weights must not be negative")
        return value


class WeightingSetSerializer(serializers.ModelSerializer):
    factors = WeightingFactorSerializer(many=True, read_only=True)

    class Meta:
        model = WeightingSet
        fields = ['id', 'name', 'description', 'version', 'organization', 'is_default', 'factors', 'created_at']
        read_only_fields = ['created_at']


class ResolveRequestSerializer(serializers.Serializer):
    """ Ad-hoc resolution request; nothing is persisted. """
    material_name = serializers.CharField(max_length=255)
    category = serializers.ChoiceField(choices=MATERIAL_CATEGORY_CHOICES, required=False, allow_blank=True)
    quantity = serializers.DecimalField(max_digits=18, decimal_places=6, required=False, default=1)
    unit = serializers.CharField(max_length=20, required=False, default='kg')
    organization = serializers.IntegerField(required=False, allow_null=True)
    region = serializers.CharField(max_length=100, required=False, allow_blank=True)
    year = serializers.IntegerField(required=False, allow_null=True)

    def validate_quantity(self, value):
        if value < 0:
            raise serializers.ValidationError("Quantity must not be negative")
        return value
