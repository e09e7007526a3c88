from rest_framework import serializers

from ..models import (
    AggregatedImpact, MaterialLineItem, Organization, Product,
    ProductAssessment, ResolvedImpact,
)


class OrganizationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = ['id', 'name', 'created_at']
        read_only_fields = ['created_at']


class ProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = Product
        fields = ['id', 'organization', 'name', 'sku', 'functional_unit', 'created_at']
        read_only_fields = ['created_at']


class ResolvedImpactSerializer(serializers.ModelSerializer):
    needs_review = serializers.BooleanField(read_only=True)

    class Meta:
        model = ResolvedImpact
        fields = [
            'id', 'line_item', 'is_current', 'status', 'needs_review', 'provenance', 'match_type',
            'source_reference', 'confidence', 'geography', 'quality_rating', 'impacts',
            'quantity', 'base_unit', 'is_hybrid', 'climate_source', 'climate_reference',
            'non_climate_source', 'non_climate_reference', 'resolved_at',
        ]
        read_only_fields = fields


class MaterialLineItemSerializer(serializers.ModelSerializer):
    current_impact = ResolvedImpactSerializer(read_only=True)

    class Meta:
        model = MaterialLineItem
        fields = [
            'id', 'assessment', 'name', 'category', 'quantity', 'unit', 'supplier_product',
            'superseded_at', 'current_impact', 'created_at', 'updated_at',
        ]
        read_only_fields = ['superseded_at', 'created_at', 'updated_at']
        extra_kwargs = {'category': {'required': False}}

    def validate_quantity(self, value):
        if value < 0:
            raise serializers.ValidationError("Quantity must not be negative")
        return value

    def validate(self, data):
        assessment = data.get('assessment') or getattr(self.instance, 'assessment', None)
        if assessment is not None and assessment.is_finalised:
            raise serializers.ValidationError("Line items of a finalised assessment cannot be changed; supersede them instead")
        return data


class AggregatedImpactSerializer(serializers.ModelSerializer):
    class Meta:
        model = AggregatedImpact
        fields = [
            'id', 'assessment', 'totals', 'normalised', 'weighted', 'single_score',
            'weighting_set', 'quality_grade', 'is_non_uniform_quality',
            'resolved_item_count', 'unresolved_item_count', 'unresolved_line_items',
            'needs_review', 'calculated_at',
        ]
        read_only_fields = fields


class ProductAssessmentSerializer(serializers.ModelSerializer):
    aggregated_impact = AggregatedImpactSerializer(read_only=True)

    class Meta:
        model = ProductAssessment
        fields = [
            'id', 'product', 'status', 'reference_year', 'region', 'weighting_set',
            'is_mix_complete', 'finalised_at', 'recalculation_status',
            'recalculation_requested_at', 'recalculation_error', 'recalculation_attempts',
            'aggregated_impact', 'created_at', 'updated_at',
        ]
        read_only_fields = [
            'status', 'is_mix_complete', 'finalised_at', 'recalculation_status',
            'recalculation_requested_at', 'recalculation_error', 'recalculation_attempts',
            'created_at', 'updated_at',
        ]
