from django.test import TestCase

from impact_engine.constants import COMMUTING, ENERGY, MANUFACTURING_MATERIAL, TRANSPORT, WASTE
from impact_engine.models import MaterialCategoryRule
from impact_engine.services.categories import (
    CategoryRule, DEFAULT_CATEGORY_RULES, classify_material, install_default_rules, load_category_rules,
)

from .helpers import add_line_item, create_assessment, create_organization, create_product


class BuiltInCategoryRulesTest(TestCase):
    """Classification with the built-in rule table"""

    def test_known_categories(self):
        """Test that typical names land in the expected category"""
        self.assertEqual(classify_material("UK Grid Electricity"), ENERGY)
        self.assertEqual(classify_material("Natural gas boiler"), ENERGY)
        self.assertEqual(classify_material("HGV freight, rigid"), TRANSPORT)
        self.assertEqual(classify_material("Employee commuting"), COMMUTING)
        self.assertEqual(classify_material("General waste to landfill"), WASTE)

    def test_priority_decides_between_matches(self):
        """Test that an energy pattern wins over a transport pattern in the same name"""
        self.assertEqual(classify_material("Diesel for HGV delivery"), ENERGY)

    def test_unmatched_name_defaults_to_manufacturing_material(self):
        """Test that names matching no rule are manufacturing materials"""
        self.assertEqual(classify_material("Organic Wheat Flour"), MANUFACTURING_MATERIAL)
        self.assertEqual(classify_material(""), MANUFACTURING_MATERIAL)

    def test_matching_ignores_case_and_spacing(self):
        self.assertEqual(classify_material("  GRID   electricity "), ENERGY)

    def test_explicit_rules(self):
        """Test that a caller-supplied table replaces the built-in one"""
        rules = [CategoryRule('flour', WASTE, 1), CategoryRule('organic', TRANSPORT, 5)]
        self.assertEqual(classify_material("Organic Wheat Flour", rules=rules), TRANSPORT)


class StoredCategoryRulesTest(TestCase):
    """Classification with rules stored in the database"""

    def test_newest_version_replaces_built_in_table(self):
        """Test that stored rules of the newest version are used instead of the built-in table"""
        MaterialCategoryRule.objects.create(pattern='steam', category=ENERGY, priority=10, version='2024.1')
        MaterialCategoryRule.objects.create(pattern='steam', category=WASTE, priority=10, version='2026.1')

        self.assertEqual(classify_material("Process steam"), WASTE)
        self.assertEqual([rule.pattern for rule in load_category_rules('2024.1')], ['steam'])

    def test_inactive_rules_are_ignored(self):
        MaterialCategoryRule.objects.create(pattern='steam', category=ENERGY, priority=10, version='2026.1', is_active=False)
        self.assertEqual(classify_material("Process steam"), MANUFACTURING_MATERIAL)
        self.assertEqual(len(load_category_rules()), len(DEFAULT_CATEGORY_RULES))

    def test_install_default_rules_is_idempotent(self):
        """Test that installing the built-in table twice does not duplicate rows"""
        created = install_default_rules('2025.1')
        self.assertEqual(created, len(DEFAULT_CATEGORY_RULES))
        self.assertEqual(install_default_rules('2025.1'), 0)
        self.assertEqual(MaterialCategoryRule.objects.filter(version='2025.1').count(), len(DEFAULT_CATEGORY_RULES))
        self.assertEqual(classify_material("UK Grid Electricity"), ENERGY)

    def test_line_item_category_is_classified_on_save(self):
        """Test that a line item saved without a category gets one from its name"""
        product = create_product(create_organization())
        assessment = create_assessment(product)
        line_item = add_line_item(assessment, "UK Grid Electricity", 100, unit='kWh', category='')
        self.assertEqual(line_item.category, ENERGY)

        explicit = add_line_item(assessment, "UK Grid Electricity", 100, unit='kWh', category=WASTE)
        self.assertEqual(explicit.category, WASTE)
