from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from impact_engine.fixtures.reference_data import (
    DEFAULT_WEIGHTING_SET_NAME, DEFAULT_WEIGHTING_SET_VERSION,
    EF31_CATEGORIES, SAMPLE_EMISSION_FACTORS, SAMPLE_PROXIES,
)
from impact_engine.models import GHGEmissionFactor, ImpactCategory, MaterialProxy, WeightingFactor, WeightingSet
from impact_engine.services.categories import install_default_rules


class Command(BaseCommand):
    help = 'Loads EF 3.1 impact categories, the default weighting set and the built-in category rules'

    def add_arguments(self, parser):
        parser.add_argument('--with-sample-factors', action='store_true', help="Also load demonstration emission factors and their proxies")
        parser.add_argument('--rules-version', default=None, help='Version tag for the category rules (default: CATEGORY_RULES_VERSION)')

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Loading reference data...')

        categories = self.load_impact_categories()
        weighting_set = self.load_default_weighting_set(categories)
        created_rules = install_default_rules(options['rules_version'])
        self.stdout.write(f"Category rules: {created_rules} created")

        if options['with_sample_factors']:
            self.load_sample_factors()

        self.stdout.write(self.style.SUCCESS(
            f"Completed! {len(categories)} impact categories, weighting set '{weighting_set.name}' "
            f"with {weighting_set.factors.count()} factors"
        ))

    def load_impact_categories(self):
        categories = {}
        for order, (code, name, impact_key, unit, normalisation, _) in enumerate(EF31_CATEGORIES, start=1):
            category, created = ImpactCategory.objects.update_or_create(
                code=code,
                defaults={
                    'name': name,
                    'impact_key': impact_key,
                    'unit': unit,
                    'normalisation_value': normalisation,
                    'display_order': order,
                }
            )
            categories[code] = category
            self.stdout.write(f"{'Created' if created else 'Updated'} impact category: {code}")
        return categories

    def load_default_weighting_set(self, categories):
        weighting_set = WeightingSet.objects.filter(name=DEFAULT_WEIGHTING_SET_NAME).first()
        if weighting_set is None:
            has_default = WeightingSet.objects.filter(is_default=True).exists()
            weighting_set = WeightingSet.objects.create(
                name=DEFAULT_WEIGHTING_SET_NAME,
                version=DEFAULT_WEIGHTING_SET_VERSION,
                description="Environmental Footprint 3.1 default weighting factors",
                is_default=not has_default,
            )
        for code, _, _, _, _, weight in EF31_CATEGORIES:
            WeightingFactor.objects.update_or_create(
                weighting_set=weighting_set,
                category=categories[code],
                defaults={'weight': weight},
            )
        return weighting_set

    def load_sample_factors(self):
        for data in SAMPLE_EMISSION_FACTORS:
            data = dict(data)
            factor, created = GHGEmissionFactor.objects.update_or_create(
                year=data.pop('year'),
                category=data.pop('category'),
                sub_category=data.pop('sub_category'),
                activity_unit=data.pop('activity_unit'),
                region=data.pop('region'),
                scope=data.pop('scope'),
                defaults=dict(data, value=Decimal(data['value'])),
            )
            self.stdout.write(f"{'Created' if created else 'Updated'} factor: {factor.name}")

        for data in SAMPLE_PROXIES:
            data = dict(data)
            proxy, created = MaterialProxy.objects.update_or_create(
                name=data.pop('name'),
                category=data.pop('category'),
                defaults=dict(data, data_quality_score=Decimal(data['data_quality_score'])),
            )
            self.stdout.write(f"{'Created' if created else 'Updated'} proxy: {proxy.name}")
