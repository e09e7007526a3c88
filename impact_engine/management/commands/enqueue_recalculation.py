from django.core.management.base import BaseCommand, CommandError

from impact_engine.exceptions import ImpactEngineError
from impact_engine.models import Organization
from impact_engine.services.recalculation import SELECTORS, enqueue_recalculation


class Command(BaseCommand):
    help = 'Creates a recalculation batch for the selected assessments'

    def add_arguments(self, parser):
        parser.add_argument('--selector', choices=sorted(SELECTORS), default='missing_single_score')
        parser.add_argument('--assessment', type=int, action='append', dest='assessment_ids', help='Explicit assessment id (repeatable)')
        parser.add_argument('--organization', type=int, default=None)
        parser.add_argument('--name', default=None)
        parser.add_argument('--reason', default='', help='Trigger reason recorded on the batch')
        parser.add_argument('--priority', type=int, default=None)

    def handle(self, *args, **options):
        organization = None
        if options['organization']:
            organization = Organization.objects.filter(pk=options['organization']).first()
            if organization is None:
                raise CommandError(f"Organization {options['organization']} does not exist")

        selector = options['assessment_ids'] or options['selector']
        try:
            batch = enqueue_recalculation(
                selector,
                {
                    'name': options['name'],
                    'trigger_reason': options['reason'],
                    'triggered_by': 'manage.py',
                    'priority': options['priority'],
                },
                organization=organization,
            )
        except ImpactEngineError as e:
            raise CommandError(str(e))
        self.stdout.write(self.style.SUCCESS(f"Batch {batch.pk} '{batch.name}' created with {batch.total_jobs} job(s)"))
