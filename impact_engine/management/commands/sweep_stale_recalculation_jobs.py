from django.core.management.base import BaseCommand

from impact_engine.services.recalculation import sweep_stale_jobs


class Command(BaseCommand):
    help = 'Resets recalculation jobs stuck in processing after a worker crash'

    def add_arguments(self, parser):
        parser.add_argument('--timeout-minutes', type=int, default=None, help='Processing age after which a job is stale (default: STALE_JOB_TIMEOUT_MINUTES)')

    def handle(self, *args, **options):
        stats = sweep_stale_jobs(options['timeout_minutes'])
        self.stdout.write(self.style.SUCCESS(f"Sweep finished: {stats['reset']} reset, {stats['failed']} failed"))
