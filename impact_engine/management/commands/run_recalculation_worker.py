from django.core.management.base import BaseCommand

from impact_engine.services.recalculation import run_worker


class Command(BaseCommand):
    help = 'Runs a recalculation worker that claims and processes queued jobs'

    def add_arguments(self, parser):
        parser.add_argument('--max-jobs', type=int, default=None, help='Stop after this many jobs')
        parser.add_argument('--idle-sleep', type=float, default=5.0, help='Seconds to wait when the queue is empty')
        parser.add_argument('--once', action='store_true', help='Exit as soon as the queue is empty')

    def handle(self, *args, **options):
        self.stdout.write('Starting recalculation worker...')
        try:
            stats = run_worker(
                max_jobs=options['max_jobs'],
                idle_sleep=options['idle_sleep'],
                stop_when_idle=options['once'],
                stdout=self.stdout if options['verbosity'] > 1 else None,
            )
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('Worker interrupted'))
            return
        self.stdout.write(self.style.SUCCESS(
            f"Worker finished: {stats['processed']} processed, {stats['succeeded']} succeeded, {stats['failed']} failed, {stats['lost']} lost"
        ))
