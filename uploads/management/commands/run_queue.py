"""
Management command to start the queue worker.

Recovers orphaned tasks first, then runs the huey consumer. A recovery
failure aborts startup.
"""
from django.core.management import call_command
from django.core.management.base import BaseCommand


class Command(BaseCommand):
    help = 'Recover orphaned tasks, then start the huey consumer'

    def add_arguments(self, parser):
        parser.add_argument(
            '--skip-recovery',
            action='store_true',
            help='Start the consumer without failing leftover tasks',
        )

    def handle(self, *args, **options):
        if not options['skip_recovery']:
            call_command('recover_tasks', stdout=self.stdout, stderr=self.stderr)

        self.stdout.write('Starting huey consumer...')
        call_command('run_huey')
