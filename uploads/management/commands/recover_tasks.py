"""
Management command to fail tasks orphaned by a previous process.

Run before starting a worker when the previous one did not shut down
cleanly. run_queue does this automatically.
"""
from django.core.management.base import BaseCommand, CommandError

from uploads.queue import task_queue


class Command(BaseCommand):
    help = 'Mark QUEUED and PROCESSING tasks from a previous run as FAILED'

    def handle(self, *args, **options):
        try:
            orphans = task_queue.recover()
        except Exception as e:
            raise CommandError(f'Crash recovery failed: {e}')

        if not orphans:
            self.stdout.write(self.style.SUCCESS('No orphaned tasks found'))
            return

        for task in orphans:
            self.stdout.write(f'  {task.id}: {task.notes}')
        self.stdout.write(self.style.SUCCESS(
            f"✓ Recovered {len(orphans)} orphaned task{'s' if len(orphans) != 1 else ''}"
        ))
