"""
Management command to expire abandoned upload state.

Fails tasks stuck in PROCESSING and removes tmp-{id} scratch directories
and queued uploads that no live task owns.
"""
from django.core.management.base import BaseCommand

from uploads.operations import cleanup_expired
from uploads.service.config import get_stuck_minutes, get_tmp_max_age_minutes


class Command(BaseCommand):
    help = 'Fail stuck tasks and clean up abandoned scratch directories and queued uploads'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )
        parser.add_argument(
            '--force',
            action='store_true',
            help='Delete without confirmation'
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=None,
            help='Maximum age in minutes before a file is considered abandoned '
                 '(default: MEDIAQUEUE_TMP_MAX_AGE_MINUTES)'
        )
        parser.add_argument(
            '--stuck-minutes',
            type=int,
            default=None,
            help='Minutes in PROCESSING before a task is considered stuck '
                 '(default: MEDIAQUEUE_STUCK_MINUTES)'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        force = options['force']
        max_age = options['max_age'] if options['max_age'] is not None else get_tmp_max_age_minutes()
        stuck_minutes = options['stuck_minutes']
        if stuck_minutes is None:
            stuck_minutes = get_stuck_minutes()

        found = cleanup_expired(max_age_minutes=max_age, stuck_minutes=stuck_minutes, dry_run=True)
        total = len(found.stuck_tasks) + len(found.scratch_dirs) + len(found.queue_files)

        if not total:
            self.stdout.write(self.style.SUCCESS(
                f'Nothing to clean up (max age {max_age} minutes, stuck after {stuck_minutes} minutes)'
            ))
            return

        self.stdout.write(f"\n{'=' * 80}")
        for task_id in found.stuck_tasks:
            self.stdout.write(f'stuck   | {task_id}')
        for path in found.scratch_dirs:
            self.stdout.write(f'scratch | {path.name}')
        for path in found.queue_files:
            self.stdout.write(f'queued  | {path.name}')
        self.stdout.write(f"{'=' * 80}\n")

        if dry_run:
            self.stdout.write(self.style.WARNING(f'\nDRY RUN: Would clean up {total} entries'))
            self.stdout.write('Run without --dry-run to actually delete')
            return

        # Confirm deletion
        if not force:
            response = input(f'\nClean up these {total} entries? [y/N]: ')
            if response.lower() != 'y':
                self.stdout.write('Cancelled')
                return

        report = cleanup_expired(
            max_age_minutes=max_age,
            stuck_minutes=stuck_minutes,
            logger=lambda message: self.stdout.write(f'  {message}'),
        )
        self.stdout.write(self.style.SUCCESS(
            f'\n✓ Failed {len(report.stuck_tasks)} stuck tasks, '
            f'deleted {len(report.scratch_dirs)} scratch directories '
            f'and {len(report.queue_files)} queued uploads'
        ))
