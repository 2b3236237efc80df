"""
Management command to submit a local file to the upload queue.

Without --wait the task is handed to the huey worker; with --wait it is
processed in the foreground and the command exits when it is DONE or FAILED.
"""

import json
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from uploads.errors import ClassificationError
from uploads.operations import submit_upload
from uploads.views import task_data


class Command(BaseCommand):
    help = 'Submit a media file for processing'

    def add_arguments(self, parser):
        parser.add_argument('path', type=str, help='File to submit')
        parser.add_argument(
            '--type',
            type=str,
            choices=['auto', 'image', 'video', 'gif'],
            default='auto',
            help='Target type (default: auto)',
        )
        parser.add_argument(
            '--payload',
            type=str,
            default='{}',
            help='JSON object describing the item to create, e.g. \'{"caption": "hi"}\'',
        )
        parser.add_argument('--wait', action='store_true', help='Process in the foreground')
        parser.add_argument('--json', action='store_true', help='JSON output')

    def handle(self, *args, **options):
        path = Path(options['path'])
        json_output = options['json']

        if not path.is_file():
            raise CommandError(f'File not found: {path}')

        try:
            payload = json.loads(options['payload'])
        except json.JSONDecodeError as e:
            raise CommandError(f'Invalid --payload: {e}')
        if not isinstance(payload, dict):
            raise CommandError('--payload must be a JSON object')

        def log(message):
            if not json_output:
                self.stdout.write(message)

        try:
            with open(path, 'rb') as f:
                task = submit_upload(
                    f,
                    payload=payload,
                    requested_type=options['type'],
                    wait=options['wait'],
                    logger=log,
                )
        except ClassificationError as e:
            raise CommandError(e.as_note())

        if json_output:
            self.stdout.write(json.dumps(task_data(task), indent=2))
            return

        if task.status == task.STATUS_DONE:
            self.stdout.write(self.style.SUCCESS(f'✓ Created item {task.created_result_id}'))
        elif task.status == task.STATUS_FAILED:
            self.stdout.write(self.style.ERROR(f'✗ Task failed: {task.notes}'))
        else:
            self.stdout.write(self.style.SUCCESS(f'✓ Queued task {task.id}'))
