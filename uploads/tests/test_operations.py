"""
Tests for uploads/operations.py
"""
from datetime import timedelta
from unittest.mock import patch
import io
import os
import time

from django.utils import timezone

from uploads.models import TaskRecord
from uploads.operations import (
    cleanup_expired,
    get_task,
    list_tasks,
    queue_position,
    submit_upload,
)
from uploads.tests.base import StorageTestCase, make_image_bytes


def age(path, minutes):
    """Set a file's mtime `minutes` into the past"""
    past = time.time() - minutes * 60
    os.utime(path, (past, past))


class SubmitUploadOperationTest(StorageTestCase):

    def setUp(self):
        super().setUp()
        self.process_queue_patcher = patch('uploads.tasks.process_queue')
        self.mock_process_queue = self.process_queue_patcher.start()
        self.addCleanup(self.process_queue_patcher.stop)

    def test_enqueues_worker(self):
        task = submit_upload(io.BytesIO(make_image_bytes()), payload={'caption': 'x'})

        self.assertEqual(task.status, TaskRecord.STATUS_QUEUED)
        self.mock_process_queue.assert_called_once_with()

    def test_runs_synchronously(self):
        messages = []
        task = submit_upload(io.BytesIO(make_image_bytes()), wait=True, logger=messages.append)

        self.assertEqual(task.status, TaskRecord.STATUS_DONE)
        self.assertIsNotNone(task.created_result_id)
        self.mock_process_queue.assert_not_called()
        self.assertIn(f'Task {task.id} finished: DONE', messages)

    def test_requested_type_is_case_insensitive(self):
        data = make_image_bytes(16, 16, fmt='GIF', mode='P', color=1)
        task = submit_upload(io.BytesIO(data), requested_type='video')
        self.assertEqual(task.requested_type, 'VIDEO')
        self.assertEqual(task.target_type, 'VIDEO')


class QueryOperationTest(StorageTestCase):

    def setUp(self):
        super().setUp()
        queue = self.make_queue()
        self.tasks = [queue.submit({}, io.BytesIO(make_image_bytes(20, 20))) for _ in range(3)]

    def test_queue_position(self):
        self.assertEqual([queue_position(t) for t in self.tasks], [0, 1, 2])

    def test_queue_position_of_non_queued_task(self):
        TaskRecord.objects.filter(pk=self.tasks[0].pk).update(status=TaskRecord.STATUS_PROCESSING)
        first = get_task(self.tasks[0].id)
        self.assertIsNone(queue_position(first))
        self.assertEqual(queue_position(get_task(self.tasks[1].id)), 0)

    def test_list_tasks(self):
        self.assertEqual([t.id for t in list_tasks()], [t.id for t in reversed(self.tasks)])
        self.assertEqual([t.id for t in list_tasks(limit=1, offset=1)], [self.tasks[1].id])
        self.assertEqual(list_tasks(status=TaskRecord.STATUS_DONE), [])


@patch('uploads.tasks.process_queue')
class CleanupExpiredTest(StorageTestCase):

    def setUp(self):
        super().setUp()
        for name in ('tmp', 'queue'):
            (self.storage_dir / name).mkdir(parents=True, exist_ok=True)

        # Abandoned scratch dir and upload, no task
        self.old_scratch = self.storage_dir / 'tmp' / 'tmp-gone'
        self.old_scratch.mkdir()
        (self.old_scratch / 'processing.log').write_text('[..] === PROCESSING ===\n')
        age(self.old_scratch, 120)

        self.old_upload = self.storage_dir / 'queue' / 'gone'
        self.old_upload.write_bytes(b'data')
        age(self.old_upload, 120)

        # Recent upload, kept
        self.new_upload = self.storage_dir / 'queue' / 'recent'
        self.new_upload.write_bytes(b'data')

        # Old upload that still belongs to a queued task, kept
        self.queued = TaskRecord.objects.create(
            source_extension='jpg', source_mime_type='image/jpeg', source_kind='image'
        )
        self.queued_upload = self.storage_dir / 'queue' / self.queued.id
        self.queued_upload.write_bytes(b'data')
        age(self.queued_upload, 120)

        self.stuck = TaskRecord.objects.create(
            status=TaskRecord.STATUS_PROCESSING,
            source_extension='jpg', source_mime_type='image/jpeg', source_kind='image',
        )
        TaskRecord.objects.filter(pk=self.stuck.pk).update(
            updated_at=timezone.now() - timedelta(minutes=90)
        )

    def test_cleanup(self, mock_process_queue):
        report = cleanup_expired(max_age_minutes=60, stuck_minutes=30)

        self.assertEqual(report.stuck_tasks, [self.stuck.id])
        self.assertEqual(report.scratch_dirs, [self.old_scratch])
        self.assertEqual(report.queue_files, [self.old_upload])

        self.assertFalse(self.old_scratch.exists())
        self.assertFalse(self.old_upload.exists())
        self.assertTrue(self.new_upload.exists())
        self.assertTrue(self.queued_upload.exists())

        self.stuck.refresh_from_db()
        self.assertEqual(self.stuck.status, TaskRecord.STATUS_FAILED)

    def test_dry_run_changes_nothing(self, mock_process_queue):
        report = cleanup_expired(max_age_minutes=60, stuck_minutes=30, dry_run=True)

        self.assertEqual(report.stuck_tasks, [self.stuck.id])
        self.assertEqual(len(report.scratch_dirs) + len(report.queue_files), 2)
        self.assertTrue(self.old_scratch.exists())
        self.assertTrue(self.old_upload.exists())
        self.stuck.refresh_from_db()
        self.assertEqual(self.stuck.status, TaskRecord.STATUS_PROCESSING)

    def test_report_as_dict(self, mock_process_queue):
        data = cleanup_expired(max_age_minutes=60, stuck_minutes=30, dry_run=True).as_dict()
        self.assertTrue(data['dry_run'])
        self.assertEqual(data['queue_files'], [str(self.old_upload)])
