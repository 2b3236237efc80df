"""
High-level operations that can be used by views, tasks, and management commands.

This module provides testable functions that encapsulate the queue's
business logic, so it can be exercised without going through Django views
or management commands.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone as dt_timezone
import shutil
import time

from django.utils import timezone

from uploads.models import TaskRecord
from uploads.queue import task_queue
from uploads.service.config import (
    get_processing_config,
    get_stuck_minutes,
    get_tmp_max_age_minutes,
)
from uploads.service.storage import StorageRelocator


def submit_upload(stream, payload=None, requested_type=None, wait=False,
                  poll_interval=1.0, logger=None):
    """
    Submit an upload for processing.

    This is the core operation used by:
    - Web POST /tasks/ endpoint
    - Management command: ./manage.py submit

    Args:
        stream: readable binary stream of the upload
        payload: dict describing the Item to create (post_id, caption, description)
        requested_type: 'auto', 'image', 'video', 'gif' or None
        wait: If True, process in this process and block until the task is
            DONE or FAILED. If False, enqueue the background worker.
        poll_interval: seconds between status checks while waiting
        logger: Optional callable(message) for logging

    Returns:
        TaskRecord

    Raises:
        UnrecognizedType, UnsupportedType: upload rejected, no task created
    """
    def log(message):
        if logger:
            logger(message)

    task = task_queue.submit(payload or {}, stream, type_hint=requested_type, schedule=not wait)
    log(f'Created task: {task.id} ({task.source_mime_type} as {task.target_type})')

    if not wait:
        log('Enqueued background task')
        return task

    log('Processing synchronously...')
    task_queue.advance()
    task.refresh_from_db()

    # Another worker may own the gate; wait for it to reach our task
    while not task.is_terminal:
        time.sleep(poll_interval)
        task_queue.advance()
        task.refresh_from_db()

    log(f'Task {task.id} finished: {task.status}')
    return task


def get_task(task_id):
    return TaskRecord.objects.select_related('created_item').get(pk=task_id)


def list_tasks(status=None, limit=50, offset=0):
    """
    Tasks newest first, optionally filtered by status.

    Returns:
        list[TaskRecord]
    """
    tasks = TaskRecord.objects.select_related('created_item').order_by('-created_at')
    if status:
        tasks = tasks.filter(status=status)
    return list(tasks[offset:offset + limit])


def queue_position(task):
    """
    Number of QUEUED tasks that will run before this one.

    Returns:
        int, or None when the task is not QUEUED
    """
    if task.status != TaskRecord.STATUS_QUEUED:
        return None
    return TaskRecord.objects.filter(
        status=TaskRecord.STATUS_QUEUED, created_at__lt=task.created_at
    ).count()


def retry_task(task_id, logger=None):
    """Queue a fresh run of a failed task. Returns the new TaskRecord."""
    task = task_queue.retry(task_id)
    if logger:
        logger(f'Task {task_id} retried as {task.id}')
    return task


def cancel_task(task_id, logger=None):
    """Cancel a queued or running task. Returns the updated TaskRecord."""
    task = task_queue.cancel(task_id)
    if logger:
        logger(f'Task {task.id} cancel requested ({task.status})')
    return task


@dataclass
class CleanupReport:
    """What cleanup_expired() found (and removed unless dry_run)"""
    stuck_tasks: list = field(default_factory=list)
    scratch_dirs: list = field(default_factory=list)
    queue_files: list = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self):
        return {
            'stuck_tasks': list(self.stuck_tasks),
            'scratch_dirs': [str(p) for p in self.scratch_dirs],
            'queue_files': [str(p) for p in self.queue_files],
            'dry_run': self.dry_run,
        }


def _file_age(path, now):
    mtime = path.stat().st_mtime
    return now - datetime.fromtimestamp(mtime, tz=dt_timezone.utc)


def cleanup_expired(max_age_minutes=None, stuck_minutes=None, dry_run=False, logger=None):
    """
    Expire temporary state left behind by failed or interrupted work.

    - PROCESSING tasks not updated for `stuck_minutes` become FAILED.
    - Scratch directories (tmp/tmp-{id}) and queued uploads (queue/{id})
      older than `max_age_minutes` are deleted unless their task is still
      QUEUED or PROCESSING. Uploads kept for retry of FAILED tasks expire
      here too.

    Args:
        max_age_minutes: defaults to MEDIAQUEUE_TMP_MAX_AGE_MINUTES
        stuck_minutes: defaults to MEDIAQUEUE_STUCK_MINUTES
        dry_run: only report what would be done
        logger: Optional callable(message) for logging

    Returns:
        CleanupReport
    """
    def log(message):
        if logger:
            logger(message)

    if max_age_minutes is None:
        max_age_minutes = get_tmp_max_age_minutes()
    if stuck_minutes is None:
        stuck_minutes = get_stuck_minutes()

    report = CleanupReport(dry_run=dry_run)
    now = timezone.now()

    if dry_run:
        cutoff = now - timedelta(minutes=stuck_minutes)
        report.stuck_tasks = list(
            TaskRecord.objects.filter(
                status=TaskRecord.STATUS_PROCESSING, updated_at__lt=cutoff
            ).values_list('id', flat=True)
        )
    else:
        report.stuck_tasks = [task.id for task in task_queue.fail_stuck(stuck_minutes)]
    for task_id in report.stuck_tasks:
        log(f'Stuck task: {task_id}')

    relocator = StorageRelocator(get_processing_config())
    live = set(
        TaskRecord.objects.filter(status__in=TaskRecord.ACTIVE_STATUSES).values_list('id', flat=True)
    )
    max_age = timedelta(minutes=max_age_minutes)

    scratch_root = relocator.config.directory('tmp')
    if scratch_root.exists():
        for path in sorted(scratch_root.glob('tmp-*')):
            task_id = path.name[len('tmp-'):]
            if path.is_dir() and task_id not in live and _file_age(path, now) > max_age:
                report.scratch_dirs.append(path)

    queue_root = relocator.config.directory('queue')
    if queue_root.exists():
        for path in sorted(queue_root.iterdir()):
            if path.is_file() and path.name not in live and _file_age(path, now) > max_age:
                report.queue_files.append(path)

    for path in report.scratch_dirs + report.queue_files:
        if dry_run:
            log(f'Would delete: {path}')
            continue
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
        log(f'Deleted: {path}')

    return report
