"""
The upload task queue.

Admission, the single-concurrency gate, the run step for one task, crash
recovery, retry and cancel. Processing is strictly serialized: the gate is
held only while deciding what runs next (a status check, a pop and a status
flip), never while a pipeline runs, so submissions never wait on an encode.

Task lifecycle:
    QUEUED -> PROCESSING -> DONE | FAILED

DONE and FAILED are terminal. Terminal writes are conditional updates on
status=PROCESSING, so a record that already reached a terminal state is
never rewritten.
"""
from datetime import datetime, timedelta
import logging
import os
import shutil
import threading
import time

from django.db import OperationalError, transaction
from django.utils import timezone

from uploads.domain import get_domain_store
from uploads.errors import (
    InvalidMedia,
    InvalidTransition,
    MediaQueueError,
    OrphanedByRestart,
)
from uploads.models import TaskRecord, generate_nanoid
from uploads.progress_tracker import EVENT_CHANGED, EVENT_CREATED, TaskEvent, reporter
from uploads.service.classify import classify_stream
from uploads.service.config import get_processing_config
from uploads.service.engine import process_upload, resolve_target_type
from uploads.service.storage import StorageRelocator

logger = logging.getLogger(__name__)

# Seconds between database checks for a cancel request while a task runs
CANCEL_POLL_SECONDS = 1.0

CANCELLED_NOTE = 'Cancelled before processing'
STUCK_NOTE = 'Marked as failed after being stuck in PROCESSING for more than {minutes} minutes'


def write_log(log_path, message):
    """Append message to log file with timestamp"""
    if log_path:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        with open(log_path, 'a') as f:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
            f.write(f'[{timestamp}] {message}\n')


def error_note(error):
    if isinstance(error, MediaQueueError):
        return error.as_note()
    return f'{type(error).__name__}: {error}'


class RunState:
    """
    Progress and cancellation for the task being run.

    Lives on the thread that owns the task; every database write for the
    task happens here.
    """

    def __init__(self, task_queue, task):
        self.task_queue = task_queue
        self.task = task
        self.cancelled = False
        self._last_check = time.monotonic()

    def update(self, percent):
        value = max(0, min(100, int(percent)))
        if value <= self.task.progress:
            return
        self.task.progress = value
        TaskRecord.objects.filter(
            pk=self.task.pk, status=TaskRecord.STATUS_PROCESSING
        ).update(progress=value, updated_at=timezone.now())
        self.task_queue.publish(self.task)

    def should_cancel(self):
        if self.cancelled:
            return True
        now = time.monotonic()
        if now - self._last_check < CANCEL_POLL_SECONDS:
            return False
        self._last_check = now
        # A cancel request, or the record leaving PROCESSING behind our back
        self.cancelled = not TaskRecord.objects.filter(
            pk=self.task.pk,
            status=TaskRecord.STATUS_PROCESSING,
            cancel_requested=False,
        ).exists()
        return self.cancelled


class TaskQueue:
    """
    Serialized processing of uploaded media.

    Args:
        config: ProcessingConfig, read from settings on each use when None
        store: domain store with materialize()/rollback()
        progress: ProgressReporter receiving task events
        dispatch: callable that schedules advance(); defaults to the huey task
        engine: pipeline entry point, defaults to process_upload
    """

    def __init__(self, config=None, store=None, progress=None, dispatch=None, engine=None):
        self._gate = threading.Lock()
        self._config = config
        self._store = store
        self._dispatch = dispatch
        self.progress = progress or reporter
        self.engine = engine or process_upload

    @property
    def config(self):
        return self._config or get_processing_config()

    @property
    def store(self):
        return self._store or get_domain_store()

    def publish(self, task, kind=EVENT_CHANGED):
        self.progress.publish(TaskEvent.for_task(task, kind))

    def dispatch(self):
        """Ask the worker to advance the queue"""
        if self._dispatch is not None:
            self._dispatch()
            return
        from uploads.tasks import process_queue
        process_queue()

    # Admission

    def submit(self, payload, stream, type_hint=None, schedule=True):
        """
        Admit an upload.

        The type is sniffed before anything is written, so rejected uploads
        never produce a record. The upload is staged to queue/{id} before
        the record exists, so a claimed task always has its file.

        Args:
            payload: dict describing the domain object to create
            stream: readable binary stream of the upload
            type_hint: 'AUTO', 'IMAGE', 'VIDEO', 'GIF' or None
            schedule: dispatch the worker after admission

        Returns:
            TaskRecord in QUEUED

        Raises:
            UnrecognizedType, UnsupportedType: the upload was rejected
            ValueError: unknown type hint
        """
        requested_type = (type_hint or TaskRecord.REQUESTED_TYPE_AUTO).upper()
        if requested_type not in dict(TaskRecord.REQUESTED_TYPE_CHOICES):
            raise ValueError(f'Unknown type hint: {type_hint}')

        typed = classify_stream(stream)
        file_type = typed.file_type
        target_type = resolve_target_type(file_type.kind, file_type.is_gif, requested_type)

        task_id = generate_nanoid()
        relocator = StorageRelocator(self.config)
        path = relocator.stage_upload(task_id, typed)
        try:
            task = TaskRecord.objects.create(
                id=task_id,
                status=TaskRecord.STATUS_QUEUED,
                source_extension=file_type.extension,
                source_mime_type=file_type.mime_type,
                source_kind=file_type.kind,
                requested_type=requested_type,
                target_type=target_type,
                payload=payload or {},
            )
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        logger.info('Queued task %s (%s as %s)', task.id, file_type.mime_type, target_type)
        self.publish(task, EVENT_CREATED)
        if schedule:
            self.dispatch()
        return task

    # The gate

    def claim_next(self):
        """
        Pop the oldest QUEUED task and mark it PROCESSING.

        Returns None when a task is already PROCESSING, nothing is queued,
        or another process holds the database write lock.
        """
        with self._gate:
            try:
                task = self._claim_oldest()
            except OperationalError as e:
                # Another process holds the write lock
                logger.info('Claim skipped, database busy: %s', e)
                return None
        if task is None:
            return None

        logger.info('Processing task %s', task.id)
        self.publish(task)
        return task

    def _claim_oldest(self):
        with transaction.atomic():
            if TaskRecord.objects.filter(status=TaskRecord.STATUS_PROCESSING).exists():
                return None
            task = (
                TaskRecord.objects.select_for_update()
                .filter(status=TaskRecord.STATUS_QUEUED)
                .order_by('created_at', 'id')
                .first()
            )
            if task is None:
                return None
            task.status = TaskRecord.STATUS_PROCESSING
            task.progress = 0
            task.started_at = timezone.now()
            task.save(update_fields=['status', 'progress', 'started_at', 'updated_at'])
        return task

    def advance(self):
        """
        Run queued tasks one after another until none is left.

        A no-op when another task holds PROCESSING or nothing is queued, so
        it is safe to call from every trigger point.

        Returns:
            int: number of tasks run
        """
        processed = 0
        task = self.claim_next()
        while task is not None:
            self.run(task)
            processed += 1
            task = self.claim_next()
        return processed

    # Running one task

    def run(self, task):
        """
        Run the pipeline for a claimed task and record the outcome.

        Every error is captured into the record as FAILED; nothing is raised
        to the caller so the loop always continues with the next task.
        """
        config = self.config
        store = self.store
        relocator = StorageRelocator(config)
        scratch = relocator.scratch_dir(task.id)
        source = relocator.queue_path(task.id)
        log_path = scratch / 'processing.log'

        def log(message):
            write_log(log_path, message)

        relocator.logger = log
        state = RunState(self, task)
        placed = None
        item_id = None

        try:
            scratch.mkdir(parents=True, exist_ok=True)
            log('=== TASK STARTED ===')
            log(f'Task: {task.id}')
            log(f'Source: {task.source_mime_type} ({task.source_kind})')
            log(f'Target type: {task.target_type}')

            if not source.exists():
                raise InvalidMedia('Queued upload is missing')

            log('=== PROCESSING ===')
            result = self.engine(
                source,
                scratch,
                config,
                task.source_kind,
                task.target_type,
                on_progress=state.update,
                should_cancel=state.should_cancel,
                logger=log,
            )

            log('=== RELOCATING ===')
            placed = relocator.relocate(result, generate_nanoid(), task.source_extension)

            log('=== MATERIALIZING ===')
            item_id = store.materialize(task.payload, placed, result.target_type, result.rel_height)
            log(f'Created item: {item_id}')

            now = timezone.now()
            updated = TaskRecord.objects.filter(
                pk=task.pk, status=TaskRecord.STATUS_PROCESSING
            ).update(
                status=TaskRecord.STATUS_DONE,
                progress=100,
                created_item_id=item_id,
                finished_at=now,
                updated_at=now,
            )
            if not updated:
                raise InvalidTransition('Task left PROCESSING before it could finish')

            log('=== DONE ===')
            logger.info('Task %s done, created item %s', task.id, item_id)

        except Exception as e:
            note = error_note(e)
            log('=== ERROR ===')
            log(note)
            logger.warning('Task %s failed: %s', task.id, note)

            try:
                if placed is not None:
                    relocator.unplace(placed, restore_original_to=source)
                if item_id is not None:
                    store.rollback(item_id)
            except Exception as rollback_error:
                logger.exception('Rollback of task %s failed', task.id)
                note = f'{note}\nRollback failed: {rollback_error}'

            self._mark_failed(task, note)

        finally:
            relocator.remove_scratch(task.id)

        task.refresh_from_db()
        self.publish(task)
        return task

    def _mark_failed(self, task, note, from_statuses=(TaskRecord.STATUS_PROCESSING,)):
        now = timezone.now()
        notes = '\n'.join(filter(None, [task.notes, note]))
        return TaskRecord.objects.filter(pk=task.pk, status__in=from_statuses).update(
            status=TaskRecord.STATUS_FAILED,
            notes=notes,
            finished_at=now,
            updated_at=now,
        )

    # Recovery and housekeeping

    def recover(self):
        """
        Fail every task a previous process left QUEUED or PROCESSING.

        Their queue files and scratch directories are deleted, then the
        queue is advanced once. Runs under the gate. Errors propagate.

        Returns:
            list of recovered TaskRecords
        """
        note = OrphanedByRestart().as_note()
        relocator = StorageRelocator(self.config)

        with self._gate:
            with transaction.atomic():
                orphans = list(
                    TaskRecord.objects.select_for_update()
                    .filter(status__in=TaskRecord.ACTIVE_STATUSES)
                    .order_by('created_at')
                )
                for task in orphans:
                    self._mark_failed(task, note, from_statuses=TaskRecord.ACTIVE_STATUSES)
            for task in orphans:
                relocator.remove_queued(task.id)
                relocator.remove_scratch(task.id)

        for task in orphans:
            task.refresh_from_db()
            self.publish(task)

        logger.info('Recovered %d orphaned tasks', len(orphans))
        self.dispatch()
        return orphans

    def fail_stuck(self, minutes):
        """
        Fail PROCESSING tasks that have not been updated for `minutes`.

        Returns:
            list of failed TaskRecords
        """
        cutoff = timezone.now() - timedelta(minutes=minutes)
        note = STUCK_NOTE.format(minutes=minutes)
        failed = []
        stuck = TaskRecord.objects.filter(
            status=TaskRecord.STATUS_PROCESSING, updated_at__lt=cutoff
        )
        for task in stuck:
            if self._mark_failed(task, note):
                task.refresh_from_db()
                self.publish(task)
                failed.append(task)
        if failed:
            logger.warning('Failed %d stuck tasks', len(failed))
            self.dispatch()
        return failed

    # Retry and cancel

    def retry(self, task_id):
        """
        Queue a fresh run of a failed task from its stored upload.

        The failed record is left as it is; the new record points back to it
        through retry_of.

        Raises:
            TaskRecord.DoesNotExist: unknown task id
            InvalidTransition: the task is not FAILED or its upload is gone
        """
        relocator = StorageRelocator(self.config)

        with transaction.atomic():
            old = TaskRecord.objects.select_for_update().get(pk=task_id)
            if old.status != TaskRecord.STATUS_FAILED:
                raise InvalidTransition(f'Only failed tasks can be retried (task is {old.status})')
            source = relocator.queue_path(old.id)
            if not source.exists():
                raise InvalidTransition('The original upload is no longer available')

            new_id = generate_nanoid()
            target = relocator.queue_path(new_id)
            shutil.move(str(source), str(target))
            try:
                task = TaskRecord.objects.create(
                    id=new_id,
                    status=TaskRecord.STATUS_QUEUED,
                    source_extension=old.source_extension,
                    source_mime_type=old.source_mime_type,
                    source_kind=old.source_kind,
                    requested_type=old.requested_type,
                    target_type=old.target_type,
                    payload=old.payload,
                    retry_of=old,
                )
            except BaseException:
                shutil.move(str(target), str(source))
                raise

        logger.info('Task %s retried as %s', old.id, task.id)
        self.publish(task, EVENT_CREATED)
        self.dispatch()
        return task

    def cancel(self, task_id):
        """
        Cancel a task.

        A QUEUED task fails immediately; its upload stays in the queue
        directory so it can be retried. A PROCESSING task is flagged and
        the running pipeline stops its encoders and fails.

        Raises:
            TaskRecord.DoesNotExist: unknown task id
            InvalidTransition: the task is already DONE or FAILED
        """
        with self._gate:
            with transaction.atomic():
                task = TaskRecord.objects.select_for_update().get(pk=task_id)
                if task.status == TaskRecord.STATUS_QUEUED:
                    self._mark_failed(task, CANCELLED_NOTE, from_statuses=[TaskRecord.STATUS_QUEUED])
                elif task.status == TaskRecord.STATUS_PROCESSING:
                    task.cancel_requested = True
                    task.save(update_fields=['cancel_requested', 'updated_at'])
                else:
                    raise InvalidTransition(f'Task is already {task.status}')

        task.refresh_from_db()
        logger.info('Cancel requested for task %s (%s)', task.id, task.status)
        if task.status == TaskRecord.STATUS_FAILED:
            self.publish(task)
        return task


task_queue = TaskQueue()
