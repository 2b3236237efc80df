"""
Progress tracker for upload processing tasks.

Keeps a thread-safe snapshot of the latest event per QUEUED or PROCESSING
task and fans every event out through the `task_updated` signal to any
subscriber. A terminal event drops the snapshot; the TaskRecord keeps the
final state.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
import itertools
import threading

from django.dispatch import Signal

from uploads.models import TaskRecord

EVENT_CREATED = 'CREATED'
EVENT_CHANGED = 'CHANGED'

# Sent with event=TaskEvent
task_updated = Signal()

_subscriber_ids = itertools.count()


@dataclass
class TaskEvent:
    task_id: str
    kind: str
    status: str
    progress: int = 0
    notes: str = ''
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def for_task(cls, task, kind=EVENT_CHANGED):
        return cls(
            task_id=task.id,
            kind=kind,
            status=task.status,
            progress=task.progress,
            notes=task.notes,
        )

    def as_dict(self):
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return data


class ProgressReporter:
    """
    Publishes task events.

    Thread-safe progress storage
    Format: {task_id: TaskEvent}
    """

    def __init__(self):
        self._store = {}
        self._lock = threading.Lock()

    def publish(self, event):
        with self._lock:
            if event.status in TaskRecord.TERMINAL_STATUSES:
                # Subscribers still get the final event below
                self._store.pop(event.task_id, None)
            else:
                self._store[event.task_id] = event
        task_updated.send(sender=self.__class__, event=event)

    def get_progress(self, task_id):
        """
        Get the latest event for a task.

        Returns:
            TaskEvent, or None if nothing was published or the task finished
        """
        with self._lock:
            return self._store.get(task_id)

    def clear_progress(self, task_id):
        with self._lock:
            self._store.pop(task_id, None)

    def subscribe(self, callback, task_ids=None):
        """
        Call `callback(event)` for every published event.

        Args:
            callback: callable taking a TaskEvent
            task_ids: optional iterable of task ids to filter on

        Returns:
            callable: disconnects the subscription
        """
        wanted = set(task_ids) if task_ids is not None else None
        dispatch_uid = f'progress-subscriber-{next(_subscriber_ids)}'

        def receiver(sender, event, **kwargs):
            if wanted is None or event.task_id in wanted:
                callback(event)

        task_updated.connect(receiver, weak=False, dispatch_uid=dispatch_uid)

        def unsubscribe():
            task_updated.disconnect(dispatch_uid=dispatch_uid)

        return unsubscribe


reporter = ProgressReporter()
