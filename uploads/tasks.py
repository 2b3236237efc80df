from huey import crontab
from huey.contrib.djhuey import db_periodic_task, db_task

from uploads.operations import cleanup_expired
from uploads.queue import task_queue


@db_task()
def process_queue():
    """
    Worker entry point: run queued uploads until the queue is empty.

    The huey consumer runs a single worker, and the queue's gate keeps
    processing serialized even if this task is enqueued many times; extra
    invocations find nothing to claim and return.
    """
    return task_queue.advance()


@db_periodic_task(crontab(hour='6', minute='0'))
def cleanup_expired_tasks():
    """Daily housekeeping: fail stuck tasks, delete abandoned uploads and scratch dirs"""
    report = cleanup_expired()
    return report.as_dict()
