"""
Service layer for upload transcoding.

This package holds the Django-independent pieces of the queue: type
classification, the image and video pipelines, the ffmpeg wrapper and the
storage relocator. They are used by:
- The queue worker (uploads/queue.py, run from the huey task in uploads/tasks.py)
- The management commands (uploads/management/commands/)
"""
