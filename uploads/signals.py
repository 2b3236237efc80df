import logging

from django.db.models.signals import post_delete, pre_delete
from django.dispatch import receiver

from uploads.models import Item, TaskRecord
from uploads.progress_tracker import reporter
from uploads.service.config import get_processing_config
from uploads.service.storage import StorageRelocator

logger = logging.getLogger(__name__)


@receiver(pre_delete, sender=Item)
def cleanup_item_files(sender, instance, **kwargs):
    """
    Delete every rendition and the original when an Item is deleted.
    This handles both single and bulk deletions.
    """
    relocator = StorageRelocator(get_processing_config())
    try:
        removed = relocator.delete_item_files(
            instance.compressed_path, instance.thumbnail_path, instance.original_path
        )
    except OSError as e:
        # Log error but continue with deletion
        logger.error('Error deleting files of item %s: %s', instance.id, e)
        return
    logger.info('Deleted %d files of item %s', removed, instance.id)


@receiver(post_delete, sender=TaskRecord)
def forget_task_progress(sender, instance, **kwargs):
    """Drop the last published event of a deleted task"""
    reporter.clear_progress(instance.id)
