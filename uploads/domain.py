"""
Domain store: turns a finished task into an Item.

The queue treats the task payload as opaque and only calls materialize()
and rollback(). MEDIAQUEUE_DOMAIN_STORE can point at another class with the
same two methods.
"""
from django.conf import settings
from django.utils.module_loading import import_string

from uploads.models import Item


class ItemStore:
    """Creates Item rows from task payloads"""

    payload_fields = ('post_id', 'caption', 'description')

    def materialize(self, payload, placed, target_type, rel_height=None):
        """
        Create the domain object for a finished task.

        Args:
            payload: dict supplied by the submitter
            placed: PlacedFiles from the relocator
            target_type: 'IMAGE', 'VIDEO' or 'GIF'
            rel_height: height as a percentage of width

        Returns:
            str: id of the created Item
        """
        values = {
            key: str(payload[key])
            for key in self.payload_fields
            if payload.get(key) is not None
        }
        item = Item.objects.create(
            id=placed.output_id,
            type=target_type,
            rel_height=rel_height,
            **placed.as_paths(),
            **values,
        )
        return item.id

    def rollback(self, item_id):
        """Delete a partly created Item, if it exists"""
        if item_id:
            Item.objects.filter(id=item_id).delete()


def get_domain_store():
    return import_string(settings.MEDIAQUEUE_DOMAIN_STORE)()
