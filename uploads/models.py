
from django.db import models
from nanoid import generate


def generate_nanoid():
    """Generate NanoID with A-Z a-z 0-9 alphabet"""
    alphabet = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    return generate(alphabet, size=21)


class Item(models.Model):
    """Domain object created from the renditions of a finished task"""

    TYPE_IMAGE = "IMAGE"
    TYPE_VIDEO = "VIDEO"
    TYPE_GIF = "GIF"

    TYPE_CHOICES = [
        (TYPE_IMAGE, "Image"),
        (TYPE_VIDEO, "Video"),
        (TYPE_GIF, "GIF"),
    ]

    id = models.CharField(
        max_length=21, primary_key=True, default=generate_nanoid, editable=False
    )
    type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    post_id = models.CharField(max_length=100, blank=True, db_index=True)
    caption = models.TextField(blank=True)
    description = models.TextField(blank=True)

    # Storage paths (relative to MEDIAQUEUE_STORAGE_DIR). Compressed and
    # thumbnail paths carry no extension; one file exists per rendition format.
    original_path = models.CharField(max_length=500)
    compressed_path = models.CharField(max_length=500)
    thumbnail_path = models.CharField(max_length=500)
    rel_height = models.FloatField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.type} {self.id}"


class TaskRecord(models.Model):
    """One queued transcoding job and its persisted status"""

    # Status choices
    STATUS_QUEUED = "QUEUED"
    STATUS_PROCESSING = "PROCESSING"
    STATUS_DONE = "DONE"
    STATUS_FAILED = "FAILED"

    STATUS_CHOICES = [
        (STATUS_QUEUED, "Queued"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_DONE, "Done"),
        (STATUS_FAILED, "Failed"),
    ]

    ACTIVE_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING)
    TERMINAL_STATUSES = (STATUS_DONE, STATUS_FAILED)

    # Detected kind of the upload, used to route to a pipeline
    KIND_IMAGE = "image"
    KIND_VIDEO = "video"

    KIND_CHOICES = [
        (KIND_IMAGE, "Image"),
        (KIND_VIDEO, "Video"),
    ]

    # Requested target type (caller hint)
    REQUESTED_TYPE_AUTO = "AUTO"

    REQUESTED_TYPE_CHOICES = [(REQUESTED_TYPE_AUTO, "Auto")] + Item.TYPE_CHOICES

    id = models.CharField(
        max_length=21, primary_key=True, default=generate_nanoid, editable=False
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_QUEUED, db_index=True
    )
    progress = models.PositiveSmallIntegerField(default=0)
    notes = models.TextField(blank=True)

    # Detected type of the uploaded original
    source_extension = models.CharField(max_length=20)
    source_mime_type = models.CharField(max_length=100)
    source_kind = models.CharField(max_length=10, choices=KIND_CHOICES)

    requested_type = models.CharField(
        max_length=10, choices=REQUESTED_TYPE_CHOICES, default=REQUESTED_TYPE_AUTO
    )
    target_type = models.CharField(max_length=10, choices=Item.TYPE_CHOICES, blank=True)

    # Opaque description of the domain object to create on success
    payload = models.JSONField(default=dict, blank=True)

    created_item = models.ForeignKey(
        Item, null=True, blank=True, on_delete=models.SET_NULL, related_name="tasks"
    )
    retry_of = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.SET_NULL, related_name="retries"
    )
    cancel_requested = models.BooleanField(default=False)

    # Timestamps
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="uploads_task_status_idx"),
        ]

    def __str__(self):
        return f"Task {self.id} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_active(self):
        return self.status in self.ACTIVE_STATUSES

    @property
    def created_result_id(self):
        return self.created_item_id

    def to_event_dict(self):
        return {
            "task_id": self.id,
            "status": self.status,
            "progress": self.progress,
            "notes": self.notes,
        }
