from django.contrib import admin, messages
from django.utils.html import format_html

from uploads.errors import InvalidTransition
from uploads.models import Item, TaskRecord
from uploads.queue import task_queue
from uploads.service.config import get_processing_config
from uploads.service.storage import StorageRelocator


@admin.register(TaskRecord)
class TaskRecordAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'status',
        'progress_display',
        'source_mime_type',
        'target_type',
        'created_item',
        'created_at',
        'finished_at',
    ]

    list_filter = [
        'status',
        'source_kind',
        'target_type',
        'created_at',
    ]

    search_fields = [
        'id',
        'notes',
        'source_mime_type',
    ]

    # Records change only through the queue
    readonly_fields = [
        'id',
        'status',
        'progress',
        'notes',
        'source_extension',
        'source_mime_type',
        'source_kind',
        'requested_type',
        'target_type',
        'payload',
        'created_item',
        'retry_of',
        'cancel_requested',
        'started_at',
        'finished_at',
        'created_at',
        'updated_at',
    ]

    fieldsets = [
        ('Identification', {'fields': ['id', 'retry_of']}),
        ('Status', {'fields': ['status', 'progress', 'notes', 'cancel_requested']}),
        (
            'Upload',
            {
                'fields': [
                    'source_extension',
                    'source_mime_type',
                    'source_kind',
                    'requested_type',
                    'target_type',
                ]
            },
        ),
        ('Result', {'fields': ['payload', 'created_item']}),
        ('Timestamps', {'fields': ['created_at', 'started_at', 'finished_at', 'updated_at']}),
    ]

    actions = ['retry_tasks', 'cancel_tasks']

    def has_add_permission(self, request):
        return False

    def progress_display(self, obj):
        return f'{obj.progress}%'

    progress_display.short_description = 'Progress'

    def retry_tasks(self, request, queryset):
        count = 0
        for task in queryset.filter(status=TaskRecord.STATUS_FAILED):
            try:
                task_queue.retry(task.id)
                count += 1
            except InvalidTransition as e:
                self.message_user(request, f'{task.id}: {e.message}', level=messages.WARNING)
        self.message_user(request, f'Retrying {count} tasks.')

    retry_tasks.short_description = 'Retry selected failed tasks'

    def cancel_tasks(self, request, queryset):
        count = 0
        for task in queryset.filter(status__in=TaskRecord.ACTIVE_STATUSES):
            try:
                task_queue.cancel(task.id)
                count += 1
            except InvalidTransition as e:
                self.message_user(request, f'{task.id}: {e.message}', level=messages.WARNING)
        self.message_user(request, f'Cancelled {count} tasks.')

    cancel_tasks.short_description = 'Cancel selected tasks'


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = [
        'id',
        'type',
        'post_id',
        'caption',
        'rel_height',
        'created_at',
    ]

    list_filter = [
        'type',
        'created_at',
    ]

    search_fields = [
        'id',
        'post_id',
        'caption',
    ]

    readonly_fields = [
        'id',
        'original_path',
        'compressed_path',
        'thumbnail_path',
        'rel_height',
        'files_display',
        'created_at',
        'updated_at',
    ]

    def files_display(self, obj):
        relocator = StorageRelocator(get_processing_config())
        paths = relocator.rendition_files(obj.compressed_path) + relocator.rendition_files(obj.thumbnail_path)
        if not paths:
            return '-'
        return format_html(
            '<pre>{}</pre>',
            '\n'.join(str(path.relative_to(relocator.config.storage_dir)) for path in paths),
        )

    files_display.short_description = 'Renditions'
