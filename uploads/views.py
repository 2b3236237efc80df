import json
import time

from django.http import JsonResponse, StreamingHttpResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from uploads.errors import ClassificationError, InvalidTransition
from uploads.models import TaskRecord
from uploads.operations import (
    cancel_task,
    list_tasks,
    queue_position,
    retry_task,
    submit_upload,
)

# Seconds between database polls in the SSE stream
STREAM_POLL_INTERVAL = 1


def _isoformat(value):
    return value.isoformat() if value else None


def task_data(task):
    """JSON representation of a task"""
    data = task.to_event_dict()
    data.update({
        'source_mime_type': task.source_mime_type,
        'source_extension': task.source_extension,
        'requested_type': task.requested_type,
        'target_type': task.target_type,
        'payload': task.payload,
        'created_result_id': task.created_result_id,
        'retry_of': task.retry_of_id,
        'queue_position': queue_position(task),
        'created_at': _isoformat(task.created_at),
        'started_at': _isoformat(task.started_at),
        'finished_at': _isoformat(task.finished_at),
    })
    item = task.created_item
    if item is not None:
        data['item'] = {
            'id': item.id,
            'type': item.type,
            'original_path': item.original_path,
            'compressed_path': item.compressed_path,
            'thumbnail_path': item.thumbnail_path,
            'rel_height': item.rel_height,
        }
    return data


def _int_param(request, name, default):
    try:
        return max(0, int(request.GET.get(name, default)))
    except (TypeError, ValueError):
        return default


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def task_list_view(request):
    """
    GET: list tasks newest first.
        Params: status (optional), limit (default 50), offset (default 0)

    POST: submit an upload.
        Params:
            file (required): multipart upload
            payload (optional): JSON object describing the Item to create
            type (optional): auto|image|video|gif

    Returns:
        JSON with the task, 201 on submission; 400 when the upload is rejected
    """
    if request.method == 'GET':
        status = request.GET.get('status')
        if status and status not in dict(TaskRecord.STATUS_CHOICES):
            return JsonResponse({'error': f'Unknown status: {status}'}, status=400)
        tasks = list_tasks(
            status=status,
            limit=_int_param(request, 'limit', 50),
            offset=_int_param(request, 'offset', 0),
        )
        return JsonResponse({'tasks': [task_data(task) for task in tasks]})

    upload = request.FILES.get('file')
    if upload is None:
        return JsonResponse({'error': 'Missing required parameter: file'}, status=400)

    payload = {}
    raw_payload = request.POST.get('payload')
    if raw_payload:
        try:
            payload = json.loads(raw_payload)
        except json.JSONDecodeError:
            return JsonResponse({'error': 'payload must be valid JSON'}, status=400)
        if not isinstance(payload, dict):
            return JsonResponse({'error': 'payload must be a JSON object'}, status=400)

    try:
        task = submit_upload(upload, payload=payload, requested_type=request.POST.get('type'))
    except ClassificationError as e:
        return JsonResponse({'error': e.message, 'error_code': e.error_code}, status=400)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    return JsonResponse(task_data(task), status=201)


@require_http_methods(['GET'])
def task_detail_view(request, task_id):
    task = get_object_or_404(TaskRecord.objects.select_related('created_item'), pk=task_id)
    return JsonResponse(task_data(task))


@csrf_exempt
@require_http_methods(['POST'])
def task_retry_view(request, task_id):
    """Retry a failed task; the response is the new task."""
    get_object_or_404(TaskRecord, pk=task_id)
    try:
        task = retry_task(task_id)
    except InvalidTransition as e:
        return JsonResponse({'error': e.message, 'error_code': e.error_code}, status=409)
    return JsonResponse(task_data(task), status=201)


@csrf_exempt
@require_http_methods(['POST'])
def task_cancel_view(request, task_id):
    get_object_or_404(TaskRecord, pk=task_id)
    try:
        task = cancel_task(task_id)
    except InvalidTransition as e:
        return JsonResponse({'error': e.message, 'error_code': e.error_code}, status=409)
    return JsonResponse(task_data(task))


def task_status_stream(request, task_id):
    """
    SSE endpoint that streams status updates for a task.

    Sends an event whenever status or progress changes, then
    `event: complete` once the task is DONE or FAILED.
    """

    def event_stream():
        last_state = None

        while True:
            try:
                task = TaskRecord.objects.get(pk=task_id)
            except TaskRecord.DoesNotExist:
                # Task was deleted
                yield 'event: error\ndata: {"error": "Task not found"}\n\n'
                break

            state = (task.status, task.progress)
            if state != last_state:
                data = task.to_event_dict()
                data['created_result_id'] = task.created_result_id
                data['queue_position'] = queue_position(task)
                yield f'data: {json.dumps(data)}\n\n'
                last_state = state

            # If processing is complete or failed, stop streaming
            if task.is_terminal:
                yield 'event: complete\ndata: {}\n\n'
                break

            # Wait before next check
            time.sleep(STREAM_POLL_INTERVAL)

    response = StreamingHttpResponse(event_stream(), content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache'
    response['X-Accel-Buffering'] = 'no'
    return response
