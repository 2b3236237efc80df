"""
Tests for the JSON and SSE endpoints
"""
import json
from unittest.mock import patch

from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from uploads.models import TaskRecord
from uploads.queue import task_queue
from uploads.tests.base import StorageTestCase, make_image_bytes


class TaskViewsTest(StorageTestCase):

    def setUp(self):
        super().setUp()
        # Mock the huey task to keep the worker out of request handling
        self.process_queue_patcher = patch('uploads.tasks.process_queue')
        self.mock_process_queue = self.process_queue_patcher.start()
        self.addCleanup(self.process_queue_patcher.stop)

    def upload(self, data=None, **extra):
        data = data if data is not None else make_image_bytes()
        post = {'file': SimpleUploadedFile('photo.jpg', data, content_type='image/jpeg')}
        post.update(extra)
        return self.client.post(reverse('task_list'), post)

    def test_submit(self):
        response = self.upload(payload=json.dumps({'caption': 'hi'}), type='auto')

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['status'], 'QUEUED')
        self.assertEqual(data['source_mime_type'], 'image/jpeg')
        self.assertEqual(data['payload'], {'caption': 'hi'})
        self.assertEqual(data['queue_position'], 0)
        self.assertTrue(TaskRecord.objects.filter(pk=data['task_id']).exists())
        self.mock_process_queue.assert_called_once_with()

    def test_submit_unsupported_type(self):
        response = self.upload(b'%PDF-1.4\n1 0 obj\n<<>>\nendobj\n')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'unsupported_type')
        self.assertEqual(TaskRecord.objects.count(), 0)
        self.mock_process_queue.assert_not_called()

    def test_submit_unrecognized_type(self):
        response = self.upload(b'\x00\x01 corrupted video ' * 10)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'unrecognized_type')

    def test_submit_without_file(self):
        response = self.client.post(reverse('task_list'), {})
        self.assertEqual(response.status_code, 400)

    def test_submit_invalid_payload(self):
        self.assertEqual(self.upload(payload='{not json').status_code, 400)
        self.assertEqual(self.upload(payload='[1, 2]').status_code, 400)

    def test_submit_invalid_type(self):
        self.assertEqual(self.upload(type='audio').status_code, 400)

    def test_list(self):
        first = self.upload().json()['task_id']
        second = self.upload().json()['task_id']
        task_queue.cancel(first)

        data = self.client.get(reverse('task_list')).json()
        self.assertEqual([t['task_id'] for t in data['tasks']], [second, first])

        data = self.client.get(reverse('task_list'), {'status': 'FAILED'}).json()
        self.assertEqual([t['task_id'] for t in data['tasks']], [first])

        data = self.client.get(reverse('task_list'), {'limit': 1}).json()
        self.assertEqual(len(data['tasks']), 1)

    def test_list_unknown_status(self):
        response = self.client.get(reverse('task_list'), {'status': 'BOGUS'})
        self.assertEqual(response.status_code, 400)

    def test_detail(self):
        task_id = self.upload().json()['task_id']
        response = self.client.get(reverse('task_detail', args=[task_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['task_id'], task_id)

    def test_detail_of_done_task_includes_item(self):
        task_id = self.upload().json()['task_id']
        task_queue.advance()

        data = self.client.get(reverse('task_detail', args=[task_id])).json()
        self.assertEqual(data['status'], 'DONE')
        self.assertEqual(data['item']['id'], data['created_result_id'])
        self.assertEqual(data['item']['compressed_path'], f"compressed/{data['created_result_id']}")

    def test_detail_not_found(self):
        response = self.client.get(reverse('task_detail', args=['missing']))
        self.assertEqual(response.status_code, 404)

    def test_cancel_and_retry(self):
        task_id = self.upload().json()['task_id']

        response = self.client.post(reverse('task_cancel', args=[task_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'FAILED')

        response = self.client.post(reverse('task_cancel', args=[task_id]))
        self.assertEqual(response.status_code, 409)

        response = self.client.post(reverse('task_retry', args=[task_id]))
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['retry_of'], task_id)
        self.assertEqual(response.json()['status'], 'QUEUED')

    def test_retry_queued_task_conflicts(self):
        task_id = self.upload().json()['task_id']
        response = self.client.post(reverse('task_retry', args=[task_id]))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error_code'], 'invalid_transition')

    def test_retry_requires_post(self):
        task_id = self.upload().json()['task_id']
        response = self.client.get(reverse('task_retry', args=[task_id]))
        self.assertEqual(response.status_code, 405)

    def test_status_stream_of_finished_task(self):
        task_id = self.upload().json()['task_id']
        task_queue.advance()

        response = self.client.get(reverse('task_status_stream', args=[task_id]))
        self.assertEqual(response['Content-Type'], 'text/event-stream')
        body = b''.join(response.streaming_content).decode()

        self.assertIn('"status": "DONE"', body)
        self.assertIn('"progress": 100', body)
        self.assertTrue(body.endswith('event: complete\ndata: {}\n\n'))

    def test_status_stream_of_missing_task(self):
        response = self.client.get(reverse('task_status_stream', args=['missing']))
        body = b''.join(response.streaming_content).decode()
        self.assertIn('event: error', body)
