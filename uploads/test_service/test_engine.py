"""
Tests for service/engine.py
"""
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase

from uploads.service.config import ProcessingConfig
from uploads.service.engine import process_upload, resolve_target_type


class ResolveTargetTypeTest(TestCase):

    def test_images_are_always_images(self):
        for requested in (None, 'AUTO', 'IMAGE', 'VIDEO', 'GIF'):
            self.assertEqual(resolve_target_type('image', False, requested), 'IMAGE')

    def test_auto_keeps_detected_type(self):
        self.assertEqual(resolve_target_type('video', False, 'AUTO'), 'VIDEO')
        self.assertEqual(resolve_target_type('video', True, 'AUTO'), 'GIF')

    def test_gif_requested_as_video(self):
        self.assertEqual(resolve_target_type('video', True, 'VIDEO'), 'VIDEO')

    def test_video_requested_as_gif(self):
        self.assertEqual(resolve_target_type('video', False, 'GIF'), 'GIF')

    def test_image_hint_on_video_is_ignored(self):
        self.assertEqual(resolve_target_type('video', False, 'IMAGE'), 'VIDEO')


class ProcessUploadTest(TestCase):

    def setUp(self):
        self.config = ProcessingConfig(storage_dir=Path('/tmp/storage'))

    @patch('uploads.service.engine.process_image')
    def test_routes_images(self, mock_image):
        process_upload('/in', '/scratch', self.config, 'image', 'IMAGE')
        mock_image.assert_called_once()

    @patch('uploads.service.engine.process_video')
    def test_routes_videos_with_target(self, mock_video):
        process_upload('/in', '/scratch', self.config, 'video', 'GIF')
        self.assertEqual(mock_video.call_args.kwargs['target_type'], 'GIF')

    def test_unknown_kind(self):
        with self.assertRaises(ValueError):
            process_upload('/in', '/scratch', self.config, 'audio', 'IMAGE')
