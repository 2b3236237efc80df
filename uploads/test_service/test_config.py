"""
Tests for service/config.py
"""
from pathlib import Path
from unittest.mock import patch
import importlib
import os

from django.test import TestCase, override_settings

from uploads.service.config import (
    ProcessingConfig,
    get_processing_config,
    get_stuck_minutes,
    get_tmp_max_age_minutes,
)


class ProcessingConfigTest(TestCase):

    def test_defaults(self):
        config = ProcessingConfig(storage_dir=Path('/srv/media'))
        self.assertEqual(config.image_max_size, 900)
        self.assertEqual(config.image_jpeg_quality, 91)
        self.assertEqual(config.image_webp_quality, 80)
        self.assertEqual(config.thumbnail_size, 400)
        self.assertEqual(config.thumbnail_quality, 50)
        self.assertEqual(config.video_max_height, 720)
        self.assertEqual(config.gif_max_width, 480)
        self.assertEqual(config.directory('compressed'), Path('/srv/media/compressed'))

    @override_settings(MEDIAQUEUE_STORAGE_DIR='/data/uploads', MEDIAQUEUE_IMAGE_MAX_SIZE=1200)
    def test_reads_settings_on_each_call(self):
        config = get_processing_config()
        self.assertEqual(config.storage_dir, Path('/data/uploads'))
        self.assertEqual(config.image_max_size, 1200)

    @override_settings(MEDIAQUEUE_DIRECTORIES={'thumbnail': 'thumbs'})
    def test_partial_directory_override(self):
        config = get_processing_config()
        self.assertEqual(config.directories['thumbnail'], 'thumbs')
        self.assertEqual(config.directories['compressed'], 'compressed')

    @override_settings(MEDIAQUEUE_STUCK_MINUTES=5, MEDIAQUEUE_TMP_MAX_AGE_MINUTES=10)
    def test_cleanup_settings(self):
        self.assertEqual(get_stuck_minutes(), 5)
        self.assertEqual(get_tmp_max_age_minutes(), 10)


class ProjectSettingsTest(TestCase):
    """Values computed by mediaqueue/settings.py from the environment"""

    def load_settings(self, **environ):
        import mediaqueue.settings as project_settings

        with patch.dict(os.environ, environ):
            module = importlib.reload(project_settings)
        self.addCleanup(importlib.reload, project_settings)
        return module

    def test_debug_does_not_run_tasks_inline(self):
        module = self.load_settings(DJANGO_DEBUG='1')
        self.assertTrue(module.DEBUG)
        self.assertFalse(module.HUEY['immediate'])

    def test_immediate_mode_is_explicit(self):
        module = self.load_settings(MEDIAQUEUE_HUEY_IMMEDIATE='true')
        self.assertTrue(module.HUEY['immediate'])

    def test_sqlite_writers_lock_at_begin(self):
        module = self.load_settings()
        self.assertEqual(module.DATABASES['default']['OPTIONS']['transaction_mode'], 'IMMEDIATE')
        self.assertEqual(module.HUEY['consumer']['workers'], 1)
