"""
Tests for service/storage.py
"""
from pathlib import Path
from unittest.mock import patch
import io
import shutil
import tempfile

from django.test import TestCase

from uploads.errors import RelocationFailure
from uploads.service.config import ProcessingConfig
from uploads.service.results import PipelineResult
from uploads.service.storage import StorageRelocator

real_move = shutil.move


class BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def readinto(self, buffer):
        raise OSError('connection reset')


class StorageRelocatorTest(TestCase):

    def setUp(self):
        self.storage = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.storage, ignore_errors=True)
        self.relocator = StorageRelocator(ProcessingConfig(storage_dir=self.storage))
        self.relocator.ensure_directories()

        self.scratch = self.relocator.scratch_dir('task1')
        self.scratch.mkdir(parents=True)
        self.original = self.relocator.queue_path('task1')
        self.original.write_bytes(b'original')

    def make_result(self):
        files = {}
        for category, exts in (('compressed', ['jpeg', 'webp']), ('thumbnail', ['jpeg', 'webp'])):
            files[category] = {}
            for ext in exts:
                path = self.scratch / f'{category}.{ext}'
                path.write_bytes(f'{category}-{ext}'.encode())
                files[category][ext] = path
        return PipelineResult(target_type='IMAGE', original=self.original, created_files=files)

    def test_relocate_moves_every_file(self):
        placed = self.relocator.relocate(self.make_result(), 'out1', 'jpg')

        for category in ('compressed', 'thumbnail'):
            for ext in ('jpeg', 'webp'):
                target = self.storage / category / f'out1.{ext}'
                self.assertEqual(target.read_bytes(), f'{category}-{ext}'.encode())
        self.assertEqual((self.storage / 'original' / 'out1.jpg').read_bytes(), b'original')
        self.assertFalse(self.original.exists())
        self.assertEqual(list(self.scratch.iterdir()), [])

        self.assertEqual(placed.as_paths(), {
            'compressed_path': 'compressed/out1',
            'thumbnail_path': 'thumbnail/out1',
            'original_path': 'original/out1.jpg',
        })
        self.assertEqual(len(placed.files), 4)

    def test_partial_batch_is_undone(self):
        calls = []

        def flaky_move(source, target):
            calls.append(target)
            if len(calls) == 3:
                raise OSError('disk full')
            return real_move(source, target)

        with patch('uploads.service.storage.shutil.move', side_effect=flaky_move):
            with self.assertRaises(RelocationFailure):
                self.relocator.relocate(self.make_result(), 'out1', 'jpg')

        self.assertEqual(list((self.storage / 'compressed').iterdir()), [])
        self.assertEqual(list((self.storage / 'thumbnail').iterdir()), [])
        self.assertTrue(self.original.exists())

    def test_failed_original_move_keeps_original(self):
        def move(source, target):
            if Path(target).parent.name == 'original':
                raise OSError('permission denied')
            return real_move(source, target)

        with patch('uploads.service.storage.shutil.move', side_effect=move):
            with self.assertRaises(RelocationFailure):
                self.relocator.relocate(self.make_result(), 'out1', 'jpg')

        self.assertEqual(list((self.storage / 'compressed').iterdir()), [])
        self.assertEqual(self.original.read_bytes(), b'original')

    def test_existing_target_is_a_failure(self):
        (self.storage / 'compressed' / 'out1.webp').write_bytes(b'other')
        with self.assertRaises(RelocationFailure):
            self.relocator.relocate(self.make_result(), 'out1', 'jpg')
        self.assertEqual((self.storage / 'compressed' / 'out1.webp').read_bytes(), b'other')
        self.assertTrue(self.original.exists())

    def test_unplace_restores_original(self):
        placed = self.relocator.relocate(self.make_result(), 'out1', 'jpg')
        self.relocator.unplace(placed, restore_original_to=self.original)

        self.assertEqual(list((self.storage / 'compressed').iterdir()), [])
        self.assertEqual(list((self.storage / 'original').iterdir()), [])
        self.assertEqual(self.original.read_bytes(), b'original')

    def test_stage_upload(self):
        path = self.relocator.stage_upload('task2', io.BytesIO(b'upload bytes'))
        self.assertEqual(path, self.storage / 'queue' / 'task2')
        self.assertEqual(path.read_bytes(), b'upload bytes')

    def test_stage_upload_failure_removes_partial_file(self):
        with self.assertRaises(OSError):
            self.relocator.stage_upload('task2', BrokenStream())
        self.assertFalse((self.storage / 'queue' / 'task2').exists())

    def test_delete_item_files(self):
        placed = self.relocator.relocate(self.make_result(), 'out1', 'jpg')
        removed = self.relocator.delete_item_files(**placed.as_paths())

        self.assertEqual(removed, 5)
        self.assertEqual(list((self.storage / 'thumbnail').iterdir()), [])
        self.assertEqual(list((self.storage / 'original').iterdir()), [])

    def test_remove_scratch(self):
        self.relocator.remove_scratch('task1')
        self.assertFalse(self.scratch.exists())
