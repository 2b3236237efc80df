"""
Tests for service/classify.py
"""
import io
import tempfile
from unittest.mock import MagicMock, patch

from django.test import TestCase

from uploads.errors import UnrecognizedType, UnsupportedType
from uploads.service.classify import (
    classify_bytes,
    classify_file,
    classify_stream,
    get_kind,
)
from uploads.tests.base import make_image_bytes


class GetKindTest(TestCase):
    """MIME type to pipeline kind"""

    def test_image_types_are_images(self):
        self.assertEqual(get_kind('image/jpeg'), 'image')
        self.assertEqual(get_kind('image/webp'), 'image')

    def test_video_types_are_videos(self):
        self.assertEqual(get_kind('video/mp4'), 'video')
        self.assertEqual(get_kind('video/quicktime'), 'video')

    def test_gif_routes_as_video(self):
        self.assertEqual(get_kind('image/gif'), 'video')

    def test_asf_routes_as_video(self):
        self.assertEqual(get_kind('application/vnd.ms-asf'), 'video')

    def test_other_types_are_unsupported(self):
        with self.assertRaises(UnsupportedType) as ctx:
            get_kind('application/pdf')
        self.assertEqual(ctx.exception.mime_type, 'application/pdf')


class ClassifyBytesTest(TestCase):
    """Signature sniffing"""

    def test_jpeg(self):
        info = classify_bytes(make_image_bytes(fmt='JPEG'))
        self.assertEqual(info.mime_type, 'image/jpeg')
        self.assertEqual(info.extension, 'jpg')
        self.assertEqual(info.kind, 'image')
        self.assertFalse(info.is_gif)

    def test_png(self):
        info = classify_bytes(make_image_bytes(fmt='PNG', mode='RGBA'))
        self.assertEqual(info.mime_type, 'image/png')
        self.assertEqual(info.kind, 'image')

    def test_gif_is_video_kind(self):
        info = classify_bytes(make_image_bytes(fmt='GIF', mode='P', color=1))
        self.assertEqual(info.mime_type, 'image/gif')
        self.assertEqual(info.kind, 'video')
        self.assertTrue(info.is_gif)

    def test_video_signature(self):
        """A match reported by filetype as video/* is accepted"""
        match = MagicMock(extension='mp4', mime='video/mp4')
        with patch('uploads.service.classify.filetype.guess', return_value=match):
            info = classify_bytes(b'\x00\x00\x00\x18ftypmp42')
        self.assertEqual(info.kind, 'video')
        self.assertEqual(info.extension, 'mp4')

    def test_pdf_is_unsupported(self):
        with self.assertRaises(UnsupportedType):
            classify_bytes(b'%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<>>\nendobj\n')

    def test_garbage_is_unrecognized(self):
        with self.assertRaises(UnrecognizedType):
            classify_bytes(b'this is not a video file at all ' * 10)

    def test_empty_is_unrecognized(self):
        with self.assertRaises(UnrecognizedType):
            classify_bytes(b'')


class ClassifyStreamTest(TestCase):
    """Streams keep every byte after sniffing"""

    def test_stream_replays_head(self):
        data = make_image_bytes(2000, 1500)
        typed = classify_stream(io.BytesIO(data))

        self.assertEqual(typed.file_type.mime_type, 'image/jpeg')
        self.assertEqual(typed.read(), data)

    def test_text_stream_is_rejected(self):
        with self.assertRaises(UnrecognizedType):
            classify_stream(io.StringIO('hello'))

    def test_classify_file(self):
        with tempfile.NamedTemporaryFile(suffix='.mp4') as f:
            f.write(make_image_bytes(fmt='PNG'))
            f.flush()
            # Content decides, not the extension
            self.assertEqual(classify_file(f.name).mime_type, 'image/png')
