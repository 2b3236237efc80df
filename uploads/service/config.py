"""
Configuration adapter for upload processing settings.

Builds an immutable ProcessingConfig from Django settings. The config is
read on every call so tests can use override_settings, and it is passed
into the pipelines and the relocator instead of module-level constants.
"""

from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings

DEFAULT_DIRECTORIES = {
    'original': 'original',
    'compressed': 'compressed',
    'thumbnail': 'thumbnail',
    'queue': 'queue',
    'tmp': 'tmp',
}


@dataclass(frozen=True)
class ProcessingConfig:
    """Storage layout and quality contract for every rendition"""

    storage_dir: Path
    directories: dict = field(default_factory=lambda: dict(DEFAULT_DIRECTORIES))

    image_max_size: int = 900
    image_jpeg_quality: int = 91
    image_webp_quality: int = 80
    thumbnail_size: int = 400
    thumbnail_quality: int = 50

    video_max_height: int = 720
    video_thumbnail_width: int = 400
    video_thumbnail_duration: float = 7.5
    frame_offset: float = 1.0
    gif_max_width: int = 480
    gif_fps: int = 25

    ffmpeg_binary: str = 'ffmpeg'
    ffprobe_binary: str = 'ffprobe'

    def directory(self, category):
        """Absolute path of a storage category directory"""
        return self.storage_dir / self.directories[category]


def get_processing_config():
    """
    Build the processing configuration from Django settings.

    Returns:
        ProcessingConfig
    """
    directories = dict(DEFAULT_DIRECTORIES)
    directories.update(getattr(settings, 'MEDIAQUEUE_DIRECTORIES', {}))

    return ProcessingConfig(
        storage_dir=Path(settings.MEDIAQUEUE_STORAGE_DIR),
        directories=directories,
        image_max_size=settings.MEDIAQUEUE_IMAGE_MAX_SIZE,
        image_jpeg_quality=settings.MEDIAQUEUE_IMAGE_JPEG_QUALITY,
        image_webp_quality=settings.MEDIAQUEUE_IMAGE_WEBP_QUALITY,
        thumbnail_size=settings.MEDIAQUEUE_THUMBNAIL_SIZE,
        thumbnail_quality=settings.MEDIAQUEUE_THUMBNAIL_QUALITY,
        video_max_height=settings.MEDIAQUEUE_VIDEO_MAX_HEIGHT,
        video_thumbnail_width=settings.MEDIAQUEUE_VIDEO_THUMBNAIL_WIDTH,
        video_thumbnail_duration=settings.MEDIAQUEUE_VIDEO_THUMBNAIL_DURATION,
        frame_offset=settings.MEDIAQUEUE_FRAME_OFFSET,
        gif_max_width=settings.MEDIAQUEUE_GIF_MAX_WIDTH,
        gif_fps=settings.MEDIAQUEUE_GIF_FPS,
        ffmpeg_binary=settings.MEDIAQUEUE_FFMPEG_BINARY,
        ffprobe_binary=settings.MEDIAQUEUE_FFPROBE_BINARY,
    )


def get_stuck_minutes():
    """Minutes after which a PROCESSING task is considered stuck"""
    return settings.MEDIAQUEUE_STUCK_MINUTES


def get_tmp_max_age_minutes():
    """Minutes after which an unowned scratch dir or queue file is abandoned"""
    return settings.MEDIAQUEUE_TMP_MAX_AGE_MINUTES
