"""
Image pipeline.

Auto-orients and strips alpha from the source, writes two compressed
encodings capped at the configured size (never upscaled), and two smaller
low-quality thumbnails.
"""
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from uploads.errors import EncodeCancelled, EncodeFailure, InvalidMedia
from uploads.service.constants import TYPE_IMAGE
from uploads.service.results import PipelineResult, relative_height


def load_image(path):
    """
    Open an image, apply its EXIF orientation and drop any alpha channel.

    Raises:
        InvalidMedia: if the file cannot be decoded or has no dimensions
    """
    try:
        with Image.open(path) as source:
            source.load()
            img = ImageOps.exif_transpose(source)
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        raise InvalidMedia(f'Could not read image dimensions: {e}')

    width, height = img.size
    if not width or not height:
        raise InvalidMedia('Image has no dimensions')
    return img


def save_formats(img, base_path, options, logger=None):
    """
    Save `img` once per format.

    Args:
        img: PIL image
        base_path: path without extension
        options: {'jpeg': {...save kwargs}, 'webp': {...}}

    Returns:
        dict: {extension: Path}
    """
    paths = {}
    for ext, save_kwargs in options.items():
        output_path = Path(f'{base_path}.{ext}')
        try:
            img.save(output_path, ext.upper(), **save_kwargs)
        except (OSError, ValueError, KeyError) as e:
            raise EncodeFailure(f'Could not encode {ext}: {e}')
        if logger:
            logger(f'Wrote {output_path.name} ({output_path.stat().st_size} bytes)')
        paths[ext] = output_path
    return paths


def create_thumbnails(img, directory, config, logger=None):
    """
    Write the still thumbnails for an image or a video frame.

    The image is scaled to fit the thumbnail box, upscaling small sources.

    Returns:
        dict: {'jpeg': Path, 'webp': Path}
    """
    size = config.thumbnail_size
    thumbnail = ImageOps.contain(img, (size, size), Image.LANCZOS)
    return save_formats(
        thumbnail,
        Path(directory) / 'thumbnail',
        {
            'jpeg': {'quality': config.thumbnail_quality, 'progressive': True},
            'webp': {'quality': config.thumbnail_quality},
        },
        logger=logger,
    )


def process_image(input_path, directory, config, on_progress=None, should_cancel=None, logger=None):
    """
    Run the image pipeline.

    Args:
        input_path: Path to the uploaded original
        directory: scratch directory for this task
        config: ProcessingConfig
        on_progress: Optional callable(percent)
        should_cancel: Optional callable() -> bool
        logger: Optional callable(str) for logging

    Returns:
        PipelineResult
    """
    def log(message):
        if logger:
            logger(message)

    def check_cancel():
        if should_cancel and should_cancel():
            raise EncodeCancelled()

    img = load_image(input_path)
    width, height = img.size
    log(f'Image dimensions: {width}x{height}')

    check_cancel()
    compressed = img.copy()
    max_size = config.image_max_size
    compressed.thumbnail((max_size, max_size), Image.LANCZOS)
    log(f'Compressed size: {compressed.size[0]}x{compressed.size[1]}')

    compressed_paths = save_formats(
        compressed,
        Path(directory) / 'image',
        {
            'jpeg': {'quality': config.image_jpeg_quality, 'progressive': True, 'optimize': True},
            'webp': {'quality': config.image_webp_quality, 'method': 6},
        },
        logger=logger,
    )
    if on_progress:
        on_progress(50)

    check_cancel()
    thumbnail_paths = create_thumbnails(img, directory, config, logger=logger)
    if on_progress:
        on_progress(100)

    return PipelineResult(
        target_type=TYPE_IMAGE,
        original=Path(input_path),
        rel_height=relative_height(width, height),
        width=width,
        height=height,
        created_files={
            'compressed': compressed_paths,
            'thumbnail': thumbnail_paths,
        },
    )
