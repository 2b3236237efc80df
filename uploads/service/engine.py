"""
Pipeline dispatch.

Chooses the pipeline from the detected kind and the final target type from
the caller's hint, then runs it in a scratch directory.
"""
from uploads.service.constants import (
    KIND_IMAGE,
    KIND_VIDEO,
    TYPE_GIF,
    TYPE_IMAGE,
    TYPE_VIDEO,
)
from uploads.service.image import process_image
from uploads.service.video import process_video


def resolve_target_type(kind, is_gif, requested_type=None):
    """
    Decide what the finished item will be.

    Images always become IMAGE. Among animated inputs the caller may switch
    between VIDEO and GIF; anything else falls back to the detected type.

    Args:
        kind: 'image' or 'video' (GIF uploads are routed as video)
        is_gif: True when the upload is a GIF
        requested_type: 'AUTO', 'IMAGE', 'VIDEO', 'GIF' or None

    Returns:
        str: 'IMAGE', 'VIDEO' or 'GIF'
    """
    if kind == KIND_IMAGE:
        return TYPE_IMAGE

    detected = TYPE_GIF if is_gif else TYPE_VIDEO
    if requested_type in (TYPE_VIDEO, TYPE_GIF):
        return requested_type
    return detected


def process_upload(input_path, directory, config, kind, target_type,
                   on_progress=None, should_cancel=None, logger=None):
    """
    Run the pipeline for one upload.

    Args:
        input_path: Path to the source file
        directory: scratch directory for rendition output
        config: ProcessingConfig
        kind: 'image' or 'video'
        target_type: resolved target type

    Returns:
        PipelineResult
    """
    if kind == KIND_IMAGE:
        return process_image(
            input_path,
            directory,
            config,
            on_progress=on_progress,
            should_cancel=should_cancel,
            logger=logger,
        )
    if kind == KIND_VIDEO:
        return process_video(
            input_path,
            directory,
            config,
            target_type=target_type,
            on_progress=on_progress,
            should_cancel=should_cancel,
            logger=logger,
        )
    raise ValueError(f'Unknown media kind: {kind}')
