"""
Upload type classification.

Sniffs the leading bytes of an upload (never its filename) to find the real
type, and rejects anything that is not an image or a video before a task
record exists.
"""
from dataclasses import dataclass
import io

import filetype

from uploads.errors import UnrecognizedType, UnsupportedType
from uploads.service.constants import (
    EXTRA_VIDEO_MIME_TYPES,
    GIF_MIME_TYPE,
    KIND_IMAGE,
    KIND_VIDEO,
)

# Enough for every signature filetype knows about
SIGNATURE_BYTES = 8192


@dataclass(frozen=True)
class FileTypeInfo:
    """Detected type of an upload"""
    extension: str
    mime_type: str
    kind: str

    @property
    def is_gif(self):
        return self.mime_type == GIF_MIME_TYPE


def get_kind(mime_type):
    """
    Map a MIME type to the pipeline kind.

    GIFs are treated as videos for routing.

    Raises:
        UnsupportedType: for anything other than image/* or video/*
    """
    if mime_type == GIF_MIME_TYPE:
        return KIND_VIDEO
    if mime_type in EXTRA_VIDEO_MIME_TYPES:
        return KIND_VIDEO

    major = mime_type.split('/')[0]
    if major == 'image':
        return KIND_IMAGE
    if major == 'video':
        return KIND_VIDEO
    raise UnsupportedType(f'File type {mime_type} is not supported', mime_type=mime_type)


def classify_bytes(head):
    """
    Classify the leading bytes of a file.

    Args:
        head: bytes read from the start of the upload

    Returns:
        FileTypeInfo

    Raises:
        UnrecognizedType: if no signature matches
        UnsupportedType: if the type is recognized but not allowed
    """
    match = filetype.guess(bytes(head)) if head else None
    if match is None:
        raise UnrecognizedType()

    kind = get_kind(match.mime)
    return FileTypeInfo(extension=match.extension, mime_type=match.mime, kind=kind)


class TypedStream(io.RawIOBase):
    """
    Readable stream that replays the sniffed head before the rest of the
    underlying stream, so classification never loses bytes.
    """

    def __init__(self, head, stream, file_type):
        super().__init__()
        self._head = io.BytesIO(head)
        self._stream = stream
        self.file_type = file_type

    def readable(self):
        return True

    def readinto(self, buffer):
        data = self._head.read(len(buffer))
        if not data:
            data = self._stream.read(len(buffer))
        if not data:
            return 0
        buffer[:len(data)] = data
        return len(data)


def classify_stream(stream):
    """
    Classify a readable binary stream.

    Returns:
        TypedStream: the same content, with .file_type set
    """
    head = stream.read(SIGNATURE_BYTES)
    if isinstance(head, str):
        raise UnrecognizedType('Upload must be a binary stream')
    file_type = classify_bytes(head)
    return TypedStream(head, stream, file_type)


def classify_file(path):
    """Classify a file on disk by its content"""
    with open(path, 'rb') as f:
        return classify_bytes(f.read(SIGNATURE_BYTES))
