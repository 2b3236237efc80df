"""
Rendition matrix and type constants.

Centralized definitions of target types and the files each one produces.
"""

# Target types (what the finished item is)
TYPE_IMAGE = 'IMAGE'
TYPE_VIDEO = 'VIDEO'
TYPE_GIF = 'GIF'

TARGET_TYPES = [TYPE_IMAGE, TYPE_VIDEO, TYPE_GIF]

# Detected kinds (which pipeline runs)
KIND_IMAGE = 'image'
KIND_VIDEO = 'video'

# Formats written per category for each target type. Video thumbnails are
# two stills taken from the representative frame plus two short videos.
RENDITIONS = {
    TYPE_IMAGE: {
        'compressed': ['jpeg', 'webp'],
        'thumbnail': ['jpeg', 'webp'],
    },
    TYPE_VIDEO: {
        'compressed': ['mp4', 'webm'],
        'thumbnail': ['jpeg', 'webp', 'mp4', 'webm'],
    },
    TYPE_GIF: {
        'compressed': ['gif', 'mp4', 'webm'],
        'thumbnail': ['jpeg', 'webp', 'mp4', 'webm'],
    },
}

# MIME types outside image/* and video/* that are still routed as video
EXTRA_VIDEO_MIME_TYPES = ['application/vnd.ms-asf']

GIF_MIME_TYPE = 'image/gif'
