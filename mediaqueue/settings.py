"""
Django settings for the mediaqueue project.

Every MEDIAQUEUE_* value can be overridden from the environment so the same
settings module serves development, the huey worker and production.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-mediaqueue-dev-key')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'huey.contrib.djhuey',
    'uploads',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'mediaqueue.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'mediaqueue.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('MEDIAQUEUE_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
        # Writers take the lock at BEGIN, so concurrent claims queue up
        # behind each other instead of failing on lock upgrade
        'OPTIONS': {
            'transaction_mode': 'IMMEDIATE',
            'timeout': 20,
        },
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# Storage layout
MEDIAQUEUE_STORAGE_DIR = os.environ.get('MEDIAQUEUE_STORAGE_DIR', str(BASE_DIR / 'storage'))
MEDIAQUEUE_DIRECTORIES = {
    'original': 'original',
    'compressed': 'compressed',
    'thumbnail': 'thumbnail',
    'queue': 'queue',
    'tmp': 'tmp',
}

# Image renditions
MEDIAQUEUE_IMAGE_MAX_SIZE = int(os.environ.get('MEDIAQUEUE_IMAGE_MAX_SIZE', 900))
MEDIAQUEUE_IMAGE_JPEG_QUALITY = int(os.environ.get('MEDIAQUEUE_IMAGE_JPEG_QUALITY', 91))
MEDIAQUEUE_IMAGE_WEBP_QUALITY = int(os.environ.get('MEDIAQUEUE_IMAGE_WEBP_QUALITY', 80))
MEDIAQUEUE_THUMBNAIL_SIZE = int(os.environ.get('MEDIAQUEUE_THUMBNAIL_SIZE', 400))
MEDIAQUEUE_THUMBNAIL_QUALITY = int(os.environ.get('MEDIAQUEUE_THUMBNAIL_QUALITY', 50))

# Video / GIF renditions
MEDIAQUEUE_VIDEO_MAX_HEIGHT = int(os.environ.get('MEDIAQUEUE_VIDEO_MAX_HEIGHT', 720))
MEDIAQUEUE_VIDEO_THUMBNAIL_WIDTH = int(os.environ.get('MEDIAQUEUE_VIDEO_THUMBNAIL_WIDTH', 400))
MEDIAQUEUE_VIDEO_THUMBNAIL_DURATION = float(os.environ.get('MEDIAQUEUE_VIDEO_THUMBNAIL_DURATION', 7.5))
MEDIAQUEUE_FRAME_OFFSET = float(os.environ.get('MEDIAQUEUE_FRAME_OFFSET', 1.0))
MEDIAQUEUE_GIF_MAX_WIDTH = int(os.environ.get('MEDIAQUEUE_GIF_MAX_WIDTH', 480))
MEDIAQUEUE_GIF_FPS = int(os.environ.get('MEDIAQUEUE_GIF_FPS', 25))
MEDIAQUEUE_FFMPEG_BINARY = os.environ.get('MEDIAQUEUE_FFMPEG_BINARY', 'ffmpeg')
MEDIAQUEUE_FFPROBE_BINARY = os.environ.get('MEDIAQUEUE_FFPROBE_BINARY', 'ffprobe')

# Cleanup
MEDIAQUEUE_STUCK_MINUTES = int(os.environ.get('MEDIAQUEUE_STUCK_MINUTES', 30))
MEDIAQUEUE_TMP_MAX_AGE_MINUTES = int(os.environ.get('MEDIAQUEUE_TMP_MAX_AGE_MINUTES', 60))

# Domain object created from a finished task
MEDIAQUEUE_DOMAIN_STORE = os.environ.get('MEDIAQUEUE_DOMAIN_STORE', 'uploads.domain.ItemStore')

# A single thread worker: the queue never runs two pipelines at once.
HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'mediaqueue',
    'filename': os.environ.get('MEDIAQUEUE_HUEY_DB', str(BASE_DIR / 'huey.sqlite3')),
    # Immediate mode runs the whole transcode inside the submitting request;
    # only for local debugging without a consumer
    'immediate': env_bool('MEDIAQUEUE_HUEY_IMMEDIATE', False),
    'consumer': {
        'workers': 1,
        'worker_type': 'thread',
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'uploads': {
            'handlers': ['console'],
            'level': os.environ.get('MEDIAQUEUE_LOG_LEVEL', 'INFO'),
        },
        'huey': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}
