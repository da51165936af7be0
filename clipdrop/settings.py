"""
Django settings for the clipdrop project.

Every service knob can be overridden from the environment so the same build
runs locally and on a hosted container.
"""

import os
from pathlib import Path


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return int(value)


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'clipdrop-insecure-dev-key')

DEBUG = _env_bool('DJANGO_DEBUG', False)

ALLOWED_HOSTS = [
    host.strip() for host in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if host.strip()
]

INSTALLED_APPS = [
    'clips',
]

MIDDLEWARE = [
    'clips.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
]

ROOT_URLCONF = 'clipdrop.urls'

WSGI_APPLICATION = 'clipdrop.wsgi.application'

# No database: artifacts live on disk and expiry records live in memory
DATABASES = {}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

APPEND_SLASH = False

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

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
        'clips': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'django': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}

# Port used by `manage.py runserver` when none is given on the command line
PORT = os.environ.get('PORT', '5000')

# Shared directory that holds downloaded artifacts until they expire
CLIPDROP_DOWNLOAD_DIR = Path(os.environ.get('CLIPDROP_DOWNLOAD_DIR', BASE_DIR / 'downloads'))

# Optional directory of vendored tool binaries (made executable on startup)
CLIPDROP_BIN_DIR = Path(os.environ.get('CLIPDROP_BIN_DIR', BASE_DIR / 'bin'))

# Explicit tool paths; empty means "vendored binary, else PATH"
CLIPDROP_YTDLP = os.environ.get('CLIPDROP_YTDLP', '')
CLIPDROP_FFMPEG = os.environ.get('CLIPDROP_FFMPEG', '')

# Proxy handed to yt-dlp (needed on cloud VMs where some hosts block requests)
CLIPDROP_YTDLP_PROXY = os.environ.get('CLIPDROP_YTDLP_PROXY', '')

CLIPDROP_EXPIRY_MINUTES = _env_int('CLIPDROP_EXPIRY_MINUTES', 10)
CLIPDROP_SWEEP_INTERVAL = _env_int('CLIPDROP_SWEEP_INTERVAL', 15)
CLIPDROP_SWEEPER_ENABLED = _env_bool('CLIPDROP_SWEEPER_ENABLED', True)

CLIPDROP_PROBE_MAX_OUTPUT = _env_int('CLIPDROP_PROBE_MAX_OUTPUT', 20 * 1024 * 1024)
CLIPDROP_DOWNLOAD_MAX_OUTPUT = _env_int('CLIPDROP_DOWNLOAD_MAX_OUTPUT', 50 * 1024 * 1024)
CLIPDROP_PROBE_TIMEOUT = _env_int('CLIPDROP_PROBE_TIMEOUT', 120)
CLIPDROP_DOWNLOAD_TIMEOUT = _env_int('CLIPDROP_DOWNLOAD_TIMEOUT', 1800)

CLIPDROP_DEFAULT_FORMAT = os.environ.get('CLIPDROP_DEFAULT_FORMAT', 'best[ext=mp4]/best')
CLIPDROP_MERGE_FORMAT = os.environ.get('CLIPDROP_MERGE_FORMAT', 'mp4')
CLIPDROP_TITLE_MAX_BYTES = _env_int('CLIPDROP_TITLE_MAX_BYTES', 100)

# Give every download its own subdirectory so the output lookup is exact
CLIPDROP_ISOLATE_DOWNLOADS = _env_bool('CLIPDROP_ISOLATE_DOWNLOADS', True)

# Reject an itag that the probe did not report instead of passing it through
CLIPDROP_VALIDATE_FORMAT_ID = _env_bool('CLIPDROP_VALIDATE_FORMAT_ID', True)
