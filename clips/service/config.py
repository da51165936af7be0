"""
Configuration adapter for extraction settings.

Centralizes access to Django settings so the service layer, views and
management commands agree on directories, tool paths and limits.
"""

import shutil
from pathlib import Path

from django.conf import settings

from clips.service.constants import ARTIFACT_EXTENSIONS


def get_download_dir():
    """Get the shared artifact directory"""
    return Path(settings.CLIPDROP_DOWNLOAD_DIR)


def get_bin_dir():
    """Get the directory that may hold vendored tool binaries"""
    return Path(settings.CLIPDROP_BIN_DIR)


def _resolve_tool(explicit, name):
    """
    Resolve the executable for an external tool.

    Args:
        explicit: Path configured in settings (may be empty)
        name: Executable name, e.g. 'yt-dlp'

    Returns:
        str: Path or bare name to hand to subprocess
    """
    if explicit:
        return explicit

    vendored = get_bin_dir() / name
    if vendored.is_file():
        return str(vendored)

    return shutil.which(name) or name


def get_ytdlp_path():
    """Get the yt-dlp executable"""
    return _resolve_tool(settings.CLIPDROP_YTDLP, 'yt-dlp')


def get_ffmpeg_path():
    """
    Get the ffmpeg location to pass to yt-dlp.

    Returns:
        str | None: None when neither a setting nor a vendored binary exists,
        in which case yt-dlp looks on PATH by itself.
    """
    if settings.CLIPDROP_FFMPEG:
        return settings.CLIPDROP_FFMPEG
    vendored = get_bin_dir() / 'ffmpeg'
    if vendored.is_file():
        return str(vendored)
    return None


def get_ytdlp_proxy():
    return settings.CLIPDROP_YTDLP_PROXY


def get_expiry_minutes():
    """Minutes an artifact stays retrievable"""
    return settings.CLIPDROP_EXPIRY_MINUTES


def get_expiry_seconds():
    return get_expiry_minutes() * 60


def get_sweep_interval():
    return settings.CLIPDROP_SWEEP_INTERVAL


def is_sweeper_enabled():
    return settings.CLIPDROP_SWEEPER_ENABLED


def get_probe_limits():
    """
    Output cap and timeout for metadata probes.

    Returns:
        tuple[int, int]: (max_output_bytes, timeout_seconds)
    """
    return settings.CLIPDROP_PROBE_MAX_OUTPUT, settings.CLIPDROP_PROBE_TIMEOUT


def get_download_limits():
    """
    Output cap and timeout for downloads.

    Returns:
        tuple[int, int]: (max_output_bytes, timeout_seconds)
    """
    return settings.CLIPDROP_DOWNLOAD_MAX_OUTPUT, settings.CLIPDROP_DOWNLOAD_TIMEOUT


def get_default_format():
    """Format spec used when the client does not pick one"""
    return settings.CLIPDROP_DEFAULT_FORMAT


def get_merge_format():
    """Container that separate video and audio streams are merged into"""
    return settings.CLIPDROP_MERGE_FORMAT


def get_output_template():
    """
    yt-dlp output template for artifact file names.

    The title is truncated to a bounded number of bytes; yt-dlp itself
    replaces path separators and, with --windows-filenames, other hostile
    characters.
    """
    return f'%(title).{settings.CLIPDROP_TITLE_MAX_BYTES}B.%(ext)s'


def get_allowed_extensions():
    """Extensions that count as a finished artifact"""
    return list(ARTIFACT_EXTENSIONS)


def isolate_downloads():
    return settings.CLIPDROP_ISOLATE_DOWNLOADS


def validate_format_id():
    return settings.CLIPDROP_VALIDATE_FORMAT_ID
