import logging
import os
import stat
import sys

from django.apps import AppConfig

logger = logging.getLogger(__name__)

VENDORED_TOOLS = ('yt-dlp', 'ffmpeg', 'ffprobe')

MANAGE_SCRIPTS = ('manage.py', 'django-admin')


def make_tools_executable(bin_dir):
    """
    Add execute permission to vendored tool binaries.

    Binaries copied in by a deploy often lose their mode bits.

    Returns:
        list[str]: Names of binaries whose mode was changed
    """
    changed = []
    for name in VENDORED_TOOLS:
        path = bin_dir / name
        if not path.is_file():
            continue
        mode = path.stat().st_mode
        wanted = mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
        if mode != wanted:
            try:
                os.chmod(path, wanted)
            except OSError as e:
                logger.warning('Could not make %s executable: %s', path, e)
                continue
            changed.append(name)
    return changed


def serves_requests(argv):
    """
    Whether this process will answer HTTP requests.

    Management commands other than runserver (and test runs) never hand out
    files, so they have nothing to expire.
    """
    if not argv:
        return True
    program = os.path.basename(argv[0])
    if program in MANAGE_SCRIPTS:
        return len(argv) > 1 and argv[1] == 'runserver'
    if 'pytest' in argv[0] or 'py.test' in argv[0]:
        return False
    return True


class ClipsConfig(AppConfig):
    name = 'clips'

    def ready(self):
        """Prepare the download directory and tools, then start the sweeper"""
        from clips.service.config import get_bin_dir, get_sweep_interval, is_sweeper_enabled
        from clips.service.expiry import expiry_schedule
        from clips.service.store import get_store

        get_store().ensure_root()

        changed = make_tools_executable(get_bin_dir())
        if changed:
            logger.info('Made vendored tools executable: %s', ', '.join(changed))

        if is_sweeper_enabled() and serves_requests(sys.argv):
            expiry_schedule.start(get_sweep_interval())
