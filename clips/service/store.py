"""
Ephemeral artifact store.

Owns the shared download directory: hands out output directories, resolves
the file a download produced, mints retrieval handles, serves files back
safely and arms their expiry.
"""

import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote, unquote

from nanoid import generate

from clips.service.config import get_download_dir, isolate_downloads
from clips.service.errors import ArtifactNotFound, NotFound
from clips.service.expiry import expiry_schedule

logger = logging.getLogger(__name__)

REQUEST_ID_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'
REQUEST_ID_SIZE = 12


@dataclass
class Artifact:
    """A downloaded file sitting in the store"""

    name: str
    path: Path
    relative_path: str
    extension: str
    file_size: int
    modified_at: float

    @classmethod
    def from_path(cls, path, root):
        path = Path(path)
        stat = path.stat()
        return cls(
            name=path.name,
            path=path,
            relative_path=path.relative_to(root).as_posix(),
            extension=path.suffix.lower(),
            file_size=stat.st_size,
            modified_at=stat.st_mtime,
        )


class ArtifactStore:
    """
    File-backed store rooted at one shared directory.

    Args:
        root: The shared download directory
        isolate: When True every download gets its own subdirectory, so the
            output lookup cannot pick up another request's file. When False
            all downloads share ``root`` and the newest matching file wins.
        schedule: ExpirySchedule that owns the deletion deadlines
    """

    def __init__(self, root, isolate=True, schedule=None):
        self.root = Path(root)
        self.isolate = isolate
        self.schedule = schedule if schedule is not None else expiry_schedule

    def ensure_root(self):
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def allocate(self):
        """
        Return the directory one download should write into.

        Returns:
            Path: A fresh request directory, or the shared root when isolation
            is off
        """
        self.ensure_root()
        if not self.isolate:
            return self.root

        while True:
            request_dir = self.root / generate(REQUEST_ID_ALPHABET, size=REQUEST_ID_SIZE)
            try:
                request_dir.mkdir()
            except FileExistsError:
                continue
            return request_dir

    def release(self, directory):
        """Discard a request directory that produced no artifact."""
        directory = Path(directory)
        if directory == self.root or self.root not in directory.parents:
            return
        shutil.rmtree(directory, ignore_errors=True)

    def resolve_latest(self, allowed_extensions, directory=None):
        """
        Pick the most recently modified file with an allowed extension.

        Scans ``directory`` (default: the root) non-recursively. Ties on
        modification time go to the lexicographically greatest name.

        Raises:
            ArtifactNotFound: If no file matches
        """
        directory = Path(directory) if directory is not None else self.root
        allowed = {ext.lower() for ext in allowed_extensions}

        candidates = []
        if directory.is_dir():
            for entry in directory.iterdir():
                if not entry.is_file() or entry.suffix.lower() not in allowed:
                    continue
                try:
                    candidates.append((entry.stat().st_mtime, entry.name, entry))
                except FileNotFoundError:
                    # Expired between listing and stat
                    continue

        if not candidates:
            raise ArtifactNotFound()

        _, _, newest = max(candidates, key=lambda item: (item[0], item[1]))
        return Artifact.from_path(newest, self.root)

    def mint_handle(self, artifact):
        """Encode an artifact's location as a single URL path segment"""
        return quote(artifact.relative_path, safe='')

    def fetch(self, handle):
        """
        Look up an artifact by retrieval handle as minted by mint_handle.

        This takes the still-encoded handle, for callers outside the HTTP layer.
        The URL resolver has already decoded the path, so the file view goes
        to open_relative directly; decoding twice would break titles that
        contain a literal percent sign.

        Raises:
            NotFound: If the file is gone or the handle points outside the store
        """
        return self.open_relative(unquote(handle))

    def open_relative(self, relative_path):
        """
        Look up an artifact by its decoded path relative to the root.

        The joined path is fully resolved (``..`` and symlinks included) and
        must stay strictly inside the root.

        Raises:
            NotFound: If the file is gone or the path escapes the store
        """
        if not relative_path or '\x00' in relative_path:
            raise NotFound()

        root = self.root.resolve()
        try:
            candidate = (root / relative_path).resolve()
        except (OSError, RuntimeError):
            raise NotFound()

        if root not in candidate.parents:
            logger.warning('Rejected handle outside the download directory: %r', relative_path)
            raise NotFound()

        if not candidate.is_file():
            raise NotFound()

        try:
            return Artifact.from_path(candidate, root)
        except FileNotFoundError:
            raise NotFound()

    def schedule_expiry(self, artifact, delay):
        """
        Arm unconditional deletion of ``artifact`` ``delay`` seconds from now.

        Returns:
            float: The deadline
        """
        directory = None
        if self.isolate and artifact.path.parent != self.root:
            directory = artifact.path.parent
        return self.schedule.schedule(artifact.path, delay, directory=directory)

    def reap_stale(self, max_age, now=None, dry_run=False):
        """
        Delete artifacts and request directories older than ``max_age`` seconds.

        Covers files whose in-memory expiry record was lost, e.g. after a
        restart.

        Returns:
            list[Path]: Entries that were (or, with dry_run, would be) removed
        """
        if now is None:
            now = time.time()
        if not self.root.is_dir():
            return []

        removed = []
        for entry in sorted(self.root.iterdir()):
            try:
                age = now - entry.stat().st_mtime
            except FileNotFoundError:
                continue
            if age <= max_age:
                continue

            removed.append(entry)
            if dry_run:
                continue
            try:
                if entry.is_dir():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                logger.info('Reaped stale artifact: %s', entry.name)
            except OSError as e:
                logger.warning('Could not reap %s: %s', entry, e)
        return removed


def get_store(schedule=None):
    """Build a store from the current settings"""
    return ArtifactStore(get_download_dir(), isolate=isolate_downloads(), schedule=schedule)
