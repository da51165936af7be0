"""
Deadline-based deletion of artifacts.

Each served artifact gets one expiry record (path, deadline). A single
background thread sweeps the records periodically; fetches never extend or
cancel a deadline.
"""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ExpiryRecord:
    path: Path
    deadline: float
    # Request directory to remove once it is empty
    directory: Optional[Path] = None


class ExpirySchedule:
    """
    In-memory map of artifact path -> expiry record.

    Args:
        clock: Callable returning the current time in seconds. Tests inject a
            fake clock to drive expiry deterministically.
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self._records = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    def schedule(self, path, delay, directory=None):
        """
        Arm deletion of ``path`` ``delay`` seconds from now.

        Scheduling a path that already has a record keeps the earlier deadline.

        Args:
            path: Artifact file
            delay: Seconds until deletion
            directory: Optional request directory removed after the file if empty

        Returns:
            float: The deadline
        """
        path = Path(path)
        deadline = self.clock() + delay
        with self._lock:
            existing = self._records.get(path)
            if existing is not None and existing.deadline <= deadline:
                return existing.deadline
            self._records[path] = ExpiryRecord(
                path=path,
                deadline=deadline,
                directory=Path(directory) if directory else None,
            )
        logger.debug('Scheduled expiry of %s at %s', path, deadline)
        return deadline

    def deadline_for(self, path):
        with self._lock:
            record = self._records.get(Path(path))
        return record.deadline if record else None

    def pending(self):
        """Snapshot of expiry records, soonest first"""
        with self._lock:
            return sorted(self._records.values(), key=lambda record: record.deadline)

    def __len__(self):
        with self._lock:
            return len(self._records)

    def sweep(self, now=None):
        """
        Delete every artifact whose deadline has passed.

        Deletion failures are logged and the record is dropped; nothing is
        raised to the caller.

        Returns:
            list[Path]: Paths whose records were due
        """
        if now is None:
            now = self.clock()

        with self._lock:
            due = [record for record in self._records.values() if record.deadline <= now]
            for record in due:
                del self._records[record.path]

        for record in due:
            _delete_artifact(record)
        return [record.path for record in due]

    def clear(self):
        with self._lock:
            self._records.clear()

    def start(self, interval):
        """Start the sweeper thread (no-op if it is already running)"""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, args=(interval,), name='artifact-sweeper', daemon=True
        )
        self._thread.start()
        logger.info('Artifact sweeper started (interval %ss)', interval)

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self, interval):
        while not self._stop.wait(interval):
            try:
                self.sweep()
            except Exception:
                logger.exception('Artifact sweep failed')


def _delete_artifact(record):
    """Remove an artifact file, then its request directory if nothing else is left."""
    try:
        record.path.unlink()
        logger.info('Expired artifact deleted: %s', record.path.name)
    except FileNotFoundError:
        logger.debug('Expired artifact already gone: %s', record.path)
    except OSError as e:
        logger.warning('Could not delete expired artifact %s: %s', record.path, e)
        return

    if record.directory is not None:
        try:
            record.directory.rmdir()
        except OSError as e:
            logger.debug('Request directory %s left in place: %s', record.directory, e)


# Process-wide schedule used by the views and started by the app config
expiry_schedule = ExpirySchedule()
