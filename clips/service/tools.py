"""
Subprocess runner for the external tools.

Commands are always argument vectors; no shell is ever involved, so URLs and
format ids travel to the tool as opaque data.
"""

import logging
import os
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024

# Seconds to wait for the output pipes to close once the tool has exited
READER_GRACE = 5


@dataclass
class ToolResult:
    """Outcome of one external tool run"""

    argv: List[str]
    returncode: Optional[int] = None
    stdout: bytes = b''
    stderr: bytes = b''
    overflowed: bool = False
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def ok(self):
        return (
            self.returncode == 0
            and not self.overflowed
            and not self.timed_out
            and self.error is None
        )

    def stdout_text(self):
        return self.stdout.decode('utf-8', errors='replace')

    def stderr_text(self):
        return self.stderr.decode('utf-8', errors='replace')

    def diagnostic(self):
        """Best human-readable explanation of a failed run"""
        if self.error:
            return self.error
        if self.overflowed:
            return 'Tool output exceeded the configured buffer limit'
        if self.timed_out:
            return 'Tool did not finish before the configured timeout'
        text = self.stderr_text().strip()
        return text or f'Process exited with status {self.returncode}'


def _kill_group(proc):
    """Kill the tool and every process it started (ffmpeg and friends)."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except OSError:
        pass


def _drain(stream, buffer, limit, overflow, proc):
    """Copy a pipe into ``buffer`` and kill the process once ``limit`` is passed."""
    for chunk in iter(lambda: stream.read(READ_CHUNK), b''):
        buffer.extend(chunk)
        if len(buffer) > limit:
            overflow.set()
            _kill_group(proc)
            break
    stream.close()


def run_tool(argv, max_output, timeout=None, cwd=None):
    """
    Run an external tool and collect its output.

    Args:
        argv: Argument vector; argv[0] is the executable
        max_output: Byte cap applied to stdout and stderr separately
        timeout: Wall-clock limit in seconds (None for no limit)
        cwd: Optional working directory

    Returns:
        ToolResult. Failures to start, overflow and timeout are reported on
        the result rather than raised.
    """
    argv = [str(arg) for arg in argv]
    result = ToolResult(argv=argv)

    logger.debug('Running: %s', argv)

    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            start_new_session=True,
        )
    except OSError as e:
        result.error = f'Could not start {argv[0]}: {e}'
        logger.error(result.error)
        return result

    stdout_buf = bytearray()
    stderr_buf = bytearray()
    overflow = threading.Event()
    readers = [
        threading.Thread(
            target=_drain, args=(proc.stdout, stdout_buf, max_output, overflow, proc), daemon=True
        ),
        threading.Thread(
            target=_drain, args=(proc.stderr, stderr_buf, max_output, overflow, proc), daemon=True
        ),
    ]
    for reader in readers:
        reader.start()

    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        result.timed_out = True
        _kill_group(proc)
        proc.wait()

    for reader in readers:
        reader.join(timeout=READER_GRACE)
    if any(reader.is_alive() for reader in readers):
        # Leftover children still hold the pipes open
        _kill_group(proc)
        for reader in readers:
            reader.join(timeout=READER_GRACE)

    result.returncode = proc.returncode
    result.stdout = bytes(stdout_buf)
    result.stderr = bytes(stderr_buf)
    result.overflowed = overflow.is_set()

    logger.debug(
        'Finished: %s (status=%s, overflowed=%s, timed_out=%s)',
        argv[0],
        result.returncode,
        result.overflowed,
        result.timed_out,
    )
    return result


def tool_version(executable, flag='--version'):
    """
    Return the first line of a tool's version output, or None if it cannot run.
    """
    result = run_tool([executable, flag], max_output=1024 * 1024, timeout=15)
    if not result.ok:
        return None
    lines = result.stdout_text().strip().splitlines()
    return lines[0] if lines else None
