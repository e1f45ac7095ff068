"""PID lockfile: keeps a single supervisor instance running per pid file.

The exclusive ``flock`` on the open file is the source of truth for "an
instance is running".  The kernel drops the lock when the holder dies, so a
stale file left by a crashed supervisor never blocks a fresh start.  The
decimal pid written into the file is for humans and for the stop path.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from pathlib import Path

from runserver.errors import LockError

logger = logging.getLogger(__name__)


def _is_process_alive(pid: int) -> bool:
    """Check if a process with the given PID is still running.

    A permission error means the process exists but belongs to someone else,
    which still counts as alive.
    """
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class PidFile:
    """A path-addressed, advisory-locked file holding the owner's pid."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def open_or_create(self) -> None:
        """Open the pid file for writing, creating it if absent."""
        self.close()
        try:
            self._fd = os.open(self._path, os.O_CREAT | os.O_WRONLY | os.O_NONBLOCK, 0o644)
        except OSError as exc:
            msg = f"could not create pidfile {self._path}: {exc.strerror}"
            raise LockError(msg) from exc

    def try_exclusive_lock(self) -> bool:
        """Take the exclusive lock without blocking.

        Returns False when another process holds it.  On success the
        descriptor is made non-inheritable so the child never sees it.
        """
        if self._fd is None:
            msg = f"pidfile {self._path} is not open"
            raise LockError(msg)
        try:
            fcntl.flock(self._fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            logger.debug("could not lock pidfile %s: %s", self._path, exc.strerror)
            self.close()
            return False
        os.set_inheritable(self._fd, False)
        return True

    def claim(self) -> None:
        """Open and lock the pid file, raising ``LockError`` if that fails."""
        self.open_or_create()
        if not self.try_exclusive_lock():
            msg = f"could not lock pidfile {self._path}: held by another process"
            raise LockError(msg)

    def read_pid(self) -> int:
        """Return the pid on the first line, or 0 when missing or unparsable."""
        try:
            with self._path.open(encoding="utf-8", errors="replace") as fh:
                first = fh.readline()
        except OSError:
            return 0
        try:
            return int(first.strip())
        except ValueError:
            return 0

    def is_running(self) -> bool:
        """True if the recorded owner still exists (null signal succeeds or is refused)."""
        pid = self.read_pid()
        if pid < 1:
            return False
        return _is_process_alive(pid)

    def is_mine(self) -> bool:
        return self.read_pid() == os.getpid()

    def write_pid(self) -> None:
        """Replace the file contents with our own pid.

        Must be called with the lock held.  A short or failed write exits the
        process with status 1, since liveness tracking would be unreliable.
        """
        if self._fd is None:
            msg = f"pidfile {self._path} is not locked"
            raise LockError(msg)
        data = f"{os.getpid()}\n".encode()
        try:
            os.ftruncate(self._fd, 0)
            os.lseek(self._fd, 0, os.SEEK_SET)
            written = os.write(self._fd, data)
        except OSError as exc:
            logger.error("could not write pid to %s: %s", self._path, exc.strerror)
            raise SystemExit(1) from exc
        if written != len(data):
            logger.error("could not write pid to %s: short write", self._path)
            raise SystemExit(1)
        logger.debug("wrote %r to %s (fd %d)", data, self._path, self._fd)

    def cleanup(self) -> None:
        """Remove the file if we own it or its owner is gone, then unlock."""
        if self.is_mine() or not self.is_running():
            with contextlib.suppress(FileNotFoundError):
                self._path.unlink()
            logger.debug("removed pidfile %s", self._path)
        self.close()

    def close(self) -> None:
        """Release the lock and descriptor (idempotent)."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        with contextlib.suppress(OSError):
            os.close(fd)
