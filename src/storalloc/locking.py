"""Cross-process named locks backed by ``flock(2)``.

Each lock key maps to a file under the lock directory. The exclusive holder
writes JSON metadata (pid, key, acquisition time) into the file so operators
can see who owns a stuck lock. Lock files persist after release; only the
kernel lock state matters.

``flock`` locks belong to the open file description, so two :class:`FileMutex`
objects for the same key exclude each other even inside a single process.
"""
from __future__ import annotations

import fcntl
import json
import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Protocol, runtime_checkable

LOGGER = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")

SHARED_HOLDER_RETRIES = 20


class LockTimeoutError(RuntimeError):
    """Raised when waiting for a lock exceeds the configured timeout."""


@runtime_checkable
class AccountLock(Protocol):
    """Named mutex consumed by the creation coordinator."""

    def try_lock(self) -> bool:
        """Attempt to acquire the lock without blocking."""
        ...

    def wait(self) -> None:
        """Block until the current holder releases the lock."""
        ...

    def unlock(self) -> None:
        """Release the lock if held. Calling it twice is harmless."""
        ...


class FileMutex:
    """Non-reentrant exclusive lock on a single lock file."""

    def __init__(self, path: Path, key: str, *, timeout: float, poll_interval: float = 0.1) -> None:
        """Bind the mutex to *path*; nothing is opened until :meth:`try_lock`."""
        self.path = path
        self.key = key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.wait_ms = 0
        self._handle: IO[str] | None = None

    @property
    def locked(self) -> bool:
        """Return ``True`` while this object holds the lock."""
        return self._handle is not None

    def try_lock(self) -> bool:
        """Attempt a non-blocking exclusive acquisition.

        Waiters hold a shared lock for an instant while checking for release.
        When only shared holders block the attempt, nobody owns the lock, so
        the exclusive attempt is repeated for up to
        :data:`SHARED_HOLDER_RETRIES` poll intervals before giving up.
        """
        if self._handle is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+", encoding="utf-8")
        try:
            acquired = self._acquire_exclusive(handle)
        except BaseException:
            handle.close()
            raise
        if not acquired:
            handle.close()
            LOGGER.debug("Lock %s is held by another process.", self.key)
            return False
        self._handle = handle
        self._write_metadata(handle)
        return True

    def wait(self) -> None:
        """Block until the exclusive holder releases, or raise :class:`LockTimeoutError`."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        start = time.monotonic()
        deadline = start + self.timeout
        with self.path.open("a+", encoding="utf-8") as handle:
            while True:
                try:
                    fcntl.flock(handle.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                except BlockingIOError:
                    if time.monotonic() >= deadline:
                        self.wait_ms = int((time.monotonic() - start) * 1000)
                        raise LockTimeoutError(
                            f"Timed out after {self.timeout:.1f}s waiting for lock "
                            f"'{self.key}' ({self.path})."
                        ) from None
                    time.sleep(self.poll_interval)
                    continue
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                break
        self.wait_ms = int((time.monotonic() - start) * 1000)
        LOGGER.debug("Lock %s released by its holder after %d ms.", self.key, self.wait_ms)

    def unlock(self) -> None:
        """Release the lock and close the file handle."""
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()

    def _acquire_exclusive(self, handle: IO[str]) -> bool:
        fd = handle.fileno()
        for _ in range(SHARED_HOLDER_RETRIES + 1):
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                pass
            else:
                return True
            try:
                fcntl.flock(fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
            except BlockingIOError:
                return False
            # Only shared holders: a waiter is checking for release.
            fcntl.flock(fd, fcntl.LOCK_UN)
            time.sleep(self.poll_interval)
        return False

    def _write_metadata(self, handle: IO[str]) -> None:
        metadata = {
            "key": self.key,
            "path": str(self.path),
            "pid": os.getpid(),
            "acquired_at": datetime.now(tz=UTC).isoformat(timespec="seconds"),
        }
        handle.seek(0)
        handle.truncate()
        handle.write(json.dumps(metadata, sort_keys=True))
        handle.flush()


@dataclass(slots=True)
class LockManager:
    """Build named mutexes rooted in a shared lock directory."""

    root: Path
    default_timeout: float = 180.0
    prefix: str = "storalloc-lock-"
    poll_interval: float = 0.1

    def __post_init__(self) -> None:
        """Normalise the lock directory."""
        self.root = Path(self.root).expanduser()

    def path_for(self, key: str) -> Path:
        """Return the lock file path for *key*."""
        safe = _UNSAFE_KEY_CHARS.sub("_", key)
        return self.root / f"{self.prefix}{safe}.lock"

    def mutex(self, key: str, *, timeout: float | None = None) -> FileMutex:
        """Return an unlocked :class:`FileMutex` for *key*."""
        if not key.strip():
            raise ValueError("Lock key must be a non-empty string.")
        return FileMutex(
            self.path_for(key),
            key,
            timeout=self.default_timeout if timeout is None else timeout,
            poll_interval=self.poll_interval,
        )


__all__ = ["AccountLock", "FileMutex", "LockManager", "LockTimeoutError"]
