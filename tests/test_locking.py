"""Tests for the named lock primitives."""
from __future__ import annotations

import fcntl
import json
import os
import threading
import time
from pathlib import Path

import pytest

from storalloc.locking import AccountLock, LockManager, LockTimeoutError


def test_try_lock_writes_metadata_and_releases(tmp_path: Path) -> None:
    """Acquiring a lock writes metadata; the file persists after release."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0)
    mutex = manager.mutex("create-storage-account-alpha")
    lock_path = tmp_path / "locks" / "storalloc-lock-create-storage-account-alpha.lock"

    assert isinstance(mutex, AccountLock)
    assert mutex.try_lock() is True
    assert mutex.locked
    data = json.loads(lock_path.read_text(encoding="utf-8"))
    assert data["pid"] == os.getpid()
    assert data["path"] == str(lock_path)
    assert data["key"] == "create-storage-account-alpha"

    mutex.unlock()
    mutex.unlock()
    assert not mutex.locked
    assert lock_path.exists()

    again = manager.mutex("create-storage-account-alpha")
    assert again.try_lock() is True
    again.unlock()


def test_second_mutex_is_excluded_while_held(tmp_path: Path) -> None:
    """Two mutexes for the same key exclude each other within one process."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0)
    first = manager.mutex("key")
    second = manager.mutex("key")

    assert first.try_lock() is True
    try:
        assert second.try_lock() is False
        assert manager.mutex("other").try_lock() is True
    finally:
        first.unlock()

    assert second.try_lock() is True
    second.unlock()


def test_wait_times_out_while_holder_keeps_lock(tmp_path: Path) -> None:
    """Waiting raises LockTimeoutError once the timeout elapses."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0, poll_interval=0.01)
    holder = manager.mutex("key")
    assert holder.try_lock()
    try:
        waiter = manager.mutex("key", timeout=0.1)
        with pytest.raises(LockTimeoutError, match="Timed out"):
            waiter.wait()
        assert waiter.wait_ms >= 90
    finally:
        holder.unlock()


def test_wait_returns_after_holder_releases(tmp_path: Path) -> None:
    """Waiting returns once the holder unlocks and does not take the lock."""
    manager = LockManager(tmp_path / "locks", default_timeout=5.0, poll_interval=0.01)
    holder = manager.mutex("key")
    assert holder.try_lock()

    releaser = threading.Timer(0.1, holder.unlock)
    releaser.start()
    waiter = manager.mutex("key")
    waiter.wait()
    releaser.join()

    assert not waiter.locked
    assert waiter.wait_ms >= 50
    assert manager.mutex("key").try_lock() is True


def test_wait_returns_immediately_when_free(tmp_path: Path) -> None:
    """Waiting on a free lock does not block."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0)
    started = time.monotonic()

    manager.mutex("key").wait()

    assert time.monotonic() - started < 1.0


def test_path_for_sanitises_keys(tmp_path: Path) -> None:
    """Unsafe key characters map to underscores in the lock file name."""
    manager = LockManager(tmp_path / "locks")

    assert manager.path_for("a/b c") == tmp_path / "locks" / "storalloc-lock-a_b_c.lock"


def test_mutex_rejects_blank_key(tmp_path: Path) -> None:
    """Blank lock keys are rejected."""
    manager = LockManager(tmp_path / "locks")

    with pytest.raises(ValueError, match="non-empty"):
        manager.mutex("  ")


def test_try_lock_is_not_blocked_by_a_releasing_waiter(tmp_path: Path) -> None:
    """A momentary shared hold from a waiter does not count as contention."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0, poll_interval=0.02)
    lock_path = manager.path_for("key")
    lock_path.parent.mkdir(parents=True)
    with lock_path.open("a+", encoding="utf-8") as waiter_handle:
        fcntl.flock(waiter_handle.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
        releaser = threading.Timer(0.05, fcntl.flock, (waiter_handle.fileno(), fcntl.LOCK_UN))
        releaser.start()
        mutex = manager.mutex("key")
        try:
            assert mutex.try_lock() is True
        finally:
            releaser.join()
            mutex.unlock()


def test_try_lock_gives_up_on_a_lingering_shared_holder(tmp_path: Path) -> None:
    """Shared holders that never release make try_lock report contention."""
    manager = LockManager(tmp_path / "locks", default_timeout=1.0, poll_interval=0.001)
    lock_path = manager.path_for("key")
    lock_path.parent.mkdir(parents=True)
    with lock_path.open("a+", encoding="utf-8") as waiter_handle:
        fcntl.flock(waiter_handle.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)

        assert manager.mutex("key").try_lock() is False
