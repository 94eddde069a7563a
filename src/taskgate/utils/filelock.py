"""Exclusive lock files for shared documents (work queue, debt inventory)."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from taskgate.errors import TaskgateError

logger = logging.getLogger(__name__)

# A lock older than this is assumed to belong to a crashed writer
STALE_LOCK_SECONDS = 300.0


class LockTimeout(TaskgateError):
    """Raised when an exclusive lock cannot be acquired in time."""


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


@contextmanager
def exclusive_lock(path: Path, *, timeout: float = 30.0, poll: float = 0.05) -> Iterator[Path]:
    """Hold ``<path>.lock`` (created with O_EXCL) for the duration of the block."""
    lock_file = lock_path_for(path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout

    while True:
        try:
            fd = os.open(lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            break
        except FileExistsError:
            if _is_stale(lock_file):
                logger.warning("removing stale lock %s", lock_file)
                lock_file.unlink(missing_ok=True)
                continue
            if time.monotonic() >= deadline:
                raise LockTimeout(f"timed out waiting for lock on {path}") from None
            time.sleep(poll)

    logger.debug("lock acquired: %s", lock_file)
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
        yield lock_file
    finally:
        os.close(fd)
        lock_file.unlink(missing_ok=True)
        logger.debug("lock released: %s", lock_file)


def _is_stale(lock_file: Path) -> bool:
    try:
        age = time.time() - lock_file.stat().st_mtime
    except FileNotFoundError:
        return False
    return age > STALE_LOCK_SECONDS
