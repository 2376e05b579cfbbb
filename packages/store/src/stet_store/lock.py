"""Advisory lock that keeps one review operation per state directory.

The lock is a non-blocking exclusive lock on ``<state>/lock``; a second
process gets LockedError immediately instead of waiting. The OS drops the
lock when the holder exits, so a crashed run never leaves it stuck.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from stet_core.errors import LockedError, StateError
from stet_store.fsutil import ensure_state_dir

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)

LOCK_FILENAME = "lock"


def _try_lock(fd: int) -> bool:
    try:
        if sys.platform == "win32":
            msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)
        else:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    except PermissionError:
        # msvcrt reports a held lock as EACCES.
        return False
    return True


def _unlock(fd: int) -> None:
    if sys.platform == "win32":
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(fd, fcntl.LOCK_UN)


@contextmanager
def acquire_lock(state_dir: str | Path) -> Iterator[Path]:
    """Hold the state-directory lock for the duration of the ``with`` block."""
    ensure_state_dir(state_dir)
    path = Path(state_dir) / LOCK_FILENAME
    try:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        raise StateError(f"Could not open the lock file {path}.") from e
    try:
        try:
            locked = _try_lock(fd)
        except OSError as e:
            raise StateError(f"Could not lock {path}.") from e
        if not locked:
            raise LockedError()
        logger.debug("Acquired %s", path)
        try:
            yield path
        finally:
            _unlock(fd)
            logger.debug("Released %s", path)
    finally:
        os.close(fd)
