from __future__ import annotations

import contextlib
import logging
import os
import sys
from pathlib import Path
from typing import IO, Iterator

from .errors import LockHeldError

logger = logging.getLogger(__name__)

if sys.platform == "win32":
    import msvcrt

    def _try_lock(f: IO) -> bool:
        try:
            msvcrt.locking(f.fileno(), msvcrt.LK_NBLCK, 1)
        except OSError:
            return False
        return True

    def _unlock(f: IO) -> None:
        f.seek(0)
        msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _try_lock(f: IO) -> bool:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            return False
        return True

    def _unlock(f: IO) -> None:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)


@contextlib.contextmanager
def install_root_lock(lock_path: Path) -> Iterator[Path]:
    """Hold an advisory lock so two setups never work on the same install root.

    Raises LockHeldError immediately (no waiting) when another process holds it.
    The lock file itself is left behind; only the OS lock matters.
    """

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    f = open(lock_path, "a+")
    try:
        f.seek(0)
        if not _try_lock(f):
            raise LockHeldError(f"Another setup is already running for {lock_path.parent} (lock: {lock_path})")
        f.seek(0)
        f.truncate()
        f.write(str(os.getpid()))
        f.flush()
        logger.debug("Acquired %s", lock_path)
        try:
            yield lock_path
        finally:
            _unlock(f)
            logger.debug("Released %s", lock_path)
    finally:
        f.close()
