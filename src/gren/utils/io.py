"""Atomic writes and locked reads for gren's small state files."""

import fcntl
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def read_locked(path: Path) -> Optional[str]:
    """Content of `path` read under a shared flock, or None when it does not exist."""
    try:
        handle = path.open(encoding="utf-8")
    except FileNotFoundError:
        return None

    with handle:
        try:
            fcntl.flock(handle, fcntl.LOCK_SH)
        except OSError as e:
            # Some network filesystems refuse flock.
            logger.debug(f"Reading {path} without a lock: {e}")
        return handle.read()


def write_atomic(path: Path, data: str, mode: int) -> None:
    """
    Replace `path` with `data` in a single rename.

    The temporary file gets `mode` before any data is written, so the
    document is never visible with wider permissions. Missing parent
    directories are created.

    Raises:
        OSError: If the file cannot be written; no temporary file is left.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise
    logger.debug(f"Wrote {path} ({oct(mode)})")
