"""
Filesystem primitives used by the persistence layer.

Every OSError is re-raised as StorageError. Writes replace the destination
atomically (temporary sibling file, then os.replace), so a failed write
leaves the previous content in place. Files are only open for the duration
of one read or write.
"""

import logging
import os
import shutil
import threading
from typing import Dict

from .errors import StorageError

logger = logging.getLogger(__name__)

_path_locks: Dict[str, threading.Lock] = {}
_path_locks_guard = threading.Lock()


def resolve_path(path: str) -> str:
    """Normalize a path so aliases of one file share a write lock."""
    return os.path.normcase(os.path.abspath(path))


def path_lock(path: str) -> threading.Lock:
    """Return the process-wide lock serializing writes to path."""
    key = resolve_path(path)
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


def read_text(path: str, encoding: str = "utf-8") -> str:
    """
    Read a whole file as text.

    UnicodeDecodeError propagates: undecodable content is not a storage
    failure.
    """
    try:
        with open(path, "r", encoding=encoding) as f:
            return f.read()
    except OSError as e:
        raise StorageError(path, e) from e


def ensure_directory(path: str) -> None:
    """Create the parent directory of path, recursively."""
    directory = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as e:
        raise StorageError(directory, e) from e


def write_text(path: str, text: str, encoding: str = "utf-8") -> None:
    """
    Replace the content of path with text.

    temp file -> flush+fsync -> os.replace, holding the per-path lock for
    the whole write. The parent directory is created first and an existing
    file keeps its permission bits.
    """
    ensure_directory(path)
    tmp_path = f"{path}.tmp"

    with path_lock(path):
        try:
            with open(tmp_path, "w", encoding=encoding, newline="") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            if os.path.exists(path):
                shutil.copymode(path, tmp_path)
            os.replace(tmp_path, path)
        except (OSError, UnicodeEncodeError) as e:
            if os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_path)
            raise StorageError(path, e) from e

    logger.debug("Wrote %d characters to %s", len(text), path)
