"""Advisory file locks with bounded waits.

Schema bodies in the shared cache and per-document record files may be
touched by several worker processes at once. Each data file is guarded by a
``filelock.FileLock`` on a ``<name>.lock`` sidecar next to it; the data file
is only opened (and, for writers, truncated) once the lock is held, so a
reader never sees a half-written record.

A lock that can't be acquired within the timeout raises
:class:`~xsd_resolver.errors.LockTimeoutError`.
"""

from __future__ import annotations

import contextlib
import logging
import time
from pathlib import Path
from typing import BinaryIO, Iterator

from filelock import FileLock, Timeout

from xsd_resolver.errors import LockTimeoutError

__all__ = ["LOCK_TIMEOUT", "LOCK_SUFFIX", "lock_path_for", "read_lock", "write_lock"]

logger = logging.getLogger(__name__)
logging.getLogger("filelock").setLevel(logging.INFO)

LOCK_TIMEOUT = 10.0
LOCK_SUFFIX = ".lock"


def lock_path_for(path: Path) -> Path:
    path = Path(path)
    return path.with_name(path.name + LOCK_SUFFIX)


@contextlib.contextmanager
def _locked(path: Path, timeout: float, kind: str) -> Iterator[None]:
    file_lock = FileLock(str(lock_path_for(path)))
    started = time.monotonic()
    try:
        file_lock.acquire(timeout=timeout)
    except Timeout as exc:
        raise LockTimeoutError(
            f"Timed out waiting {timeout} seconds for {kind} lock to {path}"
        ) from exc
    waited_ms = (time.monotonic() - started) * 1000.0
    if waited_ms > 100.0:
        logger.debug("Waited %.1f ms for %s lock on %s", waited_ms, kind, path)
    try:
        yield
    finally:
        file_lock.release()


@contextlib.contextmanager
def read_lock(path: Path, timeout: float = LOCK_TIMEOUT) -> Iterator[BinaryIO]:
    """Open *path* for reading while holding its lock.

    Yields a binary handle positioned at the start of the file.
    """

    with _locked(Path(path), timeout, "read"):
        with open(path, "rb") as handle:
            yield handle


@contextlib.contextmanager
def write_lock(path: Path, timeout: float = LOCK_TIMEOUT) -> Iterator[BinaryIO]:
    """Open *path* for writing while holding its lock.

    The file need not exist. It is truncated only after the lock is held.
    """

    with _locked(Path(path), timeout, "write"):
        with open(path, "wb") as handle:
            yield handle
            handle.flush()
