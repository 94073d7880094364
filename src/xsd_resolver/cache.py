"""Content-addressed on-disk cache for fetched schema bodies."""

import logging
import os
from datetime import datetime
from pathlib import Path

from xsd_resolver.locks import LOCK_TIMEOUT, read_lock, write_lock
from xsd_resolver.utils import md5_hex

logger = logging.getLogger(__name__)


class SchemaCache:
    """Flat directory of schema bodies named by their MD5 digest.

    Shared by every collection and never aged out. Writes are idempotent: a
    body already stored under the same digest and modification time is left
    alone, so concurrent writers of the same schema settle on one file.
    """

    def __init__(self, directory: Path, lock_timeout: float = LOCK_TIMEOUT):
        self.directory = Path(directory)
        self.lock_timeout = lock_timeout

    def path_for(self, digest: str) -> Path:
        return self.directory / digest

    def is_recorded(self, digest: str, last_modified: datetime) -> bool:
        """True if the cache holds *digest* with a matching mtime and content."""
        path = self.path_for(digest)
        if not path.exists():
            return False
        with read_lock(path, self.lock_timeout) as fd:
            if int(os.fstat(fd.fileno()).st_mtime) != int(last_modified.timestamp()):
                return False
            return md5_hex(fd.read()) == digest

    def store(self, digest: str, body: bytes, last_modified: datetime) -> Path:
        """Write *body* under its digest unless it's already there; returns the cache path."""
        path = self.path_for(digest)
        if self.is_recorded(digest, last_modified):
            logger.debug("Schema %s already cached", digest)
            return path
        with write_lock(path, self.lock_timeout) as fd:
            fd.write(body)
        stamp = last_modified.timestamp()
        os.utime(path, (stamp, stamp))
        logger.debug("Cached schema %s (%d bytes)", digest, len(body))
        return path

    def read(self, digest: str) -> bytes:
        with read_lock(self.path_for(digest), self.lock_timeout) as fd:
            return fd.read()
