"""Streaming writer for ustar archives.

Only what the collection export needs: regular files with fixed ownership,
written one at a time straight to a stream. No directory entries, links, or
long-name extensions; archive paths over 100 bytes are truncated.
"""

from __future__ import annotations

import logging
import os
import stat
import struct
from typing import BinaryIO, Mapping, Optional, Union

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512
NAME_SIZE = 100
OWNER_NAME_SIZE = 32

# name mode uid gid size mtime chksum typeflag linkname magic version uname gname devmajor devminor prefix pad
_HEADER = struct.Struct("100s8s8s8s12s12s8sc100s6s2s32s32s8s8s155s12x")
_CHECKSUM_BLANKS = b" " * 8

PathLike = Union[str, os.PathLike]


def _octal(value: int, size: int) -> bytes:
    """Zero-padded octal digits filling *size* - 1 bytes, NUL terminated."""
    digits = f"{value:0{size - 1}o}"
    if len(digits) > size - 1:
        raise ValueError(f"{value} does not fit in a {size}-byte tar header field")
    return digits.encode("ascii") + b"\0"


def header_checksum(header: bytes) -> int:
    """Unsigned byte sum of a header with its checksum field counted as blanks."""
    return sum(header[:148]) + sum(_CHECKSUM_BLANKS) + sum(header[156:BLOCK_SIZE])


class TarWriter:
    """Write a ustar archive incrementally to *stream*.

    *ownership* supplies the uid, gid, username and groupname stamped on every
    entry. close() writes the end-of-archive marker and closes the stream.
    """

    def __init__(self, stream: BinaryIO, ownership: Mapping):
        for key in ("uid", "gid", "username", "groupname"):
            if key not in ownership:
                raise ValueError(f"Missing required file ownership key {key}.")
        self.stream = stream
        self.ownership = dict(ownership)
        self.closed = False

    def __enter__(self) -> "TarWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def make_header(self, fstat: os.stat_result, archive_path: str) -> bytes:
        name = archive_path.rstrip("/").encode("utf-8")
        if len(name) > NAME_SIZE:
            logger.warning("Archive path truncated to %d bytes: %s", NAME_SIZE, archive_path)
            name = name[:NAME_SIZE]

        fields = [
            name,
            _octal(stat.S_IMODE(fstat.st_mode), 8),
            _octal(self.ownership["uid"], 8),
            _octal(self.ownership["gid"], 8),
            _octal(fstat.st_size, 12),
            _octal(int(fstat.st_mtime), 12),
            _CHECKSUM_BLANKS,
            b"0",  # regular file
            b"",
            b"ustar\0",
            b"00",
            self.ownership["username"].encode("utf-8")[:OWNER_NAME_SIZE],
            self.ownership["groupname"].encode("utf-8")[:OWNER_NAME_SIZE],
            _octal(0, 8),
            _octal(0, 8),
            b"",
        ]
        header = _HEADER.pack(*fields)
        fields[6] = f"{header_checksum(header):06o}".encode("ascii") + b"\0 "
        return _HEADER.pack(*fields)

    def write(self, source_path: PathLike, archive_path: Optional[str] = None) -> None:
        """Append the file at *source_path*, stored as *archive_path*."""
        if self.closed:
            raise ValueError("TarWriter is closed")
        if archive_path is None:
            archive_path = str(source_path).lstrip("/")

        fstat = os.stat(source_path)
        remaining = fstat.st_size
        self.stream.write(self.make_header(fstat, archive_path))

        written = 0
        with open(source_path, "rb") as source:
            while written < remaining:
                block = source.read(min(BLOCK_SIZE, remaining - written))
                if not block:
                    raise OSError(f"{source_path} shrank while it was being archived")
                self.stream.write(block)
                written += len(block)
        padding = -written % BLOCK_SIZE
        if padding:
            self.stream.write(b"\0" * padding)

    def close(self) -> None:
        if self.closed:
            return
        self.stream.write(b"\0" * (2 * BLOCK_SIZE))
        self.stream.close()
        self.closed = True

