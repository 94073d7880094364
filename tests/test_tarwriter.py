"""
Tests for the ustar writer, read back with the standard library's tarfile.

Run with: pytest tests/test_tarwriter.py -v
"""

import io
import os
import sys
import tarfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from xsd_resolver.tarwriter import BLOCK_SIZE, TarWriter, header_checksum

OWNERSHIP = {"uid": 65534, "gid": 65534, "username": "nobody", "groupname": "nogroup"}


class KeepOpen(io.BytesIO):
    """BytesIO whose contents survive close()."""

    def close(self):
        self.data = self.getvalue()
        super().close()


# --- Helpers ---


def write_files(tmp_path, files: dict[str, bytes]) -> bytes:
    stream = KeepOpen()
    with TarWriter(stream, OWNERSHIP) as writer:
        for archive_path, body in files.items():
            source = tmp_path / f"src{len(os.listdir(tmp_path))}"
            source.write_bytes(body)
            writer.write(source, archive_path)
    return stream.data


def read_back(data: bytes) -> dict[str, bytes]:
    with tarfile.open(fileobj=io.BytesIO(data)) as tar:
        return {m.name: tar.extractfile(m).read() for m in tar.getmembers()}


# --- Tests ---


def test_round_trip_through_tarfile(tmp_path):
    files = {
        "coll/manifest.xml": b"<resolutions/>",
        "coll/http://example.org/a.xsd": b"x" * 700,
        "coll/http://example.org/b.xsd": b"y" * BLOCK_SIZE,
    }
    data = write_files(tmp_path, files)
    assert read_back(data) == files


def test_entries_carry_ownership_and_mode(tmp_path):
    source = tmp_path / "schema.xsd"
    source.write_bytes(b"<schema/>")
    source.chmod(0o640)
    os.utime(source, (1445412480, 1445412480))

    stream = KeepOpen()
    with TarWriter(stream, OWNERSHIP) as writer:
        writer.write(source, "c/schema.xsd")

    with tarfile.open(fileobj=io.BytesIO(stream.data)) as tar:
        [member] = tar.getmembers()
    assert member.isfile()
    assert member.mode == 0o640
    assert member.mtime == 1445412480
    assert member.size == len(b"<schema/>")
    assert (member.uid, member.gid, member.uname, member.gname) == (65534, 65534, "nobody", "nogroup")


def test_header_layout(tmp_path):
    data = write_files(tmp_path, {"c/a.xsd": b"abc"})
    header = data[:BLOCK_SIZE]
    assert header[257:263] == b"ustar\0"
    assert header[263:265] == b"00"
    assert header[156:157] == b"0"
    assert header[154:156] == b"\0 "
    assert int(header[148:154], 8) == header_checksum(header)


def test_padding_and_trailer(tmp_path):
    data = write_files(tmp_path, {"c/a.xsd": b"z" * 700})
    # header + two data blocks + two zero blocks
    assert len(data) == BLOCK_SIZE * 5
    assert data[BLOCK_SIZE + 700:BLOCK_SIZE * 3] == b"\0" * (BLOCK_SIZE * 2 - 700)
    assert data[-2 * BLOCK_SIZE:] == b"\0" * (2 * BLOCK_SIZE)


def test_empty_file(tmp_path):
    data = write_files(tmp_path, {"c/empty.xsd": b""})
    assert len(data) == BLOCK_SIZE * 3
    assert read_back(data) == {"c/empty.xsd": b""}


def test_long_names_are_truncated(tmp_path):
    long_name = "c/http://example.org/" + "x" * 120 + ".xsd"
    data = write_files(tmp_path, {long_name: b"<schema/>"})
    assert read_back(data) == {long_name[:100]: b"<schema/>"}


def test_empty_archive(tmp_path):
    stream = KeepOpen()
    TarWriter(stream, OWNERSHIP).close()
    assert stream.data == b"\0" * (2 * BLOCK_SIZE)


def test_missing_ownership_key():
    with pytest.raises(ValueError, match="groupname"):
        TarWriter(io.BytesIO(), {"uid": 0, "gid": 0, "username": "root"})


def test_write_after_close(tmp_path):
    source = tmp_path / "a.xsd"
    source.write_bytes(b"a")
    writer = TarWriter(KeepOpen(), OWNERSHIP)
    writer.close()
    writer.close()
    with pytest.raises(ValueError):
        writer.write(source, "c/a.xsd")
