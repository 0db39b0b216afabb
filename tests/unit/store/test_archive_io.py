"""Unit tests for archive encoding and atomic persistence."""

from __future__ import annotations

import os
import struct
from pathlib import Path

import pytest

from core.errors import ParamStoreIOError, ParamStoreSerializationError
from core.types import ArchiveRecord
from store import archive_io
from store.archive_io import decode_archive, encode_archive, read_archive, write_archive_atomic


def _records() -> list[ArchiveRecord]:
    return [
        ArchiveRecord(name="t1", dtype="float32", shape=(2,), payload=b"\x00" * 8),
        ArchiveRecord(name="a.b.t2", dtype="int8", shape=(3,), payload=b"\x01\x02\x03"),
    ]


def test_encode_archive_starts_with_magic_and_version() -> None:
    """Archives should carry the magic bytes and format version."""
    data = encode_archive(_records())

    magic, version, _ = struct.unpack_from("<8sIQ", data)

    assert magic == b"PSTARCH\x00" and version == 1


def test_decode_archive_preserves_record_order() -> None:
    """Decoded records should keep the order they were written in."""
    decoded = decode_archive(encode_archive(_records()))

    assert decoded == _records()


def test_decode_archive_rejects_missing_magic() -> None:
    """Files without the archive magic should be rejected."""
    with pytest.raises(ParamStoreSerializationError):
        decode_archive(b"not an archive at all, just some bytes")


def test_decode_archive_rejects_unknown_version() -> None:
    """Archives from an unknown format version should be rejected."""
    data = bytearray(encode_archive(_records()))
    struct.pack_into("<I", data, 8, 99)

    with pytest.raises(ParamStoreSerializationError):
        decode_archive(bytes(data))


def test_decode_archive_rejects_truncated_payload() -> None:
    """Missing payload bytes should fail decoding."""
    data = encode_archive(_records())

    with pytest.raises(ParamStoreSerializationError):
        decode_archive(data[:-1])


def test_decode_archive_rejects_duplicate_names() -> None:
    """An archive naming one variable twice is malformed."""
    record = _records()[0]

    with pytest.raises(ParamStoreSerializationError):
        decode_archive(encode_archive([record, record]))


def test_encode_archive_rejects_inconsistent_payload_size() -> None:
    """Payload length must match shape and dtype."""
    record = ArchiveRecord(name="w", dtype="float64", shape=(2,), payload=b"\x00" * 8)

    with pytest.raises(ParamStoreSerializationError):
        encode_archive([record])


def test_write_archive_atomic_round_trips_through_disk(tmp_path: Path) -> None:
    """Archives written to disk should read back unchanged without temp leftovers."""
    archive_path = tmp_path / "store.pst"

    write_archive_atomic(archive_path, _records())

    assert read_archive(archive_path) == _records()
    assert [path.name for path in tmp_path.iterdir()] == ["store.pst"]


def test_write_archive_atomic_leaves_target_untouched_when_rename_fails(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failed rename should keep the previous archive and remove the temp file."""
    archive_path = tmp_path / "store.pst"
    archive_path.write_bytes(b"previous archive")

    def _failing_replace(source: str, target: object) -> None:
        raise OSError("simulated crash before rename")

    monkeypatch.setattr(archive_io.os, "replace", _failing_replace)

    with pytest.raises(ParamStoreIOError):
        write_archive_atomic(archive_path, _records())

    assert archive_path.read_bytes() == b"previous archive"
    assert [path.name for path in tmp_path.iterdir()] == ["store.pst"]


def test_write_archive_atomic_removes_temp_file_on_non_os_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Any exception while writing should remove the temp file and propagate."""
    archive_path = tmp_path / "store.pst"
    archive_path.write_bytes(b"previous archive")

    def _interrupted_fsync(file_descriptor: int) -> None:
        raise RuntimeError("simulated fault during fsync")

    monkeypatch.setattr(archive_io.os, "fsync", _interrupted_fsync)

    with pytest.raises(RuntimeError):
        write_archive_atomic(archive_path, _records())

    assert archive_path.read_bytes() == b"previous archive"
    assert [path.name for path in tmp_path.iterdir()] == ["store.pst"]


def test_write_archive_atomic_never_exposes_partial_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """At the moment of rename the target must not exist in a partial state."""
    archive_path = tmp_path / "store.pst"
    observed: list[bool] = []
    real_replace = os.replace

    def _observing_replace(source: str, target: object) -> None:
        observed.append(archive_path.exists())
        real_replace(source, target)

    monkeypatch.setattr(archive_io.os, "replace", _observing_replace)

    write_archive_atomic(archive_path, _records())

    assert observed == [False] and read_archive(archive_path) == _records()


def test_read_archive_raises_io_error_for_missing_file(tmp_path: Path) -> None:
    """Reading a missing archive should fail with an IO error."""
    with pytest.raises(ParamStoreIOError):
        read_archive(tmp_path / "missing.pst")
