"""Variable store archive encoding and atomic persistence.

Archive layout (little-endian): 8-byte magic, uint32 format version,
uint64 header length, UTF-8 JSON header listing records, then the record
payloads concatenated in header order.
"""

from __future__ import annotations

import json
import math
import os
import struct
import tempfile
from pathlib import Path
from typing import Any, Sequence

from core.constants import (
    ARCHIVE_FORMAT_VERSION,
    ARCHIVE_MAGIC,
    ARCHIVE_TEMP_SUFFIX,
    DTYPE_ITEM_SIZES,
)
from core.errors import ParamStoreIOError, ParamStoreSerializationError
from core.types import ArchiveRecord

_PREFIX = struct.Struct("<8sIQ")


def encode_archive(records: Sequence[ArchiveRecord]) -> bytes:
    """Encode records into archive bytes, preserving record order."""
    header_records: list[dict[str, Any]] = []
    offset = 0
    for record in records:
        _check_payload_size(record.name, record.dtype, record.shape, len(record.payload))
        header_records.append(
            {
                "name": record.name,
                "dtype": record.dtype,
                "shape": list(record.shape),
                "offset": offset,
                "nbytes": len(record.payload),
            }
        )
        offset += len(record.payload)
    header = json.dumps({"records": header_records}, separators=(",", ":")).encode("utf-8")
    prefix = _PREFIX.pack(ARCHIVE_MAGIC, ARCHIVE_FORMAT_VERSION, len(header))
    return b"".join([prefix, header, *(record.payload for record in records)])


def decode_archive(data: bytes, source: str = "<memory>") -> list[ArchiveRecord]:
    """Decode archive bytes into ordered records.

    Args:
        data: Full archive contents.
        source: Location used in error messages.

    Returns:
        Records in archive order.

    Raises:
        ParamStoreSerializationError: If the archive is malformed or truncated.
    """
    if len(data) < _PREFIX.size:
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: file is shorter than the header."
        )
    magic, version, header_length = _PREFIX.unpack_from(data)
    if magic != ARCHIVE_MAGIC:
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: missing archive magic. "
            "Only archives written by VariableStore.save can be loaded."
        )
    if version != ARCHIVE_FORMAT_VERSION:
        raise ParamStoreSerializationError(
            f"Unsupported variable store archive version {version} at {source}: "
            f"expected {ARCHIVE_FORMAT_VERSION}."
        )
    header_end = _PREFIX.size + header_length
    if header_end > len(data):
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: header is truncated."
        )
    header_entries = _parse_header(data[_PREFIX.size : header_end], source)
    payload_region = memoryview(data)[header_end:]
    records: list[ArchiveRecord] = []
    seen_names: set[str] = set()
    expected_offset = 0
    for entry in header_entries:
        record = _record_from_entry(entry, payload_region, expected_offset, source)
        if record.name in seen_names:
            raise ParamStoreSerializationError(
                f"Invalid variable store archive at {source}: duplicate record '{record.name}'."
            )
        seen_names.add(record.name)
        expected_offset += len(record.payload)
        records.append(record)
    if expected_offset != len(payload_region):
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: "
            f"{len(payload_region) - expected_offset} trailing payload bytes."
        )
    return records


def write_archive_atomic(archive_path: Path, records: Sequence[ArchiveRecord]) -> None:
    """Write records to archive_path via a temp sibling file and rename.

    The target path either keeps its previous contents or shows the complete
    new archive; a partial file is never visible under the target name.

    Raises:
        ParamStoreIOError: If any filesystem step fails.
    """
    payload = encode_archive(records)
    target = Path(archive_path)
    temp_path: str | None = None
    replaced = False
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=target.parent,
            prefix=f".{target.name}.",
            suffix=ARCHIVE_TEMP_SUFFIX,
            delete=False,
        ) as temp_file:
            temp_path = temp_file.name
            temp_file.write(payload)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        os.replace(temp_path, target)
        replaced = True
    except OSError as error:
        raise ParamStoreIOError(
            f"Failed to write variable store archive at {target}: {error}. "
            "Check available disk space and directory permissions."
        ) from error
    finally:
        if not replaced and temp_path is not None:
            _remove_quietly(Path(temp_path))


def read_archive(archive_path: Path) -> list[ArchiveRecord]:
    """Read and decode a full archive from disk.

    Raises:
        ParamStoreIOError: If the file cannot be read.
        ParamStoreSerializationError: If contents are malformed.
    """
    target = Path(archive_path)
    try:
        data = target.read_bytes()
    except OSError as error:
        raise ParamStoreIOError(
            f"Failed to read variable store archive at {target}: {error}. "
            "Verify the archive path exists and is readable."
        ) from error
    return decode_archive(data, str(target))


def _parse_header(header_bytes: bytes, source: str) -> list[dict[str, Any]]:
    try:
        header = json.loads(header_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as error:
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: unreadable header: {error}."
        ) from error
    entries = header.get("records") if isinstance(header, dict) else None
    if not isinstance(entries, list) or not all(isinstance(item, dict) for item in entries):
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: header must contain a records list."
        )
    return entries


def _record_from_entry(
    entry: dict[str, Any],
    payload_region: memoryview,
    expected_offset: int,
    source: str,
) -> ArchiveRecord:
    name = entry.get("name")
    dtype = entry.get("dtype")
    raw_shape = entry.get("shape")
    offset = entry.get("offset")
    nbytes = entry.get("nbytes")
    if (
        not isinstance(name, str)
        or not isinstance(dtype, str)
        or not isinstance(raw_shape, list)
        or not all(isinstance(dim, int) and not isinstance(dim, bool) for dim in raw_shape)
        or not isinstance(offset, int)
        or not isinstance(nbytes, int)
    ):
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: malformed record entry {entry!r}."
        )
    shape = tuple(raw_shape)
    _check_payload_size(name, dtype, shape, nbytes, source)
    if offset != expected_offset or offset + nbytes > len(payload_region):
        raise ParamStoreSerializationError(
            f"Invalid variable store archive at {source}: payload for '{name}' "
            "is truncated or out of order."
        )
    return ArchiveRecord(
        name=name,
        dtype=dtype,
        shape=shape,
        payload=bytes(payload_region[offset : offset + nbytes]),
    )


def _check_payload_size(
    name: str, dtype: str, shape: tuple[int, ...], nbytes: int, source: str = "<memory>"
) -> None:
    item_size = DTYPE_ITEM_SIZES.get(dtype)
    if item_size is None:
        raise ParamStoreSerializationError(
            f"Unsupported dtype '{dtype}' for archive record '{name}' at {source}."
        )
    if any(dim <= 0 for dim in shape):
        raise ParamStoreSerializationError(
            f"Invalid shape {list(shape)} for archive record '{name}' at {source}."
        )
    expected = math.prod(shape) * item_size
    if nbytes != expected:
        raise ParamStoreSerializationError(
            f"Archive record '{name}' at {source} has {nbytes} payload bytes; "
            f"expected {expected} for {dtype} {list(shape)}."
        )


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        return
