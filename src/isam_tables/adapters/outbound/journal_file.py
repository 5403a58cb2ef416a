"""Append-only journal file used by the journaled storage engine.

File Format:
    - Header (12 bytes): magic(8) + version(4)
    - Entries: [length(4) + payload + CRC32(4)] ...

Payloads are UTF-8 JSON objects. Values JSON cannot carry natively are
tagged: ``{"$bytes": "<base64>"}`` and ``{"$datetime": "<ISO 8601>"}``.

A crash mid-append leaves a torn entry at the end of the file. Opening the
journal stops reading at the first entry that is short or fails its CRC
check and truncates the file there, so later appends start from a clean
boundary.

Thread Safety:
    All methods are thread-safe. Appends are serialized internally.
"""

from __future__ import annotations

import base64
import enum
import json
import os
import struct
import threading
import zlib
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Iterator

from isam_tables.infrastructure.logging import get_logger
from isam_tables.ports.outbound.storage_engine import EngineFailure

logger = get_logger(__name__)

JOURNAL_MAGIC = b"ISAMJRN\x00"
JOURNAL_VERSION = 1
HEADER_FORMAT = ">8sI"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)

# Entry wrapper format: length(4) + data + crc32(4)
ENTRY_LENGTH_FORMAT = ">I"
ENTRY_CRC_FORMAT = ">I"
ENTRY_OVERHEAD = 8


class SyncMode(str, enum.Enum):
    """How appended entries reach stable storage."""

    FSYNC = "fsync"
    NONE = "none"


class JournalError(EngineFailure):
    """The journal file cannot be used."""


def encode_value(value: Any) -> Any:
    """Convert a column value into its JSON representation."""
    if isinstance(value, bytes):
        return {"$bytes": base64.b64encode(value).decode("ascii")}
    if isinstance(value, datetime):
        return {"$datetime": value.isoformat()}
    return value


def decode_value(value: Any) -> Any:
    """Inverse of ``encode_value``."""
    if isinstance(value, dict):
        if "$bytes" in value:
            return base64.b64decode(value["$bytes"])
        if "$datetime" in value:
            return datetime.fromisoformat(value["$datetime"])
    return value


def encode_record(record: dict[str, Any]) -> dict[str, Any]:
    return {name: encode_value(value) for name, value in record.items()}


def decode_record(record: dict[str, Any]) -> dict[str, Any]:
    return {name: decode_value(value) for name, value in record.items()}


class JournalFile:
    """A single append-only journal file.

    Usage:
        journal = JournalFile.create(path)
        journal.append({"op": "commit", "changes": [...]})
        for entry in JournalFile.open(path).replay():
            ...
    """

    def __init__(self, path: Path, handle: BinaryIO, sync_mode: SyncMode) -> None:
        self._path = path
        self._file = handle
        self._sync_mode = sync_mode
        self._lock = threading.Lock()
        self._closed = False
        self._entries: list[dict[str, Any]] = []

    @classmethod
    def create(cls, path: str | Path, sync_mode: SyncMode = SyncMode.FSYNC) -> JournalFile:
        """Create a new, empty journal.

        Raises:
            FileExistsError: If the file already exists.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "xb+")
        handle.write(struct.pack(HEADER_FORMAT, JOURNAL_MAGIC, JOURNAL_VERSION))
        journal = cls(path, handle, sync_mode)
        journal._sync()
        return journal

    @classmethod
    def open(cls, path: str | Path, sync_mode: SyncMode = SyncMode.FSYNC) -> JournalFile:
        """Open an existing journal, reading its entries and dropping a torn tail.

        Raises:
            JournalError: If the header is missing or invalid.
        """
        path = Path(path)
        handle = open(path, "rb+")
        try:
            header = handle.read(HEADER_SIZE)
            if len(header) < HEADER_SIZE:
                raise JournalError(f"Journal header too short: {path}")
            magic, version = struct.unpack(HEADER_FORMAT, header)
            if magic != JOURNAL_MAGIC:
                raise JournalError(f"Invalid journal magic: {magic!r}")
            if version != JOURNAL_VERSION:
                raise JournalError(f"Unsupported journal version: {version}")

            journal = cls(path, handle, sync_mode)
            end = journal._read_entries()
        except Exception:
            handle.close()
            raise

        size = path.stat().st_size
        if end < size:
            logger.warning(
                "journal_tail_truncated",
                path=str(path),
                valid_bytes=end,
                dropped_bytes=size - end,
            )
            handle.truncate(end)
        handle.seek(end)
        return journal

    def _read_entries(self) -> int:
        """Read every intact entry. Returns the offset just past the last one."""
        self._file.seek(HEADER_SIZE)
        offset = HEADER_SIZE

        while True:
            length_data = self._file.read(4)
            if len(length_data) < 4:
                break

            (length,) = struct.unpack(ENTRY_LENGTH_FORMAT, length_data)
            if length == 0:
                break

            payload = self._file.read(length)
            if len(payload) < length:
                break

            crc_data = self._file.read(4)
            if len(crc_data) < 4:
                break

            (stored_crc,) = struct.unpack(ENTRY_CRC_FORMAT, crc_data)
            if stored_crc != zlib.crc32(payload) & 0xFFFFFFFF:
                break

            try:
                entry = json.loads(payload.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                break

            self._entries.append(entry)
            offset += ENTRY_OVERHEAD + length

        return offset

    @property
    def path(self) -> Path:
        return self._path

    @property
    def sync_mode(self) -> SyncMode:
        return self._sync_mode

    def replay(self) -> Iterator[dict[str, Any]]:
        """Yield the entries read when the journal was opened, in order."""
        yield from self._entries

    def append(self, entry: dict[str, Any]) -> None:
        """Append one entry and sync it according to the sync mode.

        Raises:
            JournalError: If the journal is closed.
            OSError: If the write fails.
        """
        payload = json.dumps(entry, separators=(",", ":")).encode("utf-8")
        crc = zlib.crc32(payload) & 0xFFFFFFFF
        wrapped = (
            struct.pack(ENTRY_LENGTH_FORMAT, len(payload))
            + payload
            + struct.pack(ENTRY_CRC_FORMAT, crc)
        )

        with self._lock:
            if self._closed:
                raise JournalError(f"Journal is closed: {self._path}")
            self._file.write(wrapped)
            self._sync()

    def _sync(self) -> None:
        self._file.flush()
        if self._sync_mode == SyncMode.FSYNC:
            os.fsync(self._file.fileno())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._entries.clear()
            self._file.flush()
            self._file.close()
