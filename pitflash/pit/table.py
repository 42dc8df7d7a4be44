"""Partition Information Table (PIT) parsing and lookup.

Layout matches Heimdall's libpit byte-for-byte:

- Header (28 bytes): magic, entry count, two 32-bit metadata words and six
  16-bit metadata words.
- One 132-byte record per entry: nine 32-bit integers (binary type, device
  type, identifier, attributes, update attributes, block size/offset, block
  count, file offset, file size) followed by the partition name, flash
  filename and FOTA filename fields, 32 bytes each.

All integers are little-endian.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from pitflash.exceptions import PitFormatError
from pitflash.logging import LoggerFactory

log = LoggerFactory.for_pit()

PIT_MAGIC = 0x12349876
HEADER = struct.Struct("<II2I6H")
ENTRY = struct.Struct("<9I32s32s32s")
HEADER_SIZE = HEADER.size  # 28
ENTRY_SIZE = ENTRY.size  # 132
NAME_FIELD_SIZE = 32

# Entries describing the table itself rather than storage.
DESCRIPTOR_NAMES = frozenset({"PIT", "PT"})


@dataclass(frozen=True)
class PitEntry:
    identifier: int
    partition_name: str
    flash_filename: str = ""
    binary_type: int = 0
    device_type: int = 0
    attributes: int = 0
    update_attributes: int = 0
    block_size_or_offset: int = 0
    block_count: int = 0
    file_offset: int = 0
    file_size: int = 0
    fota_filename: str = ""

    @property
    def has_flashable_flag(self) -> bool:
        """Heimdall treats any named entry as flashable."""
        return bool(self.partition_name)

    @property
    def is_descriptor(self) -> bool:
        return self.partition_name in DESCRIPTOR_NAMES

    @property
    def flashable(self) -> bool:
        """True for entries that represent writable storage regions."""
        return self.has_flashable_flag and not self.is_descriptor

    @property
    def flash_extension(self) -> str:
        """Extension of the canonical flash filename, without the dot."""
        _, dot, extension = self.flash_filename.rpartition(".")
        return extension if dot else ""

    def pack(self) -> bytes:
        return ENTRY.pack(
            self.binary_type,
            self.device_type,
            self.identifier,
            self.attributes,
            self.update_attributes,
            self.block_size_or_offset,
            self.block_count,
            self.file_offset,
            self.file_size,
            _encode_field(self.partition_name, "partition name"),
            _encode_field(self.flash_filename, "flash filename"),
            _encode_field(self.fota_filename, "FOTA filename"),
        )


def _decode_field(raw: bytes, field_name: str, index: int) -> str:
    terminator = raw.find(b"\x00")
    if terminator == -1:
        raise PitFormatError(f"entry {index} {field_name} is not NUL-terminated")
    return raw[:terminator].decode("latin-1")


def _encode_field(value: str, field_name: str) -> bytes:
    data = value.encode("latin-1")
    if len(data) >= NAME_FIELD_SIZE:
        raise PitFormatError(
            f"{field_name} {value!r} exceeds {NAME_FIELD_SIZE - 1} characters"
        )
    return data.ljust(NAME_FIELD_SIZE, b"\x00")


class PitTable:
    """Ordered collection of PIT entries.

    An empty table is the cleared state. ``unpack`` either replaces the
    entries completely or leaves the table cleared.
    """

    def __init__(self, entries: tuple[PitEntry, ...] = (), metadata: tuple[int, ...] = ()):
        self._entries: tuple[PitEntry, ...] = tuple(entries)
        self._metadata: tuple[int, ...] = tuple(metadata) or (0,) * 8

    @classmethod
    def from_bytes(cls, data: bytes) -> PitTable:
        table = cls()
        table.unpack(data)
        return table

    def unpack(self, data: bytes) -> None:
        """Parse ``data`` into this table.

        Raises:
            PitFormatError: If the buffer is malformed. The table is cleared.
        """
        self.clear()
        entries, metadata = _parse(bytes(data))
        self._entries = entries
        self._metadata = metadata
        log.debug(f"Parsed PIT with {len(entries)} entries")

    def pack(self) -> bytes:
        header = HEADER.pack(PIT_MAGIC, len(self._entries), *self._metadata)
        return header + b"".join(entry.pack() for entry in self._entries)

    def clear(self) -> None:
        self._entries = ()
        self._metadata = (0,) * 8

    @property
    def is_empty(self) -> bool:
        return not self._entries

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> tuple[PitEntry, ...]:
        return self._entries

    def entry(self, index: int) -> PitEntry:
        return self._entries[index]

    def find_entry(self, key: Union[int, str]) -> Optional[PitEntry]:
        """Find an entry by identifier (int) or exact partition name (str)."""
        if isinstance(key, str):
            for entry in self._entries:
                if entry.partition_name == key:
                    return entry
            return None
        for entry in self._entries:
            if entry.identifier == key:
                return entry
        return None

    def flashable_identifiers(self) -> list[int]:
        return [entry.identifier for entry in self._entries if entry.flashable]

    def describe(self) -> str:
        """Render the table the way ``heimdall print-pit`` lists entries."""
        lines = [f"Entry Count: {self.entry_count}"]
        for index, entry in enumerate(self._entries):
            lines.extend(
                [
                    "",
                    f"--- Entry #{index} ---",
                    f"Binary Type: {entry.binary_type}",
                    f"Device Type: {entry.device_type}",
                    f"Identifier: {entry.identifier}",
                    f"Attributes: {entry.attributes}",
                    f"Update Attributes: {entry.update_attributes}",
                    f"Partition Block Size/Offset: {entry.block_size_or_offset}",
                    f"Partition Block Count: {entry.block_count}",
                    f"File Offset (Obsolete): {entry.file_offset}",
                    f"File Size (Obsolete): {entry.file_size}",
                    f"Partition Name: {entry.partition_name}",
                    f"Flash Filename: {entry.flash_filename}",
                    f"FOTA Filename: {entry.fota_filename}",
                ]
            )
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PitEntry]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PitTable):
            return NotImplemented
        return self._entries == other._entries and self._metadata == other._metadata

    def __repr__(self) -> str:
        return f"PitTable(entries={len(self._entries)})"


def _parse(data: bytes) -> tuple[tuple[PitEntry, ...], tuple[int, ...]]:
    if len(data) < HEADER_SIZE:
        raise PitFormatError(
            f"buffer is {len(data)} bytes, header needs {HEADER_SIZE}"
        )
    magic, count, *metadata = HEADER.unpack_from(data, 0)
    if magic != PIT_MAGIC:
        raise PitFormatError(f"bad magic 0x{magic:08X} (expected 0x{PIT_MAGIC:08X})")

    required = HEADER_SIZE + count * ENTRY_SIZE
    if len(data) < required:
        raise PitFormatError(
            f"header declares {count} entries ({required} bytes) "
            f"but buffer is {len(data)} bytes"
        )

    entries: list[PitEntry] = []
    seen: set[int] = set()
    for index in range(count):
        values = ENTRY.unpack_from(data, HEADER_SIZE + index * ENTRY_SIZE)
        identifier = values[2]
        if identifier in seen:
            raise PitFormatError(f"duplicate partition identifier {identifier}")
        seen.add(identifier)
        entries.append(
            PitEntry(
                binary_type=values[0],
                device_type=values[1],
                identifier=identifier,
                attributes=values[3],
                update_attributes=values[4],
                block_size_or_offset=values[5],
                block_count=values[6],
                file_offset=values[7],
                file_size=values[8],
                partition_name=_decode_field(values[9], "partition name", index),
                flash_filename=_decode_field(values[10], "flash filename", index),
                fota_filename=_decode_field(values[11], "FOTA filename", index),
            )
        )
    return tuple(entries), tuple(metadata)


def read_pit_file(path: Path | str) -> PitTable:
    """Read and parse a PIT file.

    Raises:
        PitFormatError: If the file is unreadable or malformed.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as error:
        raise PitFormatError(f"cannot read {path}: {error}") from error
    return PitTable.from_bytes(data)
