"""Samsung quick-convert: map loose vendor images onto PIT partitions.

Vendor firmware usually ships extracted images named after their partition
(``boot.img``, ``modem.bin``, ``cache.img.lz4``...). The matcher turns each
basename into an ordered list of candidate partition names and takes the first
one present in the PIT, falling back to the PIT's flash filenames.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path, PurePath
from typing import Iterable, Optional, Union

from pitflash.domain import FileInfo, FirmwareInfo, PlatformInfo
from pitflash.logging import operation_context
from pitflash.pit import PitTable, read_pit_file

RAW_ARCHIVE_SUFFIXES = (".tar", ".md5")

CONVERSION_NAME = "Samsung Conversion"
CONVERSION_PLATFORM = "Android"

# (predicate on lowercased basename, candidate partition names), in priority order.
KEYWORD_RULES = (
    (lambda name: "home_csc" in name, ("CSC", "ODM", "OMC")),
    (lambda name: "csc" in name, ("CSC", "ODM", "OMC")),
    (lambda name: "modem" in name or name.startswith("cp_"), ("MODEM", "CP")),
    (lambda name: "bootloader" in name or "sboot" in name, ("SBOOT", "BOOTLOADER")),
    (lambda name: "boot" in name and "bootloader" not in name, ("BOOT",)),
    (lambda name: "recovery" in name, ("RECOVERY",)),
    (lambda name: "system" in name, ("SYSTEM",)),
    (lambda name: "vendor" in name, ("VENDOR",)),
    (lambda name: "product" in name, ("PRODUCT",)),
    (lambda name: "userdata" in name, ("USERDATA",)),
    (lambda name: "cache" in name, ("CACHE",)),
    (lambda name: "dtbo" in name, ("DTBO",)),
    (lambda name: "vbmeta" in name, ("VBMETA_SYSTEM", "VBMETA_VENDOR", "VBMETA")),
    (lambda name: "param" in name, ("PARAM",)),
    (lambda name: "cm" in name, ("CM",)),
)


def lower_basename(path: Union[str, Path]) -> str:
    return PurePath(str(path).replace("\\", "/")).name.lower()


def strip_extensions(name: str, count: int = 2) -> str:
    """Drop up to ``count`` trailing extensions (``boot.img.lz4`` -> ``boot``)."""
    for _ in range(count):
        index = name.rfind(".")
        if index > 0:
            name = name[:index]
    return name


def is_raw_archive(path: Union[str, Path]) -> bool:
    """Odin ``.tar``/``.tar.md5`` bundles are not directly flashable."""
    return lower_basename(path).endswith(RAW_ARCHIVE_SUFFIXES)


def candidate_names(basename: str) -> list[str]:
    """Ordered candidate partition names for a lowercased basename."""
    candidates: list[str] = []
    for predicate, names in KEYWORD_RULES:
        if predicate(basename):
            candidates.extend(names)
    candidates.append(strip_extensions(basename).upper())
    return candidates


class PartitionMatcher:
    """First-match heuristic from image filenames to PIT partition ids."""

    def __init__(self, pit: PitTable):
        self.pit = pit

    def find_by_name(self, name: str) -> Optional[int]:
        if not name:
            return None
        entry = self.pit.find_entry(name)
        return entry.identifier if entry is not None else None

    def find_by_flash_filename(self, file_base: str) -> Optional[int]:
        for entry in self.pit:
            if not entry.flashable:
                continue
            flash = entry.flash_filename.lower()
            if not flash:
                continue
            if flash == file_base or file_base in flash:
                return entry.identifier
        return None

    def match(self, path: Union[str, Path]) -> Optional[int]:
        """Partition id for ``path``, or None when skipped or unmatched."""
        basename = lower_basename(path)
        if basename.endswith(RAW_ARCHIVE_SUFFIXES):
            return None
        for name in candidate_names(basename):
            partition_id = self.find_by_name(name)
            if partition_id is not None:
                return partition_id
        return self.find_by_flash_filename(strip_extensions(basename))


@dataclass
class QuickConvertResult:
    firmware: FirmwareInfo
    mapped: list[FileInfo] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.mapped

    def failure_message(self) -> str:
        message = (
            "No files could be mapped. Ensure you select extracted images "
            "(not .tar/.md5)."
        )
        if self.skipped:
            message += "\nSkipped archives: " + ", ".join(self.skipped)
        return message


def map_files(pit: PitTable, files: Iterable[Union[str, Path]]) -> QuickConvertResult:
    """Match ``files`` against ``pit`` without building firmware metadata."""
    matcher = PartitionMatcher(pit)
    result = QuickConvertResult(firmware=FirmwareInfo())
    for path in files:
        if is_raw_archive(path):
            result.skipped.append(lower_basename(path))
            continue
        partition_id = matcher.match(path)
        if partition_id is None:
            result.unmatched.append(str(path))
            continue
        result.mapped.append(FileInfo(partition_id, str(path)))
    return result


def quick_convert(
    pit_path: Union[str, Path],
    files: Iterable[Union[str, Path]],
    *,
    now: Optional[datetime] = None,
) -> QuickConvertResult:
    """Build conversion firmware from a PIT and loose image files.

    The caller reports an empty mapping (``result.is_empty``).

    Raises:
        PitFormatError: If the PIT cannot be read.
    """
    with operation_context("quick-convert", pit=str(pit_path)) as log:
        pit = read_pit_file(pit_path)
        result = map_files(pit, files)
        for path in result.unmatched:
            log.debug(f"No partition matched {path}")

        timestamp = (now or datetime.now()).strftime("%Y%m%d-%H%M")
        result.firmware = FirmwareInfo(
            name=CONVERSION_NAME,
            version=timestamp,
            platform=PlatformInfo(CONVERSION_PLATFORM, ""),
            pit_filename=str(pit_path),
            repartition=False,
            no_reboot=False,
            file_infos=tuple(result.mapped),
        )
        log.info(
            f"Mapped {len(result.mapped)} files, skipped {len(result.skipped)}, "
            f"unmatched {len(result.unmatched)}"
        )
        return result
