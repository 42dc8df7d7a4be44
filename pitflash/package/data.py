"""Firmware package data with owned backing files."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pitflash.domain import FileInfo, FirmwareInfo
from pitflash.logging import LoggerFactory

log = LoggerFactory.for_package()


@dataclass
class PackageData:
    """FirmwareInfo plus the temporary files backing it.

    The backing directory is owned: ``clear()``, leaving a ``with`` block or
    garbage collection deletes it. Ownership moves between instances with
    ``take_ownership``.
    """

    firmware_info: FirmwareInfo = field(default_factory=FirmwareInfo)
    files: dict[str, Path] = field(default_factory=dict)
    backing: Optional[tempfile.TemporaryDirectory] = None

    @property
    def backing_dir(self) -> Optional[Path]:
        return Path(self.backing.name) if self.backing is not None else None

    @property
    def is_empty(self) -> bool:
        return self.firmware_info.is_empty and not self.files

    def path_for(self, member: str) -> Optional[Path]:
        return self.files.get(member)

    def clear(self) -> None:
        """Forget the firmware and delete owned backing files."""
        if self.backing is not None:
            log.debug(f"Removing package backing files at {self.backing.name}")
            self.backing.cleanup()
        self.firmware_info = FirmwareInfo()
        self.files = {}
        self.backing = None

    def release(self) -> tuple[dict[str, Path], Optional[tempfile.TemporaryDirectory]]:
        """Hand back the backing files without deleting them; leaves self empty."""
        files, backing = self.files, self.backing
        self.firmware_info = FirmwareInfo()
        self.files = {}
        self.backing = None
        return files, backing

    @classmethod
    def take_ownership(cls, loaded: PackageData) -> tuple[PackageData, list[str]]:
        """Move ``loaded`` into a new working package.

        Bindings and the PIT filename are rebound to absolute backing paths.
        ``loaded`` is empty afterwards. Returns the working package and the
        member names referenced by the manifest but missing from the archive.
        """
        firmware = loaded.firmware_info
        files, backing = loaded.release()

        missing: list[str] = []
        file_infos: list[FileInfo] = []
        for file_info in firmware.file_infos:
            path = files.get(file_info.filename)
            if path is None:
                missing.append(file_info.filename)
                continue
            file_infos.append(FileInfo(file_info.partition_id, str(path.resolve())))

        pit_path = files.get(firmware.pit_filename)
        if pit_path is None and firmware.pit_filename:
            missing.append(firmware.pit_filename)
        pit_filename = str(pit_path.resolve()) if pit_path is not None else ""

        for name in missing:
            log.warning(f"{name} is missing from the package.")

        working = cls(
            firmware_info=firmware.with_changes(
                file_infos=file_infos, pit_filename=pit_filename
            ),
            files=files,
            backing=backing,
        )
        return working, missing

    def __enter__(self) -> PackageData:
        return self

    def __exit__(self, *exc_info) -> None:
        self.clear()
