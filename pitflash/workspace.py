"""Loaded/working package lifecycle and binding edits.

The loaded package is a read-only view of an extracted archive. Loading it
for flashing moves its backing files into the working package, which is then
edited against the current PIT.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from pitflash.domain import FileInfo, FirmwareInfo, unused_partition_ids
from pitflash.exceptions import PitFormatError, UnknownPartitionError
from pitflash.flash.commands import FlashCommandBuilder, ToolCommand
from pitflash.logging import LoggerFactory
from pitflash.package import PackageData, build_package, extract_package
from pitflash.pit import PitEntry, PitTable

log = LoggerFactory.for_package(job_id="workspace")


def extension_warning(entry: PitEntry, path: str) -> Optional[str]:
    """Warn when ``path`` lacks the extension the PIT expects."""
    expected = entry.flash_extension
    if not expected:
        return None
    _, dot, actual = path.rpartition(".")
    if dot and actual == expected:
        return None
    return f'{entry.partition_name} partition expects files with file extension "{expected}".'


class FlashWorkspace:
    def __init__(self) -> None:
        self.loaded = PackageData()
        self.working = PackageData()
        self.pit = PitTable()
        self.warnings: list[str] = []

    @property
    def firmware(self) -> FirmwareInfo:
        return self.working.firmware_info

    def _set_firmware(self, firmware: FirmwareInfo) -> None:
        self.working.firmware_info = firmware

    def _warn(self, message: str) -> None:
        log.warning(message)
        self.warnings.append(message)

    def read_pit(self, path: Union[str, Path]) -> bool:
        """Load ``path`` into the current PIT; leave it cleared on failure."""
        try:
            self.pit.unpack(Path(path).read_bytes())
        except (OSError, PitFormatError) as error:
            self.pit.clear()
            log.error(f"Failed to read PIT {path}: {error}")
            return False
        return True

    def unused_partition_ids(self) -> list[int]:
        return unused_partition_ids(self.pit, self.firmware.file_infos)

    def load_package(self, path: Union[str, Path]) -> FirmwareInfo:
        """Extract ``path`` as the loaded package, replacing any previous one.

        On failure the previously loaded package is untouched.
        """
        package = extract_package(path)
        self.loaded.clear()
        self.loaded = package
        return package.firmware_info

    def load_for_flash(self) -> None:
        """Move the loaded package into the working package.

        Raises:
            PitFormatError: The package PIT is unreadable; everything is cleared.
            UnknownPartitionError: Bindings reference ids absent from the
                package PIT; everything is cleared.
        """
        self.working.clear()
        self.pit.clear()
        self.working, missing = PackageData.take_ownership(self.loaded)
        for name in missing:
            self.warnings.append(f"{name} is missing from the package.")

        pit_filename = self.firmware.pit_filename
        if not pit_filename or not self.read_pit(pit_filename):
            self.working.clear()
            raise PitFormatError("Failed to read PIT file.")

        unknown = [
            file_info.partition_id
            for file_info in self.firmware.file_infos
            if self.pit.find_entry(file_info.partition_id) is None
        ]
        if unknown:
            self.working.clear()
            self.pit.clear()
            raise UnknownPartitionError(unknown)

    def add_partition(self) -> int:
        """Reserve the first unused partition with no file; return its index."""
        unused = self.unused_partition_ids()
        if not unused:
            raise IndexError("No unused partitions left in the PIT")
        self._set_firmware(self.firmware.add_file_info(FileInfo(unused[0])))
        return len(self.firmware.file_infos) - 1

    def remove_partition(self, index: int) -> None:
        self._set_firmware(self.firmware.remove_file_info(index))

    def set_partition_id(self, index: int, partition_id: int) -> None:
        if partition_id not in self.unused_partition_ids():
            raise ValueError(f"Partition {partition_id} is not available")
        current = self.firmware.file_infos[index]
        self._set_firmware(
            self.firmware.replace_file_info(index, FileInfo(partition_id, current.filename))
        )
        entry = self.pit.find_entry(partition_id)
        if entry is not None and current.filename:
            message = extension_warning(entry, current.filename)
            if message:
                self._warn(message)

    def set_partition_file(self, index: int, path: str) -> None:
        current = self.firmware.file_infos[index]
        entry = self.pit.find_entry(current.partition_id)
        if entry is not None:
            message = extension_warning(entry, path)
            if message:
                self._warn(message)
        self._set_firmware(
            self.firmware.replace_file_info(index, FileInfo(current.partition_id, path))
        )

    def select_pit(self, path: Union[str, Path]) -> bool:
        """Switch to another PIT, remapping bindings by partition name.

        Bindings whose partition is absent from the new PIT are dropped. If the
        new PIT is invalid the previous one is reloaded; if that also fails the
        working package is cleared. Returns whether the new PIT was accepted.
        """
        names = []
        for file_info in self.firmware.file_infos:
            entry = self.pit.find_entry(file_info.partition_id)
            names.append(entry.partition_name if entry is not None else None)

        if self.read_pit(path):
            remapped = []
            for name, file_info in zip(names, self.firmware.file_infos):
                entry = self.pit.find_entry(name) if name is not None else None
                if entry is None:
                    log.info(f"Dropping binding for {name or file_info.partition_id}")
                    continue
                remapped.append(FileInfo(entry.identifier, file_info.filename))
            self._set_firmware(
                self.firmware.with_changes(file_infos=remapped, pit_filename=str(path))
            )
            return True

        self._warn("The file selected was not a valid PIT file.")
        previous = self.firmware.pit_filename
        if previous and self.read_pit(previous):
            return False
        if previous:
            self._warn("Failed to reload working PIT data.")
        self.working.clear()
        return False

    def update_firmware(self, **changes) -> FirmwareInfo:
        """Edit metadata (name, version, repartition, no_reboot...)."""
        self._set_firmware(self.firmware.with_changes(**changes))
        return self.firmware

    def flash_command(self, *, resume: bool = False, verbose: bool = False) -> ToolCommand:
        return FlashCommandBuilder(self.pit).build(
            self.firmware, resume=resume, verbose=verbose
        )

    def build_package(self, destination: Union[str, Path]) -> Path:
        return build_package(destination, self.firmware)

    def clear(self) -> None:
        self.loaded.clear()
        self.working.clear()
        self.pit.clear()
        self.warnings.clear()
