"""Heimdall command line construction.

Argument order is part of the contract: logs and downstream tooling read
``flash`` invocations positionally.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pitflash.domain import FirmwareInfo, SessionKind
from pitflash.exceptions import UnboundPartitionError, UnknownPartitionError
from pitflash.logging import LoggerFactory
from pitflash.pit import PitTable

log = LoggerFactory.for_flash(job_id="-")

STDOUT_ERRORS = "--stdout-errors"
NO_REBOOT = "--no-reboot"
RESUME = "--resume"
VERBOSE = "--verbose"


@dataclass(frozen=True)
class ToolCommand:
    """Arguments for one Heimdall run plus the session it starts."""

    arguments: tuple[str, ...]
    kind: SessionKind
    no_reboot: bool = False
    repartition_skipped: bool = False

    def preview(self, executable: str = "heimdall") -> str:
        return " ".join((executable,) + self.arguments)


def validate_bindings(firmware: FirmwareInfo, pit: PitTable) -> None:
    """Check every binding names a PIT partition and has a file.

    Raises:
        UnknownPartitionError: Bindings reference ids absent from the PIT.
        UnboundPartitionError: A binding has no file.
    """
    missing = [
        file_info.partition_id
        for file_info in firmware.file_infos
        if pit.find_entry(file_info.partition_id) is None
    ]
    if missing:
        raise UnknownPartitionError(missing)
    for file_info in firmware.file_infos:
        if not file_info.is_bound:
            raise UnboundPartitionError(file_info.partition_id)


class FlashCommandBuilder:
    def __init__(self, pit: PitTable):
        self.pit = pit

    def partition_flag(self, partition_id: int) -> str:
        entry = self.pit.find_entry(partition_id)
        if entry is not None and entry.flashable:
            return f"--{entry.partition_name}"
        return f"--{partition_id}"

    def build(
        self,
        firmware: FirmwareInfo,
        *,
        resume: bool = False,
        verbose: bool = False,
    ) -> ToolCommand:
        validate_bindings(firmware, self.pit)

        arguments = ["flash"]

        # Single-partition flashes never repartition.
        single_partition = len(firmware.file_infos) == 1
        repartition_skipped = firmware.repartition and single_partition
        if firmware.repartition and not single_partition:
            arguments.append("--repartition")
        elif repartition_skipped:
            log.warning("Skipping repartition (single partition flash)")

        arguments.extend(["--PIT", firmware.pit_filename])

        for file_info in firmware.file_infos:
            arguments.append(self.partition_flag(file_info.partition_id))
            arguments.append(file_info.filename)

        if firmware.no_reboot:
            arguments.append(NO_REBOOT)
        if resume:
            arguments.append(RESUME)
        if verbose:
            arguments.append(VERBOSE)
        arguments.append(STDOUT_ERRORS)

        return ToolCommand(
            arguments=tuple(arguments),
            kind=SessionKind.FLASHING,
            no_reboot=firmware.no_reboot,
            repartition_skipped=repartition_skipped,
        )


def detect_command(*, verbose: bool = False) -> ToolCommand:
    arguments = ["detect"]
    if verbose:
        arguments.append(VERBOSE)
    arguments.append(STDOUT_ERRORS)
    return ToolCommand(tuple(arguments), SessionKind.DETECTING_DEVICE)


def close_pc_screen_command(*, resume: bool = False, verbose: bool = False) -> ToolCommand:
    arguments = ["close-pc-screen"]
    if resume:
        arguments.append(RESUME)
    if verbose:
        arguments.append(VERBOSE)
    arguments.append(STDOUT_ERRORS)
    return ToolCommand(tuple(arguments), SessionKind.CLOSING_PC_SCREEN)


def download_pit_command(
    output: str, *, resume: bool = False, verbose: bool = False
) -> ToolCommand:
    arguments = ["download-pit", "--output", output, NO_REBOOT]
    if resume:
        arguments.append(RESUME)
    if verbose:
        arguments.append(VERBOSE)
    arguments.append(STDOUT_ERRORS)
    return ToolCommand(tuple(arguments), SessionKind.DOWNLOADING_PIT, no_reboot=True)


def print_pit_command(
    file: Optional[str] = None, *, resume: bool = False, verbose: bool = False
) -> ToolCommand:
    """``print-pit`` from the device, or from a local ``file``."""
    arguments = ["print-pit"]
    if file:
        arguments.extend(["--file", file])
    arguments.extend([STDOUT_ERRORS, NO_REBOOT])
    if resume:
        arguments.append(RESUME)
    if verbose:
        arguments.append(VERBOSE)
    return ToolCommand(tuple(arguments), SessionKind.PRINTING_PIT, no_reboot=True)
