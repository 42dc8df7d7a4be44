"""Custom exceptions for PIT, package and flashing operations.

Exception Hierarchy:
    PitflashError (base)
        ├── PitFormatError
        ├── PackageError
        │   ├── NotAnArchiveError
        │   ├── MissingManifestError
        │   ├── CorruptMemberError
        │   └── PackageWriteError
        ├── ValidationError
        │   ├── UnknownPartitionError
        │   └── UnboundPartitionError
        └── ProcessError
            └── ToolBusyError

Usage:
    from pitflash.exceptions import UnknownPartitionError

    if missing_ids:
        raise UnknownPartitionError(missing_ids)
"""

from __future__ import annotations

from typing import Iterable


class PitflashError(Exception):
    """Base exception for all pitflash operations."""


class PitFormatError(PitflashError):
    """PIT buffer is malformed (too short, bad magic, bad entry count, bad string)."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid PIT data: {reason}")


class PackageError(PitflashError):
    """Base exception for firmware package errors."""


class NotAnArchiveError(PackageError):
    """File could not be opened as a tar archive."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Not a firmware package archive: {path}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MissingManifestError(PackageError):
    """Archive has no firmware manifest."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Firmware package {path} has no firmware.xml manifest")


class CorruptMemberError(PackageError):
    """An archive member could not be read or parsed."""

    def __init__(self, member: str, reason: str):
        self.member = member
        self.reason = reason
        super().__init__(f"Corrupt package member {member}: {reason}")


class PackageWriteError(PackageError):
    """Package could not be written."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write package {path}: {reason}")


class ValidationError(PitflashError):
    """Firmware bindings are inconsistent with the PIT."""


class UnknownPartitionError(ValidationError):
    """Bindings reference partition identifiers absent from the PIT."""

    def __init__(self, partition_ids: Iterable[int]):
        self.partition_ids = sorted(set(partition_ids))
        ids_str = ", ".join(str(partition_id) for partition_id in self.partition_ids)
        super().__init__(f"Firmware includes invalid partition IDs: {ids_str}")


class UnboundPartitionError(ValidationError):
    """A partition slot has no file bound to it."""

    def __init__(self, partition_id: int):
        self.partition_id = partition_id
        super().__init__(f"Partition {partition_id} has no file selected")


class ProcessError(PitflashError):
    """Base exception for external tool process errors."""


class ToolBusyError(ProcessError):
    """A process handle is already running a command."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"{tool} is already running")

