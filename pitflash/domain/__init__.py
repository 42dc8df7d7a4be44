"""Domain models for firmware packages and Heimdall sessions."""

from __future__ import annotations

from .models import (
    DeviceInfo,
    FileInfo,
    FirmwareInfo,
    Outcome,
    PlatformInfo,
    SessionKind,
    SessionOutcome,
    SessionState,
    unused_partition_ids,
)


__all__ = [
    "DeviceInfo",
    "FileInfo",
    "FirmwareInfo",
    "Outcome",
    "PlatformInfo",
    "SessionKind",
    "SessionOutcome",
    "SessionState",
    "unused_partition_ids",
]
