"""Domain model for firmware packages and flashing sessions.

Entities are immutable values. Mutation helpers return an updated copy so the
loaded and working firmware never share mutable containers.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from pitflash.pit import PitTable


# ==============================================================================
# Firmware Domain
# ==============================================================================


@dataclass(frozen=True)
class FileInfo:
    """Binding of a partition slot to a source image file.

    An empty filename marks a reserved slot that cannot be flashed yet.
    """

    partition_id: int
    filename: str = ""

    @property
    def is_bound(self) -> bool:
        return bool(self.filename)


@dataclass(frozen=True)
class DeviceInfo:
    """One hardware variant a firmware build supports."""

    manufacturer: str
    product: str
    name: str

    def format_label(self) -> str:
        """Return e.g. "Samsung Galaxy S III (GT-I9300)"."""
        return f"{self.manufacturer} {self.name} ({self.product})"


@dataclass(frozen=True)
class PlatformInfo:
    name: str = ""
    version: str = ""


@dataclass(frozen=True)
class FirmwareInfo:
    """Firmware metadata plus ordered partition bindings."""

    name: str = ""
    version: str = ""
    platform: PlatformInfo = field(default_factory=PlatformInfo)
    developers: tuple[str, ...] = ()
    url: str = ""
    donate_url: str = ""
    devices: tuple[DeviceInfo, ...] = ()
    pit_filename: str = ""
    repartition: bool = False
    no_reboot: bool = False
    file_infos: tuple[FileInfo, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self == FirmwareInfo()

    def with_changes(self, **changes) -> FirmwareInfo:
        """Return a copy with ``changes`` applied; list fields become tuples."""
        for key in ("developers", "devices", "file_infos"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return replace(self, **changes)

    def bound_partition_ids(self) -> list[int]:
        return [file_info.partition_id for file_info in self.file_infos]

    def add_file_info(self, file_info: FileInfo) -> FirmwareInfo:
        return replace(self, file_infos=self.file_infos + (file_info,))

    def remove_file_info(self, index: int) -> FirmwareInfo:
        file_infos = list(self.file_infos)
        del file_infos[index]
        return replace(self, file_infos=tuple(file_infos))

    def replace_file_info(self, index: int, file_info: FileInfo) -> FirmwareInfo:
        file_infos = list(self.file_infos)
        file_infos[index] = file_info
        return replace(self, file_infos=tuple(file_infos))

    def add_developer(self, name: str) -> FirmwareInfo:
        return replace(self, developers=self.developers + (name,))

    def remove_developer(self, index: int) -> FirmwareInfo:
        developers = list(self.developers)
        del developers[index]
        return replace(self, developers=tuple(developers))

    def add_device(self, device: DeviceInfo) -> FirmwareInfo:
        return replace(self, devices=self.devices + (device,))

    def remove_device(self, index: int) -> FirmwareInfo:
        devices = list(self.devices)
        del devices[index]
        return replace(self, devices=tuple(devices))


def unused_partition_ids(pit: PitTable, file_infos: Iterable[FileInfo]) -> list[int]:
    """Flashable PIT identifiers not yet bound, in PIT order.

    Recomputed on demand after every binding change; never stored.
    """
    bound = {file_info.partition_id for file_info in file_infos}
    return [
        identifier for identifier in pit.flashable_identifiers() if identifier not in bound
    ]


# ==============================================================================
# Tool Session Domain
# ==============================================================================


class SessionKind(Enum):
    """Kind of Heimdall run occupying the flash handle."""

    IDLE = "idle"
    FLASHING = "flashing"
    DETECTING_DEVICE = "detecting-device"
    CLOSING_PC_SCREEN = "closing-pc-screen"
    DOWNLOADING_PIT = "downloading-pit"
    PRINTING_PIT = "printing-pit"


@dataclass(frozen=True)
class SessionState:
    """Run kind plus the sticky no-reboot bit that seeds the next resume."""

    kind: SessionKind = SessionKind.IDLE
    no_reboot: bool = False

    @property
    def is_idle(self) -> bool:
        return self.kind is SessionKind.IDLE


class Outcome(Enum):
    """Terminal classification of a tool run."""

    SUCCESS = "success"
    FAILURE = "failure"
    FAILED_TO_START = "failed-to-start"
    CRASHED = "crashed"
    UNKNOWN_ERROR = "unknown-error"


@dataclass(frozen=True)
class SessionOutcome:
    kind: SessionKind
    outcome: Outcome
    message: str = ""
    exit_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS
