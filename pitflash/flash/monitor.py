"""Heimdall session state machine and output scanning.

Heimdall reports progress on stdout as ``Uploading <PARTITION>`` lines
followed by percentages separated with backspaces, e.g.
``Uploading BOOT\\n0%\\b\\b7%\\b\\b12%``. Output arrives in arbitrary
chunks, so a marker may be split across two reads.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pitflash.domain import Outcome, SessionKind, SessionOutcome, SessionState
from pitflash.logging import LoggerFactory, ThrottledLogger, get_logger

UPLOADING_PATTERN = re.compile(r"Uploading [^\n]+\n")
PERCENT_PATTERN = re.compile(r"[\b\n]([0-9]+)%")
ERROR_PREFIX = "ERROR: "
MAX_CARRY = 256

FLASH_SUCCESS_MESSAGE = "Flash completed successfully!"
FAILED_TO_START_MESSAGE = "Failed to start Heimdall!"
CRASHED_MESSAGE = "Heimdall crashed!"
UNKNOWN_ERROR_MESSAGE = "Heimdall reported an unknown error!"

output_log = get_logger(source="heimdall", tags=["flash", "output"])


class ProcessFailure(Enum):
    """OS-level process errors, as reported by the process layer."""

    FAILED_TO_START = "failed-to-start"
    TIMED_OUT = "timed-out"
    CRASHED = "crashed"
    READ_ERROR = "read-error"
    WRITE_ERROR = "write-error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ScanResult:
    status: Optional[str]
    percent: Optional[int]
    display: str


def format_display(chunk: str) -> str:
    """Strip backspaces and break the line after every percent sign."""
    return chunk.replace("\b", "").replace("%", "%\n")


class OutputScanner:
    """Incremental scanner for status lines and percentage markers.

    Only the unterminated tail of the previous chunk is retained, so each
    marker is applied once even when split across reads.
    """

    def __init__(self) -> None:
        self._carry = ""

    def reset(self) -> None:
        self._carry = ""

    def scan(self, chunk: str) -> ScanResult:
        text = self._carry + chunk

        status = None
        consumed = 0
        for match in UPLOADING_PATTERN.finditer(text):
            status = match.group(0)[:-1]
            # The trailing newline also opens the next percentage marker.
            consumed = max(consumed, match.end() - 1)

        percent = None
        for match in PERCENT_PATTERN.finditer(text):
            percent = int(match.group(1))
            consumed = max(consumed, match.end())

        # Keep from the last delimiter so a marker split across chunks can
        # still match, but never re-scan a marker that already matched.
        boundary = max(text.rfind("\n"), text.rfind("\b"), consumed)
        self._carry = text[boundary:][-MAX_CARRY:]

        return ScanResult(status=status, percent=percent, display=format_display(chunk))


class ToolSessionMonitor:
    """Track one Heimdall run from start to terminal classification.

    ``failed`` is sticky until the next ``begin`` and drives the PATH
    fallback. ``resume`` carries the no-reboot bit of the last successful run
    into the next one.
    """

    def __init__(self, *, resume: bool = False) -> None:
        self.state = SessionState()
        self.status = ""
        self.progress = 0
        self.failed = False
        self.device_detected = False
        self.resume = resume
        self.output: list[str] = []
        self._scanner = OutputScanner()
        self._log = LoggerFactory.for_flash()
        self._progress_log = ThrottledLogger(self._log, interval_seconds=1.0)

    @property
    def is_idle(self) -> bool:
        return self.state.is_idle

    @property
    def output_text(self) -> str:
        return "".join(self.output)

    def begin(self, kind: SessionKind, *, no_reboot: bool = False) -> None:
        """Idle -> ``kind``: clear the failure flag and per-run state."""
        self._log = LoggerFactory.for_flash()
        self._progress_log = ThrottledLogger(self._log, interval_seconds=1.0)
        self.state = SessionState(kind=kind, no_reboot=no_reboot)
        self.failed = False
        self.progress = 0
        self.status = ""
        self.output = []
        if kind is SessionKind.DETECTING_DEVICE or kind is SessionKind.DOWNLOADING_PIT:
            self.device_detected = False
        self._scanner.reset()
        self._log.info(f"Heimdall session started: {kind.value}", no_reboot=no_reboot)

    def feed(self, chunk: str) -> str:
        """Consume a chunk of tool output; return the text to display."""
        if not chunk:
            return ""
        output_log.trace(repr(chunk))
        result = self._scanner.scan(chunk)
        if result.status is not None:
            self.status = result.status
            self._log.info(result.status)
        if result.percent is not None:
            self.progress = max(0, min(100, result.percent))
            self._progress_log.debug(
                "progress", f"{self.status or 'Progress'} percent {self.progress}"
            )
        self.output.append(result.display)
        return result.display

    def finished(
        self,
        exit_code: int,
        *,
        crashed: bool = False,
        error_output: str = "",
    ) -> SessionOutcome:
        """Classify a process exit and return to Idle."""
        kind = self.state.kind
        if not crashed and exit_code == 0:
            self.resume = self.state.no_reboot
            if kind is SessionKind.FLASHING:
                self.status = FLASH_SUCCESS_MESSAGE
            elif kind is SessionKind.DETECTING_DEVICE:
                self.device_detected = True
            outcome = SessionOutcome(kind, Outcome.SUCCESS, self.status, exit_code)
            self._log.success(f"Heimdall {kind.value} succeeded")
        else:
            message = ""
            if kind is SessionKind.FLASHING:
                message = self._last_error_line(error_output)
                self.status = message
            elif kind is SessionKind.DETECTING_DEVICE:
                self.device_detected = False
            outcome = SessionOutcome(kind, Outcome.FAILURE, message, exit_code)
            self._log.error(
                f"Heimdall {kind.value} failed", exit_code=exit_code, message=message
            )
        self._reset()
        return outcome

    def error(self, failure: ProcessFailure, error_output: str = "") -> SessionOutcome:
        """Classify an OS-level process error and return to Idle."""
        kind = self.state.kind
        if failure in (ProcessFailure.FAILED_TO_START, ProcessFailure.TIMED_OUT):
            self.failed = True
            outcome = Outcome.FAILED_TO_START
            message = FAILED_TO_START_MESSAGE
        elif failure is ProcessFailure.CRASHED:
            outcome = Outcome.CRASHED
            message = CRASHED_MESSAGE
        else:
            outcome = Outcome.UNKNOWN_ERROR
            message = UNKNOWN_ERROR_MESSAGE

        if kind is SessionKind.FLASHING:
            self.status = message
        else:
            self.output.append(f"\nFRONTEND ERROR: {message}\n{error_output}")
        self._log.error(message, failure=failure.value)
        self._reset()
        return SessionOutcome(kind, outcome, message)

    def _last_error_line(self, error_output: str) -> str:
        """Last line of the error channel without Heimdall's ``ERROR: `` prefix.

        With ``--stdout-errors`` errors arrive on stdout, so fall back to the
        last ``ERROR:`` line seen in the output.
        """
        lines = [line for line in error_output.splitlines() if line.strip()]
        if not lines:
            lines = [
                line
                for line in self.output_text.splitlines()
                if line.startswith(ERROR_PREFIX)
            ]
        if not lines:
            return ""
        return lines[-1].replace(ERROR_PREFIX, "").strip()

    def _reset(self) -> None:
        self.state = SessionState()
        self.progress = 0
        self._scanner.reset()
