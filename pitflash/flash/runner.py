"""Single-slot process handles and Heimdall session execution."""

from __future__ import annotations

import codecs
import os
import select
import subprocess
import time
from typing import Callable, Mapping, Optional, Sequence

from pitflash.config import settings
from pitflash.domain import SessionOutcome
from pitflash.exceptions import ToolBusyError
from pitflash.logging import LoggerFactory

from .commands import ToolCommand
from .monitor import ProcessFailure, ToolSessionMonitor

log = LoggerFactory.for_flash(job_id="-")

# Always searched, even when missing from the inherited PATH.
REQUIRED_PATH_DIRECTORIES = ("/usr/local/bin", "/usr/bin")
READ_SIZE = 4096
POLL_INTERVAL = 0.5


def candidate_directories(environ: Optional[Mapping[str, str]] = None) -> list[str]:
    """Directories to retry from when the bare executable failed to start."""
    environ = os.environ if environ is None else environ
    paths = [path for path in environ.get("PATH", "").split(os.pathsep) if path]
    missing = [path for path in REQUIRED_PATH_DIRECTORIES if path not in paths]
    return missing + paths


class ProcessSlot:
    """One external process at a time.

    ``launch`` refuses to start while the previous process is still running.
    """

    def __init__(self, name: str, popen: Callable[..., subprocess.Popen] = subprocess.Popen):
        self.name = name
        self._popen = popen
        self.process: Optional[subprocess.Popen] = None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def launch(self, argv: Sequence[str]) -> subprocess.Popen:
        """Start ``argv``.

        Raises:
            ToolBusyError: The slot is occupied.
            OSError: The executable could not be started.
        """
        if self.running:
            raise ToolBusyError(self.name)
        log.debug(f"Running command: {' '.join(argv)}")
        self.process = self._popen(
            list(argv),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
        )
        return self.process

    def pump(self, on_output: Callable[[str], None]) -> tuple[int, str]:
        """Stream stdout to ``on_output`` until exit; return (returncode, stderr).

        Both pipes are drained in the same loop so a child filling its stderr
        pipe cannot stall.
        """
        process = self.process
        if process is None:
            raise RuntimeError(f"{self.name} has not been started")
        decoders = {
            process.stdout: codecs.getincrementaldecoder("utf-8")(errors="replace"),
        }
        if process.stderr:
            decoders[process.stderr] = codecs.getincrementaldecoder("utf-8")(
                errors="replace"
            )
        open_pipes = list(decoders)
        stderr_parts: list[str] = []

        def emit(pipe, text: str) -> None:
            if not text:
                return
            if pipe is process.stdout:
                on_output(text)
            else:
                stderr_parts.append(text)

        while open_pipes:
            ready, _, _ = select.select(open_pipes, [], [], POLL_INTERVAL)
            for pipe in ready:
                data = os.read(pipe.fileno(), READ_SIZE)
                if data:
                    emit(pipe, decoders[pipe].decode(data))
                else:
                    emit(pipe, decoders[pipe].decode(b"", final=True))
                    open_pipes.remove(pipe)
        process.wait()
        process.stdout.close()
        if process.stderr:
            process.stderr.close()
        return process.returncode, "".join(stderr_parts)


class HeimdallSession:
    """Run Heimdall commands on the flash handle and classify the result."""

    def __init__(
        self,
        monitor: Optional[ToolSessionMonitor] = None,
        slot: Optional[ProcessSlot] = None,
        *,
        executable: Optional[str] = None,
        fallback_timeout: Optional[float] = None,
        on_output: Optional[Callable[[str], None]] = None,
    ):
        self.monitor = monitor or ToolSessionMonitor(resume=settings.get_bool("resume"))
        self.slot = slot or ProcessSlot("heimdall")
        self.executable = executable or settings.get_setting(
            "heimdall_executable", settings.DEFAULT_HEIMDALL_EXECUTABLE
        )
        self.fallback_timeout = (
            fallback_timeout
            if fallback_timeout is not None
            else settings.get_float(
                "start_fallback_timeout_seconds", settings.DEFAULT_START_FALLBACK_TIMEOUT
            )
        )
        self.on_output = on_output

    @property
    def running(self) -> bool:
        return self.slot.running

    def start(
        self, command: ToolCommand, environ: Optional[Mapping[str, str]] = None
    ) -> Optional[SessionOutcome]:
        """Start ``command``; return an outcome only if it could not start.

        On a failed start every PATH directory is tried once, stopping at the
        first that starts, within ``fallback_timeout`` seconds overall.
        """
        if self.slot.running:
            raise ToolBusyError(self.slot.name)
        self.monitor.begin(command.kind, no_reboot=command.no_reboot)
        log.info(f"Executing: {command.preview(self.executable)}")

        error = self._try_launch(self.executable, command)
        if error is None:
            return None
        self.monitor.failed = True

        deadline = time.monotonic() + self.fallback_timeout
        for directory in candidate_directories(environ):
            if time.monotonic() >= deadline:
                log.warning("Gave up searching PATH for heimdall: timeout reached")
                break
            candidate = os.path.join(directory, os.path.basename(self.executable))
            error = self._try_launch(candidate, command)
            if error is None:
                self.monitor.failed = False
                return None

        return self.monitor.error(ProcessFailure.FAILED_TO_START, str(error or ""))

    def _try_launch(self, executable: str, command: ToolCommand) -> Optional[OSError]:
        try:
            self.slot.launch([executable, *command.arguments])
        except OSError as error:
            log.debug(f"Could not start {executable}: {error}")
            return error
        return None

    def wait(self) -> SessionOutcome:
        """Stream output into the monitor until exit, then classify."""

        def handle_output(chunk: str) -> None:
            display = self.monitor.feed(chunk)
            if self.on_output is not None:
                self.on_output(display)

        try:
            returncode, stderr = self.slot.pump(handle_output)
        except OSError as error:
            return self.monitor.error(ProcessFailure.READ_ERROR, str(error))

        if returncode < 0:
            # Killed by a signal.
            return self.monitor.error(ProcessFailure.CRASHED, stderr)
        return self.monitor.finished(returncode, error_output=stderr)

    def run(
        self, command: ToolCommand, environ: Optional[Mapping[str, str]] = None
    ) -> SessionOutcome:
        outcome = self.start(command, environ)
        if outcome is not None:
            return outcome
        return self.wait()
