"""ADB device utility commands on an independent process handle."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from pitflash.config import settings
from pitflash.exceptions import ToolBusyError
from pitflash.logging import LoggerFactory

from .runner import ProcessSlot

log = LoggerFactory.for_adb()


def adb_executable() -> str:
    return settings.get_setting("adb_executable", settings.DEFAULT_ADB_EXECUTABLE)


def args_reboot_recovery() -> list[str]:
    return ["reboot", "recovery"]


def args_reboot_download() -> list[str]:
    return ["reboot", "download"]


def args_reboot_fastboot() -> list[str]:
    return ["reboot", "bootloader"]


def args_shutdown() -> list[str]:
    return ["shell", "reboot", "-p"]


def args_custom(command_line: str) -> list[str]:
    """Split user command text on spaces, dropping empty parts."""
    return [part for part in command_line.split(" ") if part]


def args_devices() -> list[str]:
    return ["devices", "-l"]


def args_shell_ls_root() -> list[str]:
    return ["shell", "ls", "-la", "/"]


def args_logcat_recent(lines: int = settings.DEFAULT_LOGCAT_LINES) -> list[str]:
    return ["logcat", "-d", "-t", str(lines)]


def args_check_root() -> list[str]:
    return ["shell", "which", "su"]


def args_install_apk(apk_path: str) -> list[str]:
    return ["install", apk_path]


def args_getprop() -> list[str]:
    return ["shell", "getprop"]


@dataclass(frozen=True)
class AdbResult:
    arguments: tuple[str, ...]
    status: str
    output: str = ""
    hint: str = ""
    exit_code: Optional[int] = None
    root_detected: Optional[bool] = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def completion_note(arguments: Sequence[str]) -> str:
    if "devices" in arguments:
        return "--- Device list complete ---"
    if "install" in arguments:
        return "--- APK installation complete ---"
    if "logcat" in arguments:
        return "--- Logcat dump complete ---"
    return ""


def failure_hint(arguments: Sequence[str], exit_code: int) -> str:
    if exit_code != 1:
        return ""
    if "shell" in arguments:
        return "Shell command failed. Check device connection or try a different path/command."
    return "Command failed. Make sure device is connected and ADB is authorized."


def detect_root(output: str) -> bool:
    return "/su" in output


def classify_result(arguments: Sequence[str], exit_code: int, output: str) -> AdbResult:
    arguments = tuple(arguments)
    root_detected = None
    if "which" in arguments and "su" in arguments:
        root_detected = exit_code == 0 and detect_root(output)

    if exit_code < 0:
        return AdbResult(arguments, "Command crashed", output, exit_code=exit_code)
    if exit_code == 0:
        return AdbResult(
            arguments,
            "Command completed successfully",
            output,
            hint=completion_note(arguments),
            exit_code=exit_code,
            root_detected=root_detected,
        )
    return AdbResult(
        arguments,
        f"Command failed (exit code: {exit_code})",
        output,
        hint=failure_hint(arguments, exit_code),
        exit_code=exit_code,
        root_detected=root_detected,
    )


class DeviceUtility:
    """Runs adb commands on its own slot, independent of the flash handle."""

    def __init__(self, slot: Optional[ProcessSlot] = None, executable: Optional[str] = None):
        self.slot = slot or ProcessSlot("adb")
        self.executable = executable or adb_executable()

    @property
    def running(self) -> bool:
        return self.slot.running

    def run(self, arguments: Sequence[str]) -> AdbResult:
        if self.slot.running:
            raise ToolBusyError(self.slot.name)
        log.info(f"Executing: {self.executable} {' '.join(arguments)}")
        try:
            self.slot.launch([self.executable, *arguments])
        except OSError as error:
            log.error(f"Failed to start ADB: {error}")
            return AdbResult(
                tuple(arguments),
                "Failed to start ADB. Is ADB installed and in PATH?",
                hint="Install Android SDK Platform Tools, add ADB to PATH and "
                "enable USB Debugging on the device.",
            )

        chunks: list[str] = []
        try:
            exit_code, stderr = self.slot.pump(chunks.append)
        except (OSError, subprocess.SubprocessError) as error:
            log.error(f"ADB read error: {error}")
            return AdbResult(tuple(arguments), "ADB read error", "".join(chunks))

        output = "".join(chunks)
        if stderr.strip():
            output = f"{output}{stderr}" if output else stderr
        result = classify_result(arguments, exit_code, output)
        if result.succeeded:
            log.info(result.status)
        else:
            log.warning(result.status)
        return result

    def reboot_recovery(self) -> AdbResult:
        return self.run(args_reboot_recovery())

    def reboot_download(self) -> AdbResult:
        return self.run(args_reboot_download())

    def reboot_fastboot(self) -> AdbResult:
        return self.run(args_reboot_fastboot())

    def shutdown(self) -> AdbResult:
        return self.run(args_shutdown())

    def devices(self) -> AdbResult:
        return self.run(args_devices())

    def shell_ls_root(self) -> AdbResult:
        return self.run(args_shell_ls_root())

    def logcat(self, lines: Optional[int] = None) -> AdbResult:
        if lines is None:
            lines = settings.get_int("logcat_lines", settings.DEFAULT_LOGCAT_LINES)
        return self.run(args_logcat_recent(lines))

    def check_root(self) -> AdbResult:
        return self.run(args_check_root())

    def install_apk(self, apk_path: str) -> AdbResult:
        return self.run(args_install_apk(apk_path))

    def getprop(self) -> AdbResult:
        return self.run(args_getprop())

    def custom(self, command_line: str) -> Optional[AdbResult]:
        arguments = args_custom(command_line.strip())
        if not arguments:
            return None
        return self.run(arguments)
