"""Settings storage for application configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


SETTINGS_PATH = Path(
    os.environ.get(
        "PITFLASH_SETTINGS_PATH",
        Path.home() / ".config" / "pitflash" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_HEIMDALL_EXECUTABLE = "heimdall"
DEFAULT_ADB_EXECUTABLE = "adb"
DEFAULT_START_FALLBACK_TIMEOUT = 15.0
DEFAULT_LOGCAT_LINES = 50

DEFAULT_SETTINGS: dict[str, Any] = {
    "heimdall_executable": DEFAULT_HEIMDALL_EXECUTABLE,
    "adb_executable": DEFAULT_ADB_EXECUTABLE,
    "verbose_output": False,
    "resume": False,
    "start_fallback_timeout_seconds": DEFAULT_START_FALLBACK_TIMEOUT,
    "logcat_lines": DEFAULT_LOGCAT_LINES,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings() -> None:
    settings_store.values = dict(DEFAULT_SETTINGS)
    if not SETTINGS_PATH.exists():
        return
    try:
        data = json.loads(SETTINGS_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def save_settings() -> None:
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    SETTINGS_PATH.write_text(
        json.dumps(settings_store.values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def set_setting(key: str, value: Any) -> None:
    settings_store.values[key] = value
    save_settings()


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


def set_bool(key: str, value: bool) -> None:
    set_setting(key, bool(value))


def get_float(key: str, default: float) -> float:
    """Read a numeric setting, falling back to ``default`` on bad values."""
    value = get_setting(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def get_int(key: str, default: int) -> int:
    value = get_setting(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


load_settings()
