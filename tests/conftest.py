"""
Pytest configuration and shared fixtures for pitflash tests.

This module provides common fixtures and utilities used across all test modules.
"""

import io
import tarfile
from contextlib import suppress
from pathlib import Path
from typing import Callable, List

import pytest
from loguru import logger

from pitflash.config import settings
from pitflash.domain import FileInfo, FirmwareInfo, PlatformInfo
from pitflash.pit import PitEntry, PitTable


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep every test away from the user's real settings file."""
    settings_file = tmp_path / "config" / "settings.json"
    monkeypatch.setattr(settings, "SETTINGS_PATH", settings_file)
    monkeypatch.setattr(
        settings.settings_store, "values", dict(settings.DEFAULT_SETTINGS)
    )
    return settings_file


# ==============================================================================
# Logging Fixtures
# ==============================================================================


@pytest.fixture
def log_records() -> List[dict]:
    """Capture loguru records emitted during the test."""
    records: List[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="TRACE")
    yield records
    # setup_logging() may already have removed every handler.
    with suppress(ValueError):
        logger.remove(handler_id)


# ==============================================================================
# PIT Fixtures
# ==============================================================================


@pytest.fixture
def pit_entries() -> List[PitEntry]:
    """
    Fixture providing a small Galaxy-style partition layout.

    Identifier 0 is the PIT descriptor and identifier 20 is an unnamed entry;
    neither is flashable.
    """
    return [
        PitEntry(identifier=0, partition_name="PIT", flash_filename="device.pit"),
        PitEntry(
            identifier=1,
            partition_name="SBOOT",
            flash_filename="sboot.bin",
            binary_type=0,
            device_type=2,
            attributes=1,
            block_size_or_offset=0,
            block_count=2048,
        ),
        PitEntry(identifier=5, partition_name="BOOT", flash_filename="boot.img", attributes=1),
        PitEntry(
            identifier=6, partition_name="RECOVERY", flash_filename="recovery.img", attributes=1
        ),
        PitEntry(
            identifier=7,
            partition_name="MODEM",
            flash_filename="modem.bin",
            binary_type=1,
            attributes=1,
        ),
        PitEntry(
            identifier=8,
            partition_name="SYSTEM",
            flash_filename="factoryfs.img",
            attributes=5,
            block_count=3145728,
        ),
        PitEntry(identifier=10, partition_name="HIDDEN", flash_filename="hidden.img"),
        PitEntry(identifier=11, partition_name="PARAM", flash_filename="param.lfs"),
        PitEntry(identifier=20, partition_name=""),
    ]


@pytest.fixture
def sample_pit(pit_entries) -> PitTable:
    return PitTable(tuple(pit_entries), metadata=(1, 0, 0, 0, 0, 0, 0, 0))


@pytest.fixture
def pit_bytes(sample_pit) -> bytes:
    return sample_pit.pack()


@pytest.fixture
def pit_file(tmp_path, pit_bytes) -> Path:
    path = tmp_path / "device.pit"
    path.write_bytes(pit_bytes)
    return path


# ==============================================================================
# Image / Package Fixtures
# ==============================================================================


@pytest.fixture
def make_image(tmp_path) -> Callable[..., Path]:
    """Factory writing a small fake partition image under tmp_path/images."""
    images = tmp_path / "images"
    images.mkdir(exist_ok=True)

    def _make(name: str, content: bytes = b"") -> Path:
        path = images / name
        path.write_bytes(content or f"image:{name}".encode())
        return path

    return _make


@pytest.fixture
def sample_firmware(pit_file, make_image) -> FirmwareInfo:
    """Firmware binding BOOT and RECOVERY of the sample PIT to real files."""
    return FirmwareInfo(
        name="Test ROM",
        version="1.0",
        platform=PlatformInfo("Android", "4.1.2"),
        developers=("alice", "bob"),
        url="https://example.invalid/rom",
        donate_url="https://example.invalid/donate",
        pit_filename=str(pit_file),
        repartition=False,
        no_reboot=False,
        file_infos=(
            FileInfo(5, str(make_image("boot.img"))),
            FileInfo(6, str(make_image("recovery.img"))),
        ),
    )


@pytest.fixture
def make_archive(tmp_path) -> Callable[..., Path]:
    """Factory building a tar.gz directly from (member name, bytes) pairs."""

    def _make(name: str, members) -> Path:
        path = tmp_path / name
        with tarfile.open(path, "w:gz") as tar:
            for member_name, data in members:
                info = tarfile.TarInfo(member_name)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
        return path

    return _make
