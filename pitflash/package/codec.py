"""Firmware package extraction and construction.

A package is a gzip-compressed tar archive holding ``firmware.xml``, the PIT
the firmware was built against and one member per bound partition file, each
stored under its basename.
"""
from __future__ import annotations

import gzip
import io
import os
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Union

from pitflash.domain import FirmwareInfo
from pitflash.exceptions import (
    CorruptMemberError,
    MissingManifestError,
    NotAnArchiveError,
    PackageWriteError,
)
from pitflash.logging import operation_context

from .data import PackageData
from .manifest import MANIFEST_NAME, member_name, parse_manifest, write_manifest
from .naming import normalize_package_path

_READ_ERRORS = (tarfile.TarError, OSError, EOFError, zlib.error)
COPY_BUFFER_SIZE = 1024 * 1024


def _safe_member_name(member: tarfile.TarInfo) -> str:
    name = PurePosixPath(member.name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise CorruptMemberError(member.name, "invalid member name")
    return name


def _materialize_members(tar: tarfile.TarFile, destination: Path) -> dict[str, Path]:
    files: dict[str, Path] = {}
    member = None
    try:
        for member in tar:
            if not member.isfile():
                continue
            name = _safe_member_name(member)
            if name in files:
                raise CorruptMemberError(member.name, "duplicate member name")
            source = tar.extractfile(member)
            if source is None:
                raise CorruptMemberError(member.name, "member has no data")
            target = destination / name
            with source, target.open("wb") as handle:
                shutil.copyfileobj(source, handle, COPY_BUFFER_SIZE)
            files[name] = target
    except _READ_ERRORS as error:
        label = member.name if member is not None else "<archive>"
        raise CorruptMemberError(label, str(error) or type(error).__name__) from error
    return files


def extract_package(archive_path: Union[str, Path]) -> PackageData:
    """Extract a firmware package into owned temporary files.

    Raises:
        NotAnArchiveError: The file cannot be opened as a tar archive.
        MissingManifestError: The archive has no firmware.xml.
        CorruptMemberError: A member cannot be read or the manifest is invalid.
    """
    path = Path(archive_path)
    with operation_context("extract", package=str(path)) as log:
        try:
            tar = tarfile.open(path, "r:*")
        except _READ_ERRORS as error:
            raise NotAnArchiveError(str(path), str(error)) from error

        backing = tempfile.TemporaryDirectory(prefix="pitflash-")
        try:
            with tar:
                files = _materialize_members(tar, Path(backing.name))
            manifest_path = files.pop(MANIFEST_NAME, None)
            if manifest_path is None:
                raise MissingManifestError(str(path))
            firmware = parse_manifest(manifest_path.read_bytes())
        except BaseException:
            backing.cleanup()
            raise

        log.debug(f"Extracted {len(files)} members to {backing.name}")
        return PackageData(firmware_info=firmware, files=files, backing=backing)


def _collect_sources(destination: str, firmware: FirmwareInfo) -> list[tuple[str, Path]]:
    """Ordered (member, source) pairs: PIT first, then bindings in list order."""
    if not firmware.pit_filename:
        raise PackageWriteError(destination, "no PIT file selected")

    sources: list[tuple[str, Path]] = [
        (member_name(firmware.pit_filename), Path(firmware.pit_filename))
    ]
    for file_info in firmware.file_infos:
        if not file_info.is_bound:
            raise PackageWriteError(
                destination, f"partition {file_info.partition_id} has no file selected"
            )
        sources.append((member_name(file_info.filename), Path(file_info.filename)))

    members: dict[str, Path] = {MANIFEST_NAME: Path()}
    unique: list[tuple[str, Path]] = []
    for name, source in sources:
        existing = members.get(name)
        if existing is None:
            members[name] = source
            unique.append((name, source))
        elif existing.resolve() != source.resolve():
            raise PackageWriteError(destination, f"duplicate member name {name}")
    return unique


def _normalized_info(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    info.mode = 0o644
    return info


def build_package(destination: Union[str, Path], firmware: FirmwareInfo) -> Path:
    """Write ``firmware`` and its files to a package archive.

    Members are written in a fixed order (manifest, PIT, bindings) with
    normalized ownership and a zero gzip timestamp so identical inputs yield
    identical archives.

    Raises:
        PackageWriteError: A source is unreadable, a binding is empty or the
            destination cannot be written.
    """
    target = Path(normalize_package_path(destination))
    with operation_context("build", package=str(target)) as log:
        sources = _collect_sources(str(target), firmware)
        manifest = write_manifest(firmware)

        try:
            staging = tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=f".{target.name}.", suffix=".part", delete=False
            )
        except OSError as error:
            raise PackageWriteError(str(target), str(error)) from error
        staging_path = Path(staging.name)

        try:
            with staging as raw, gzip.GzipFile(
                filename="", mode="wb", fileobj=raw, mtime=0
            ) as compressed, tarfile.open(
                fileobj=compressed, mode="w", format=tarfile.GNU_FORMAT
            ) as tar:
                manifest_info = tarfile.TarInfo(MANIFEST_NAME)
                manifest_info.size = len(manifest)
                tar.addfile(_normalized_info(manifest_info), io.BytesIO(manifest))

                for name, source in sources:
                    log.debug(f"Adding {source} as {name}")
                    with source.open("rb") as handle:
                        info = tar.gettarinfo(fileobj=handle, arcname=name)
                        tar.addfile(_normalized_info(info), handle)
            staging_path.chmod(0o644)
            os.replace(staging_path, target)
        except (OSError, tarfile.TarError) as error:
            # An existing package at the destination is left as it was.
            staging_path.unlink(missing_ok=True)
            raise PackageWriteError(str(target), str(error)) from error

        log.info(f"Built package with {len(sources) + 1} members")
        return target
