"""firmware.xml manifest reading and writing.

The manifest follows the Heimdall firmware package format::

    <firmware version="1">
        <name/> <version/>
        <platform><name/><version/></platform>
        <developers><name/>...</developers>
        <url/> <donateurl/>
        <devices><device><manufacturer/><product/><name/></device>...</devices>
        <pit/> <repartition>0|1</repartition> <noreboot>0|1</noreboot>
        <files><file><id/><filename/></file>...</files>
    </firmware>

Filenames are stored as archive member basenames.
"""
from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import PurePath
from typing import Optional

from pitflash.domain import DeviceInfo, FileInfo, FirmwareInfo, PlatformInfo
from pitflash.exceptions import CorruptMemberError

MANIFEST_NAME = "firmware.xml"
MANIFEST_VERSION = 1


def member_name(path: str) -> str:
    """Archive member name for a source path (its basename)."""
    return PurePath(path.replace("\\", "/")).name


def _text(parent: ET.Element, tag: str, *, required: bool = False) -> str:
    element = parent.find(tag)
    if element is None:
        if required:
            raise CorruptMemberError(MANIFEST_NAME, f"missing <{tag}> element")
        return ""
    return (element.text or "").strip()


def _flag(parent: ET.Element, tag: str) -> bool:
    value = _text(parent, tag)
    if value in ("", "0"):
        return False
    if value == "1":
        return True
    raise CorruptMemberError(MANIFEST_NAME, f"<{tag}> must be 0 or 1, got {value!r}")


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if text is not None:
        element.text = text
    return element


def write_manifest(firmware: FirmwareInfo) -> bytes:
    root = ET.Element("firmware", version=str(MANIFEST_VERSION))
    _sub(root, "name", firmware.name)
    _sub(root, "version", firmware.version)

    platform = _sub(root, "platform")
    _sub(platform, "name", firmware.platform.name)
    _sub(platform, "version", firmware.platform.version)

    developers = _sub(root, "developers")
    for developer in firmware.developers:
        _sub(developers, "name", developer)

    _sub(root, "url", firmware.url)
    _sub(root, "donateurl", firmware.donate_url)

    devices = _sub(root, "devices")
    for device in firmware.devices:
        device_element = _sub(devices, "device")
        _sub(device_element, "manufacturer", device.manufacturer)
        _sub(device_element, "product", device.product)
        _sub(device_element, "name", device.name)

    _sub(root, "pit", member_name(firmware.pit_filename))
    _sub(root, "repartition", "1" if firmware.repartition else "0")
    _sub(root, "noreboot", "1" if firmware.no_reboot else "0")

    files = _sub(root, "files")
    for file_info in firmware.file_infos:
        file_element = _sub(files, "file")
        _sub(file_element, "id", str(file_info.partition_id))
        _sub(file_element, "filename", member_name(file_info.filename))

    ET.indent(root, space="\t")
    return ET.tostring(root, encoding="utf-8", xml_declaration=True) + b"\n"


def parse_manifest(data: bytes) -> FirmwareInfo:
    """Parse manifest bytes into a FirmwareInfo.

    Raises:
        CorruptMemberError: On malformed XML or invalid field values.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as error:
        raise CorruptMemberError(MANIFEST_NAME, f"malformed XML: {error}") from error

    if root.tag != "firmware":
        raise CorruptMemberError(MANIFEST_NAME, f"unexpected root element <{root.tag}>")
    version = root.get("version", str(MANIFEST_VERSION))
    if not version.isdigit() or int(version) > MANIFEST_VERSION:
        raise CorruptMemberError(MANIFEST_NAME, f"unsupported manifest version {version}")

    platform_element = root.find("platform")
    platform = PlatformInfo()
    if platform_element is not None:
        platform = PlatformInfo(
            name=_text(platform_element, "name"),
            version=_text(platform_element, "version"),
        )

    developers: list[str] = []
    developers_element = root.find("developers")
    if developers_element is not None:
        developers = [(name.text or "").strip() for name in developers_element.findall("name")]

    devices: list[DeviceInfo] = []
    devices_element = root.find("devices")
    if devices_element is not None:
        for device in devices_element.findall("device"):
            devices.append(
                DeviceInfo(
                    manufacturer=_text(device, "manufacturer"),
                    product=_text(device, "product"),
                    name=_text(device, "name"),
                )
            )

    file_infos: list[FileInfo] = []
    files_element = root.find("files")
    if files_element is not None:
        for file_element in files_element.findall("file"):
            raw_id = _text(file_element, "id", required=True)
            try:
                partition_id = int(raw_id)
            except ValueError as error:
                raise CorruptMemberError(
                    MANIFEST_NAME, f"invalid partition id {raw_id!r}"
                ) from error
            if partition_id < 0:
                raise CorruptMemberError(MANIFEST_NAME, f"invalid partition id {raw_id!r}")
            file_infos.append(
                FileInfo(partition_id, _text(file_element, "filename", required=True))
            )

    return FirmwareInfo(
        name=_text(root, "name"),
        version=_text(root, "version"),
        platform=platform,
        developers=tuple(developers),
        url=_text(root, "url"),
        donate_url=_text(root, "donateurl"),
        devices=tuple(devices),
        pit_filename=_text(root, "pit", required=True),
        repartition=_flag(root, "repartition"),
        no_reboot=_flag(root, "noreboot"),
        file_infos=tuple(file_infos),
    )
