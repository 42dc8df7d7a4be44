"""Firmware package model: manifest, archive codec and quick-convert.

Main Functions:
    - extract_package(): Extract a package archive into owned temp files
    - build_package(): Write firmware and its files to a package archive
    - normalize_package_path(): Coerce destination names to .tar.gz
    - quick_convert(): Map loose vendor images onto PIT partitions

Data Models:
    - PackageData: FirmwareInfo plus owned backing files
    - PartitionMatcher: Filename to partition id heuristic
"""
from .codec import build_package, extract_package
from .data import PackageData
from .manifest import MANIFEST_NAME, parse_manifest, write_manifest
from .naming import normalize_package_path, normalize_pit_path
from .quick_convert import PartitionMatcher, QuickConvertResult, map_files, quick_convert

__all__ = [
    "build_package",
    "extract_package",
    "normalize_package_path",
    "normalize_pit_path",
    "parse_manifest",
    "write_manifest",
    "map_files",
    "quick_convert",
    "MANIFEST_NAME",
    "PackageData",
    "PartitionMatcher",
    "QuickConvertResult",
]
