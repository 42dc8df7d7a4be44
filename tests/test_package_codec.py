"""
Tests for pitflash.package codec and PackageData ownership.

This test suite covers:
- Building packages (member order, path normalization, reproducibility)
- Extracting packages into owned temp files
- Archive, manifest and member errors
- Moving backing files between loaded and working packages
"""

import tarfile
import tempfile
from pathlib import Path

import pytest

from pitflash.domain import FileInfo, FirmwareInfo
from pitflash.exceptions import (
    CorruptMemberError,
    MissingManifestError,
    NotAnArchiveError,
    PackageError,
    PackageWriteError,
)
from pitflash.package import PackageData, build_package, extract_package


# ==============================================================================
# build_package
# ==============================================================================


class TestBuildPackage:
    """Tests for build_package()."""

    def test_member_order(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom.tar.gz", sample_firmware)
        with tarfile.open(path, "r:gz") as tar:
            assert tar.getnames() == ["firmware.xml", "device.pit", "boot.img", "recovery.img"]

    def test_destination_is_normalized(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom", sample_firmware)
        assert path == tmp_path / "rom.tar.gz"
        assert path.exists()

    def test_output_is_reproducible(self, tmp_path, sample_firmware):
        first = build_package(tmp_path / "a.tar.gz", sample_firmware)
        second = build_package(tmp_path / "b.tar.gz", sample_firmware)
        assert first.read_bytes() == second.read_bytes()

    def test_members_have_normalized_ownership(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom.tar.gz", sample_firmware)
        with tarfile.open(path, "r:gz") as tar:
            for member in tar.getmembers():
                assert (member.uid, member.gid, member.mode) == (0, 0, 0o644)

    def test_same_file_bound_twice_is_stored_once(self, tmp_path, sample_firmware):
        boot = sample_firmware.file_infos[0].filename
        firmware = sample_firmware.add_file_info(FileInfo(10, boot))
        path = build_package(tmp_path / "rom.tar.gz", firmware)
        with tarfile.open(path, "r:gz") as tar:
            assert tar.getnames().count("boot.img") == 1

    def test_requires_pit(self, tmp_path, sample_firmware):
        with pytest.raises(PackageWriteError, match="no PIT"):
            build_package(tmp_path / "rom", sample_firmware.with_changes(pit_filename=""))

    def test_unbound_partition(self, tmp_path, sample_firmware):
        firmware = sample_firmware.add_file_info(FileInfo(7))
        with pytest.raises(PackageWriteError, match="partition 7"):
            build_package(tmp_path / "rom", firmware)
        assert not (tmp_path / "rom.tar.gz").exists()

    def test_duplicate_basenames_rejected(self, tmp_path, sample_firmware):
        other = tmp_path / "other"
        other.mkdir()
        (other / "boot.img").write_bytes(b"different")
        firmware = sample_firmware.add_file_info(FileInfo(10, str(other / "boot.img")))
        with pytest.raises(PackageWriteError, match="duplicate member name boot.img"):
            build_package(tmp_path / "rom", firmware)

    def test_missing_source_removes_partial_output(self, tmp_path, sample_firmware):
        firmware = sample_firmware.add_file_info(FileInfo(7, str(tmp_path / "gone.bin")))
        with pytest.raises(PackageWriteError):
            build_package(tmp_path / "rom", firmware)
        assert not (tmp_path / "rom.tar.gz").exists()
        assert not list(tmp_path.glob(".rom.tar.gz.*"))

    def test_failed_rebuild_keeps_existing_package(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom.tar.gz", sample_firmware)
        original = path.read_bytes()

        firmware = sample_firmware.add_file_info(FileInfo(7, str(tmp_path / "gone.bin")))
        with pytest.raises(PackageWriteError):
            build_package(tmp_path / "rom", firmware)

        assert path.read_bytes() == original
        assert not list(tmp_path.glob(".rom.tar.gz.*"))

    def test_rebuild_replaces_existing_package(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom.tar.gz", sample_firmware)
        build_package(path, sample_firmware.with_changes(file_infos=()))
        with tarfile.open(path, "r:gz") as tar:
            assert tar.getnames() == ["firmware.xml", "device.pit"]

    def test_missing_destination_directory(self, tmp_path, sample_firmware):
        with pytest.raises(PackageWriteError):
            build_package(tmp_path / "absent" / "rom", sample_firmware)


# ==============================================================================
# extract_package
# ==============================================================================


class TestExtractPackage:
    """Tests for extract_package()."""

    def test_extract_built_package(self, tmp_path, sample_firmware):
        path = build_package(tmp_path / "rom", sample_firmware)
        package = extract_package(path)
        try:
            firmware = package.firmware_info
            assert firmware.name == "Test ROM"
            assert firmware.pit_filename == "device.pit"
            assert firmware.file_infos == (FileInfo(5, "boot.img"), FileInfo(6, "recovery.img"))
            assert sorted(package.files) == ["boot.img", "device.pit", "recovery.img"]
            assert package.path_for("boot.img").read_bytes() == b"image:boot.img"
        finally:
            package.clear()

    def test_clear_removes_backing_files(self, tmp_path, sample_firmware):
        package = extract_package(build_package(tmp_path / "rom", sample_firmware))
        backing_dir = package.backing_dir
        assert backing_dir.is_dir()

        package.clear()

        assert not backing_dir.exists()
        assert package.is_empty

    def test_context_manager_clears(self, tmp_path, sample_firmware):
        with extract_package(build_package(tmp_path / "rom", sample_firmware)) as package:
            backing_dir = package.backing_dir
        assert not backing_dir.exists()

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotAnArchiveError):
            extract_package(tmp_path / "missing.tar.gz")

    def test_not_an_archive(self, tmp_path):
        path = tmp_path / "junk.tar.gz"
        path.write_bytes(b"this is not a tarball" * 50)
        with pytest.raises(NotAnArchiveError):
            extract_package(path)

    def test_missing_manifest(self, make_archive):
        path = make_archive("nomanifest.tar.gz", [("boot.img", b"boot")])
        with pytest.raises(MissingManifestError):
            extract_package(path)

    def test_corrupt_manifest(self, make_archive):
        path = make_archive("bad.tar.gz", [("firmware.xml", b"<firmware><pit>")])
        with pytest.raises(CorruptMemberError):
            extract_package(path)

    def test_nested_member_names_are_flattened(self, make_archive):
        manifest = b"<firmware><pit>device.pit</pit></firmware>"
        path = make_archive(
            "nested.tar.gz", [("firmware.xml", manifest), ("sub/device.pit", b"pit")]
        )
        with extract_package(path) as package:
            assert "device.pit" in package.files
            assert package.path_for("device.pit").parent == package.backing_dir

    def test_truncated_archive(self, tmp_path, sample_firmware):
        data = build_package(tmp_path / "rom", sample_firmware).read_bytes()
        truncated = tmp_path / "truncated.tar.gz"
        truncated.write_bytes(data[:20])
        with pytest.raises(PackageError):
            extract_package(truncated)


# ==============================================================================
# PackageData ownership
# ==============================================================================


class TestTakeOwnership:
    """Tests for PackageData.take_ownership()."""

    def test_moves_files_and_rebinds_paths(self, tmp_path):
        backing = tempfile.TemporaryDirectory()
        root = Path(backing.name)
        (root / "boot.img").write_bytes(b"boot")
        (root / "device.pit").write_bytes(b"pit")
        loaded = PackageData(
            firmware_info=FirmwareInfo(
                name="ROM",
                pit_filename="device.pit",
                file_infos=(FileInfo(5, "boot.img"),),
            ),
            files={"boot.img": root / "boot.img", "device.pit": root / "device.pit"},
            backing=backing,
        )

        working, missing = PackageData.take_ownership(loaded)
        try:
            assert missing == []
            assert loaded.is_empty
            assert loaded.backing is None
            assert working.backing is backing
            assert working.firmware_info.name == "ROM"
            assert working.firmware_info.pit_filename == str((root / "device.pit").resolve())
            assert working.firmware_info.file_infos == (
                FileInfo(5, str((root / "boot.img").resolve())),
            )
        finally:
            working.clear()
        assert not root.exists()

    def test_reports_missing_members(self, tmp_path, log_records):
        (tmp_path / "boot.img").write_bytes(b"boot")
        loaded = PackageData(
            firmware_info=FirmwareInfo(
                pit_filename="device.pit",
                file_infos=(FileInfo(5, "boot.img"), FileInfo(6, "gone.img")),
            ),
            files={"boot.img": tmp_path / "boot.img"},
        )

        working, missing = PackageData.take_ownership(loaded)

        assert missing == ["gone.img", "device.pit"]
        assert working.firmware_info.pit_filename == ""
        assert [f.partition_id for f in working.firmware_info.file_infos] == [5]
        assert any("gone.img" in r["message"] for r in log_records if r["level"].name == "WARNING")
