"""
Tests for pitflash.workspace module.

This test suite covers:
- Loading packages and moving them into the working package
- Validation of package PIT and bindings on load
- Binding edits (add/remove/rebind, extension warnings)
- Switching PITs with remapping and fallback
"""

import pytest

from pitflash.domain import FileInfo, FirmwareInfo
from pitflash.exceptions import NotAnArchiveError, PitFormatError, UnknownPartitionError
from pitflash.package import build_package
from pitflash.pit import PitEntry, PitTable
from pitflash.workspace import FlashWorkspace, extension_warning


@pytest.fixture
def package_path(tmp_path, sample_firmware):
    return build_package(tmp_path / "rom", sample_firmware)


@pytest.fixture
def workspace():
    ws = FlashWorkspace()
    yield ws
    ws.clear()


@pytest.fixture
def edit_workspace(workspace, pit_file):
    """Workspace with the sample PIT and BOOT bound, without a package."""
    workspace.pit = PitTable.from_bytes(pit_file.read_bytes())
    workspace.working.firmware_info = FirmwareInfo(
        pit_filename=str(pit_file),
        file_infos=(FileInfo(5, "/w/boot.img"), FileInfo(6, "/w/recovery.img")),
    )
    return workspace


def test_extension_warning():
    boot = PitEntry(5, "BOOT", "boot.img")
    assert extension_warning(boot, "/w/boot.img") is None
    assert extension_warning(boot, "/w/boot.bin") == (
        'BOOT partition expects files with file extension "img".'
    )
    assert extension_warning(PitEntry(10, "HIDDEN", "hidden"), "/w/anything.bin") is None


class TestLoading:
    """Tests for load_package() and load_for_flash()."""

    def test_load_package_keeps_loaded_view(self, workspace, package_path):
        firmware = workspace.load_package(package_path)
        assert firmware.name == "Test ROM"
        assert workspace.loaded.firmware_info is firmware
        assert workspace.working.is_empty

    def test_load_for_flash_moves_package(self, workspace, package_path, sample_pit):
        workspace.load_package(package_path)
        backing_dir = workspace.loaded.backing_dir

        workspace.load_for_flash()

        assert workspace.loaded.is_empty
        assert workspace.working.backing_dir == backing_dir
        assert workspace.pit == sample_pit
        for file_info in workspace.firmware.file_infos:
            assert file_info.filename.startswith(str(backing_dir.resolve()))

    def test_flash_command_after_load(self, workspace, package_path):
        workspace.load_package(package_path)
        workspace.load_for_flash()
        command = workspace.flash_command(resume=True)
        assert command.arguments[0] == "flash"
        assert "--BOOT" in command.arguments
        assert "--resume" in command.arguments

    def test_unknown_partition_clears_everything(self, tmp_path, workspace, sample_firmware):
        broken = sample_firmware.with_changes(
            file_infos=[
                sample_firmware.file_infos[0],
                FileInfo(99, sample_firmware.file_infos[1].filename),
            ]
        )
        workspace.load_package(build_package(tmp_path / "broken", broken))

        with pytest.raises(UnknownPartitionError) as exc_info:
            workspace.load_for_flash()

        assert exc_info.value.partition_ids == [99]
        assert workspace.working.is_empty
        assert workspace.pit.is_empty

    def test_invalid_package_pit(self, tmp_path, workspace, sample_firmware):
        junk = tmp_path / "junk.pit"
        junk.write_bytes(b"not a pit")
        path = build_package(
            tmp_path / "junk", sample_firmware.with_changes(pit_filename=str(junk))
        )
        workspace.load_package(path)

        with pytest.raises(PitFormatError):
            workspace.load_for_flash()

        assert workspace.working.is_empty

    def test_failed_load_keeps_previous_package(self, tmp_path, workspace, package_path):
        workspace.load_package(package_path)
        bad = tmp_path / "bad.tar.gz"
        bad.write_bytes(b"nope" * 200)

        with pytest.raises(NotAnArchiveError):
            workspace.load_package(bad)

        assert workspace.loaded.firmware_info.name == "Test ROM"


class TestBindingEdits:
    """Tests for partition binding edits."""

    def test_unused_partition_ids(self, edit_workspace):
        assert edit_workspace.unused_partition_ids() == [1, 7, 8, 10, 11]

    def test_add_partition_reserves_first_unused(self, edit_workspace):
        index = edit_workspace.add_partition()
        assert index == 2
        assert edit_workspace.firmware.file_infos[2] == FileInfo(1)

    def test_add_partition_when_none_left(self, edit_workspace):
        for _ in range(5):
            edit_workspace.add_partition()
        with pytest.raises(IndexError):
            edit_workspace.add_partition()

    def test_remove_partition(self, edit_workspace):
        edit_workspace.remove_partition(0)
        assert edit_workspace.firmware.bound_partition_ids() == [6]

    def test_set_partition_id(self, edit_workspace):
        edit_workspace.set_partition_id(1, 7)
        assert edit_workspace.firmware.file_infos[1] == FileInfo(7, "/w/recovery.img")
        assert edit_workspace.warnings == [
            'MODEM partition expects files with file extension "bin".'
        ]

    def test_set_partition_id_rejects_bound_id(self, edit_workspace):
        with pytest.raises(ValueError):
            edit_workspace.set_partition_id(1, 5)

    def test_set_partition_file_warns_on_extension(self, edit_workspace):
        edit_workspace.set_partition_file(0, "/w/boot.tar")
        assert edit_workspace.firmware.file_infos[0].filename == "/w/boot.tar"
        assert edit_workspace.warnings == [
            'BOOT partition expects files with file extension "img".'
        ]

    def test_unused_and_bound_partition_the_flashable_ids(self, edit_workspace):
        workspace = edit_workspace
        flashable = set(workspace.pit.flashable_identifiers())

        def check():
            unused = set(workspace.unused_partition_ids())
            bound = set(workspace.firmware.bound_partition_ids())
            assert not unused & bound
            assert unused | (bound & flashable) == flashable

        check()
        workspace.add_partition()
        check()
        workspace.set_partition_id(2, 10)
        check()
        workspace.remove_partition(0)
        check()
        workspace.add_partition()
        workspace.set_partition_file(2, "/w/boot.img")
        check()
        workspace.remove_partition(1)
        check()

    def test_update_firmware(self, edit_workspace):
        firmware = edit_workspace.update_firmware(name="Edited", no_reboot=True)
        assert firmware.name == "Edited"
        assert edit_workspace.firmware.no_reboot


class TestSelectPit:
    """Tests for select_pit()."""

    def test_remaps_by_name_and_drops_missing(self, tmp_path, edit_workspace):
        new_pit = PitTable(
            (
                PitEntry(identifier=0, partition_name="PIT"),
                PitEntry(identifier=50, partition_name="BOOT", flash_filename="boot.img"),
            )
        )
        path = tmp_path / "new.pit"
        path.write_bytes(new_pit.pack())

        assert edit_workspace.select_pit(path)

        assert edit_workspace.firmware.file_infos == (FileInfo(50, "/w/boot.img"),)
        assert edit_workspace.firmware.pit_filename == str(path)
        assert edit_workspace.pit == new_pit

    def test_invalid_pit_reloads_previous(self, tmp_path, edit_workspace, sample_pit):
        bad = tmp_path / "bad.pit"
        bad.write_bytes(b"bad")

        assert not edit_workspace.select_pit(bad)

        assert edit_workspace.pit == sample_pit
        assert edit_workspace.firmware.bound_partition_ids() == [5, 6]
        assert "The file selected was not a valid PIT file." in edit_workspace.warnings

    def test_invalid_pit_without_previous_clears(self, tmp_path, edit_workspace):
        edit_workspace.update_firmware(pit_filename=str(tmp_path / "vanished.pit"))
        bad = tmp_path / "bad.pit"
        bad.write_bytes(b"bad")

        assert not edit_workspace.select_pit(bad)

        assert edit_workspace.working.is_empty
        assert "Failed to reload working PIT data." in edit_workspace.warnings

    def test_build_package_from_workspace(self, tmp_path, workspace, package_path):
        workspace.load_package(package_path)
        workspace.load_for_flash()
        workspace.update_firmware(version="1.1")

        path = workspace.build_package(tmp_path / "rebuilt")

        assert path.name == "rebuilt.tar.gz"
        assert path.exists()
