"""Tests for the pitflash exception hierarchy."""

import pytest

from pitflash.exceptions import (
    CorruptMemberError,
    MissingManifestError,
    NotAnArchiveError,
    PackageError,
    PackageWriteError,
    PitflashError,
    PitFormatError,
    ProcessError,
    ToolBusyError,
    UnboundPartitionError,
    UnknownPartitionError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error, parent",
    [
        (PitFormatError("bad magic"), PitflashError),
        (NotAnArchiveError("x.tar.gz"), PackageError),
        (MissingManifestError("x.tar.gz"), PackageError),
        (CorruptMemberError("firmware.xml", "bad"), PackageError),
        (PackageWriteError("x.tar.gz", "disk full"), PackageError),
        (UnknownPartitionError([3]), ValidationError),
        (UnboundPartitionError(3), ValidationError),
        (ToolBusyError("heimdall"), ProcessError),
    ],
)
def test_hierarchy(error, parent):
    assert isinstance(error, parent)
    assert isinstance(error, PitflashError)


def test_unknown_partition_ids_sorted_and_unique():
    error = UnknownPartitionError([9, 3, 9])
    assert error.partition_ids == [3, 9]
    assert str(error) == "Firmware includes invalid partition IDs: 3, 9"


def test_messages_include_context():
    assert str(PitFormatError("bad magic")) == "Invalid PIT data: bad magic"
    assert str(NotAnArchiveError("x.tar.gz", "not gzip")) == (
        "Not a firmware package archive: x.tar.gz (not gzip)"
    )
    assert str(ToolBusyError("adb")) == "adb is already running"
