"""PIT (Partition Information Table) model.

Main Functions:
    - read_pit_file(): Read and parse a PIT file from disk

Data Models:
    - PitEntry: One partition descriptor
    - PitTable: Ordered, searchable collection of entries
"""
from .table import (
    DESCRIPTOR_NAMES,
    ENTRY_SIZE,
    HEADER_SIZE,
    PIT_MAGIC,
    PitEntry,
    PitTable,
    read_pit_file,
)

__all__ = [
    "read_pit_file",
    "PitEntry",
    "PitTable",
    "DESCRIPTOR_NAMES",
    "ENTRY_SIZE",
    "HEADER_SIZE",
    "PIT_MAGIC",
]
