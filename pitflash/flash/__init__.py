"""Heimdall command construction, session monitoring and process handles.

Main Functions:
    - FlashCommandBuilder.build(): Ordered ``heimdall flash`` arguments
    - detect_command(), close_pc_screen_command(), download_pit_command(),
      print_pit_command(): Utility invocations
    - HeimdallSession.run(): Start, stream and classify a Heimdall run

Data Models:
    - ToolCommand: Arguments plus the session kind they start
    - ToolSessionMonitor: Run state, progress and terminal classification
"""
from .commands import (
    FlashCommandBuilder,
    ToolCommand,
    close_pc_screen_command,
    detect_command,
    download_pit_command,
    print_pit_command,
    validate_bindings,
)
from .monitor import OutputScanner, ProcessFailure, ToolSessionMonitor
from .runner import HeimdallSession, ProcessSlot, candidate_directories

__all__ = [
    "FlashCommandBuilder",
    "ToolCommand",
    "close_pc_screen_command",
    "detect_command",
    "download_pit_command",
    "print_pit_command",
    "validate_bindings",
    "OutputScanner",
    "ProcessFailure",
    "ToolSessionMonitor",
    "HeimdallSession",
    "ProcessSlot",
    "candidate_directories",
]
