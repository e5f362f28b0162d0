"""Enumerations for CLI exit codes."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Well-known exit codes returned by every command."""

    OK = 0
    FAILURE = 1
    VALIDATION = 2
