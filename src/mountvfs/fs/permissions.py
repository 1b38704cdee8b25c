"""Permission enum for mountpoints."""

from __future__ import annotations

from enum import Enum


class Permission(str, Enum):
    """Permission level for a mountpoint."""

    READ_WRITE = "read_write"
    READ_ONLY = "read_only"
