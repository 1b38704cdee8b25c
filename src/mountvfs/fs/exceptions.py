"""Custom exception hierarchy for the mountvfs filesystem layer."""

from __future__ import annotations


class VFSError(Exception):
    """Base exception for all mountvfs errors."""


class StartupError(VFSError):
    """Raised when the filesystem cannot be initialized."""


class ConfigError(StartupError, ValueError):
    """Raised when the configuration snapshot is malformed."""


class PathResolutionError(VFSError):
    """Raised when a virtual path cannot be mapped to a mountpoint or backend path."""


class BackendOperationError(VFSError):
    """Raised by adapters when the underlying backend fails.

    The dispatcher passes these through untouched; ``code`` is the
    backend's own error code (an errno name for disk backends).
    """

    def __init__(self, message: str, *, code: str | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.path = path


class ReadOnlyMountError(VFSError, PermissionError):
    """Raised when a write targets a read-only mountpoint."""


class UnknownOperationError(VFSError, LookupError):
    """Raised when dispatch is asked for an operation that does not exist."""


class CapabilityNotSupportedError(VFSError):
    """Raised when an adapter doesn't support a requested capability."""
