"""mountvfs: a namespaced virtual filesystem over pluggable storage backends."""

__version__ = "0.1.0"

from mountvfs.config import FilesystemConfig
from mountvfs.events import ClientSession, EventBus, FilesystemChangeEvent
from mountvfs.filesystem import Filesystem
from mountvfs.fs.adapters import AdapterRegistration
from mountvfs.fs.exceptions import (
    BackendOperationError,
    ConfigError,
    PathResolutionError,
    ReadOnlyMountError,
    StartupError,
    UnknownOperationError,
    VFSError,
)
from mountvfs.fs.types import FileStat, Mountpoint, VFSRequest

__all__ = [
    "AdapterRegistration",
    "BackendOperationError",
    "ClientSession",
    "ConfigError",
    "EventBus",
    "FileStat",
    "Filesystem",
    "FilesystemChangeEvent",
    "FilesystemConfig",
    "Mountpoint",
    "PathResolutionError",
    "ReadOnlyMountError",
    "StartupError",
    "UnknownOperationError",
    "VFSError",
    "VFSRequest",
    "__version__",
]
