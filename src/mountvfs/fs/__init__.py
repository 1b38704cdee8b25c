"""Filesystem layer — adapters, mountpoints, dispatch, watches."""

from mountvfs.fs.adapters import DEFAULT_ADAPTER, AdapterRegistration, AdapterRegistry
from mountvfs.fs.database import DatabaseAdapter, VFSNode
from mountvfs.fs.exceptions import (
    BackendOperationError,
    CapabilityNotSupportedError,
    ConfigError,
    PathResolutionError,
    ReadOnlyMountError,
    StartupError,
    UnknownOperationError,
    VFSError,
)
from mountvfs.fs.mime import DEFAULT_MIME_TYPE, MimeLookup
from mountvfs.fs.mounts import MountpointRegistry
from mountvfs.fs.permissions import Permission
from mountvfs.fs.protocol import (
    Adapter,
    SupportsLifecycle,
    SupportsWatch,
    WatchHandle,
    get_capability,
    require_capability,
)
from mountvfs.fs.resolver import PathResolver
from mountvfs.fs.system import SystemAdapter
from mountvfs.fs.types import FileStat, Mountpoint, PlatformContext, ResolvedPath, VFSRequest
from mountvfs.fs.utils import join_virtual_path, normalize_path, parse_virtual_path
from mountvfs.fs.watch import WatchManager, WatchSubscription

__all__ = [
    "DEFAULT_ADAPTER",
    "DEFAULT_MIME_TYPE",
    "Adapter",
    "AdapterRegistration",
    "AdapterRegistry",
    "BackendOperationError",
    "CapabilityNotSupportedError",
    "ConfigError",
    "DatabaseAdapter",
    "FileStat",
    "MimeLookup",
    "Mountpoint",
    "MountpointRegistry",
    "PathResolutionError",
    "PathResolver",
    "Permission",
    "PlatformContext",
    "ReadOnlyMountError",
    "ResolvedPath",
    "StartupError",
    "SupportsLifecycle",
    "SupportsWatch",
    "SystemAdapter",
    "UnknownOperationError",
    "VFSError",
    "VFSRequest",
    "WatchHandle",
    "WatchManager",
    "WatchSubscription",
    "get_capability",
    "join_virtual_path",
    "normalize_path",
    "parse_virtual_path",
]
