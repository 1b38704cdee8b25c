"""Filesystem — the façade wiring adapters, mountpoints, dispatch and watches."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from mountvfs.config import FilesystemConfig
from mountvfs.events import EventBus
from mountvfs.fs.adapters import AdapterRegistry
from mountvfs.fs.exceptions import StartupError, UnknownOperationError
from mountvfs.fs.mime import MimeLookup
from mountvfs.fs.mounts import MountpointRegistry
from mountvfs.fs.protocol import SupportsLifecycle, get_capability
from mountvfs.fs.resolver import PathResolver
from mountvfs.fs.types import Mountpoint, PlatformContext, VFSRequest
from mountvfs.fs.watch import WatchManager

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from mountvfs.fs.adapters import AdapterRegistration
    from mountvfs.fs.resolver import Method
    from mountvfs.fs.types import ResolvedPath

logger = logging.getLogger(__name__)


class Filesystem:
    """Unified virtual filesystem over pluggable mountpoints.

    Create an instance with a configuration snapshot, then ``init()``::

        fs = Filesystem(FilesystemConfig.parse(data), event_bus=bus)
        await fs.init()
        await fs.request("readdir", VFSRequest(session=..., fields={"path": "home:/"}))
        await fs.destroy()

    Or use it as an async context manager.
    """

    def __init__(
        self,
        config: FilesystemConfig | None = None,
        *,
        event_bus: EventBus | None = None,
        adapters: Iterable[AdapterRegistration] = (),
    ) -> None:
        self.config = config or FilesystemConfig()
        self.event_bus = event_bus or EventBus()
        self._registrations = list(adapters)
        self._mime = MimeLookup(self.config.mime_define, self.config.mime_filenames)
        self._mounts = MountpointRegistry()

        # Built by init()
        self._adapters: AdapterRegistry | None = None
        self._resolver: PathResolver | None = None
        self._methods: dict[str, Method] = {}
        self._watches: WatchManager | None = None
        self._initialized = False

    async def __aenter__(self) -> Filesystem:
        await self.init()
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.destroy()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> bool:
        """Build adapters and the method table, then mount configured mountpoints."""
        if self._initialized:
            raise StartupError("Filesystem is already initialized")

        context = PlatformContext(config=self.config, event_bus=self.event_bus, mime=self.mime)
        self._adapters = AdapterRegistry.build(context, self._registrations)
        for adapter in self._adapters:
            lifecycle = get_capability(adapter, SupportsLifecycle)
            if lifecycle is not None:
                await lifecycle.init()

        self._resolver = PathResolver(self._mounts, self._adapters)
        self._methods = self._resolver.methods()
        self._watches = WatchManager(self._adapters, self.event_bus, enabled=self.config.watch)
        self._initialized = True

        for descriptor in self.config.mountpoints:
            await self.mount(descriptor)

        return True

    async def destroy(self) -> None:
        """Close every watch, drop mountpoints and tear down adapters.

        Safe to call repeatedly; later calls do nothing.
        """
        if self._watches is not None:
            await self._watches.destroy()
        if not self._initialized:
            return
        self._initialized = False
        self._mounts.clear()

        assert self._adapters is not None
        for adapter in self._adapters:
            lifecycle = get_capability(adapter, SupportsLifecycle)
            if lifecycle is not None:
                await lifecycle.destroy()

    def _require_init(self) -> tuple[AdapterRegistry, PathResolver, WatchManager]:
        if not self._initialized:
            raise StartupError("Filesystem is not initialized")
        assert self._adapters is not None
        assert self._resolver is not None
        assert self._watches is not None
        return self._adapters, self._resolver, self._watches

    # ------------------------------------------------------------------
    # MIME
    # ------------------------------------------------------------------

    def mime(self, filename: str) -> str:
        """MIME type for *filename*, ``application/octet-stream`` if unknown."""
        return self._mime.lookup(filename)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def request(self, name: str, req: VFSRequest, res: Any = None) -> Any:
        """Run the VFS operation *name* with the full request context."""
        self._require_init()
        method = self._methods.get(name)
        if method is None:
            raise UnknownOperationError(f"Unknown VFS operation: {name!r}")
        logger.debug("Dispatching %s", name)
        return await method(req, res)

    async def realpath(self, filename: str, user: Any) -> str:
        """Concrete backend path of *filename* as seen by *user*."""
        req = VFSRequest(session={"user": user}, fields={"path": filename})
        return await self.request("realpath", req)

    def resolve(self, path: str, session: Mapping[str, Any] | None = None) -> ResolvedPath:
        _adapters, resolver, _watches = self._require_init()
        return resolver.resolve(path, session)

    # ------------------------------------------------------------------
    # Mount / Unmount
    # ------------------------------------------------------------------

    async def mount(self, descriptor: Mapping[str, Any] | Mountpoint) -> Mountpoint:
        """Mount *descriptor* and attach a watch if it qualifies.

        If attaching the watch fails the mountpoint is removed again and
        the error propagates.

        Mounting a second mountpoint under an existing name is allowed;
        resolution keeps using the first one.
        """
        adapters, _resolver, watches = self._require_init()
        mountpoint = (
            descriptor
            if isinstance(descriptor, Mountpoint)
            else Mountpoint.from_descriptor(descriptor)
        )
        adapters.for_mountpoint(mountpoint)

        self._mounts.add(mountpoint)
        try:
            watches.watch(mountpoint)
        except Exception:
            self._mounts.remove(mountpoint)
            raise
        logger.info("Mounted %s", mountpoint.name)
        return mountpoint

    async def unmount(self, mountpoint: Mountpoint) -> bool:
        """Close the watch on *mountpoint* and remove it. False if it wasn't mounted."""
        _adapters, _resolver, watches = self._require_init()
        if mountpoint not in self._mounts:
            return False
        await watches.unwatch(mountpoint)
        self._mounts.remove(mountpoint)
        logger.info("Unmounted %s", mountpoint.name)
        return True

    def list_mountpoints(self) -> list[Mountpoint]:
        """Active mountpoints in mount order."""
        return self._mounts.list_mounts()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def adapters(self) -> AdapterRegistry:
        return self._require_init()[0]

    @property
    def watches(self) -> WatchManager:
        return self._require_init()[2]
