"""PathResolver — virtual path resolution and the VFS method table."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .exceptions import BackendOperationError, PathResolutionError, ReadOnlyMountError
from .permissions import Permission
from .types import ResolvedPath
from .utils import join_virtual_path, parse_virtual_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping

    from .adapters import AdapterRegistry
    from .mounts import MountpointRegistry
    from .types import FileStat, VFSRequest

    Method = Callable[[VFSRequest, Any], Awaitable[Any]]

logger = logging.getLogger(__name__)


async def _iter_bytes(data: bytes) -> AsyncIterator[bytes]:
    yield data


class PathResolver:
    """Resolves ``name:/path`` to an adapter call.

    The method table returned by :meth:`methods` is the only way
    requests reach adapters, so internal callers and network requests
    share one resolution path.  Adapter exceptions pass through as-is.
    """

    def __init__(self, mounts: MountpointRegistry, adapters: AdapterRegistry) -> None:
        self._mounts = mounts
        self._adapters = adapters

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, path: str, session: Mapping[str, Any] | None = None) -> ResolvedPath:
        """Bind *path* to its mountpoint, adapter and concrete backend path.

        Raises:
            PathResolutionError: no mountpoint matches the namespace prefix.
        """
        name, relative = parse_virtual_path(path)
        mountpoint = self._mounts.resolve(name)
        adapter = self._adapters.for_mountpoint(mountpoint)
        virtual_path = join_virtual_path(name, relative)
        session = session or {}
        real_path = adapter.resolve(mountpoint, virtual_path, session)
        return ResolvedPath(
            mountpoint=mountpoint,
            adapter=adapter,
            virtual_path=virtual_path,
            real_path=real_path,
            session=session,
        )

    def _target(self, req: VFSRequest, key: str = "path") -> ResolvedPath:
        path = req.fields.get(key)
        if not isinstance(path, str) or not path:
            raise PathResolutionError(f"Missing virtual path in request field {key!r}")
        return self.resolve(path, req.session)

    @staticmethod
    def _check_writable(target: ResolvedPath) -> None:
        if target.mountpoint.permission == Permission.READ_ONLY:
            raise ReadOnlyMountError(
                f"Cannot write to read-only mountpoint: {target.virtual_path}"
            )

    # ------------------------------------------------------------------
    # Method table
    # ------------------------------------------------------------------

    def methods(self) -> dict[str, Method]:
        """Build the name -> coroutine table used for dispatch."""
        return {
            "exists": self.exists,
            "stat": self.stat,
            "readdir": self.readdir,
            "readfile": self.readfile,
            "mkdir": self.mkdir,
            "writefile": self.writefile,
            "rename": self.rename,
            "copy": self.copy,
            "unlink": self.unlink,
            "realpath": self.realpath,
        }

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def exists(self, req: VFSRequest, res: Any = None) -> bool:
        target = self._target(req)
        return await target.adapter.exists(target)

    async def stat(self, req: VFSRequest, res: Any = None) -> FileStat:
        target = self._target(req)
        return await target.adapter.stat(target)

    async def readdir(self, req: VFSRequest, res: Any = None) -> list[FileStat]:
        target = self._target(req)
        return await target.adapter.readdir(target)

    async def readfile(self, req: VFSRequest, res: Any = None) -> AsyncIterator[bytes] | bool:
        target = self._target(req)
        return await target.adapter.readfile(target)

    async def realpath(self, req: VFSRequest, res: Any = None) -> str:
        """Concrete backend path for ``fields.path``; no adapter I/O."""
        return self._target(req).real_path

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def mkdir(self, req: VFSRequest, res: Any = None) -> bool:
        target = self._target(req)
        self._check_writable(target)
        return await target.adapter.mkdir(target)

    async def writefile(self, req: VFSRequest, res: Any = None) -> bool:
        target = self._target(req)
        self._check_writable(target)
        upload = req.files.get("upload", b"")
        stream: AsyncIterable[bytes] = (
            _iter_bytes(bytes(upload)) if isinstance(upload, (bytes, bytearray)) else upload
        )
        return await target.adapter.writefile(target, stream)

    async def unlink(self, req: VFSRequest, res: Any = None) -> bool:
        target = self._target(req)
        self._check_writable(target)
        return await target.adapter.unlink(target)

    async def copy(self, req: VFSRequest, res: Any = None) -> bool:
        src = self._target(req, "from")
        dest = self._target(req, "to")
        self._check_writable(dest)

        if src.adapter is dest.adapter:
            return await src.adapter.copy(src, dest)
        return await self._transfer(src, dest)

    async def rename(self, req: VFSRequest, res: Any = None) -> bool:
        src = self._target(req, "from")
        dest = self._target(req, "to")
        self._check_writable(src)
        self._check_writable(dest)

        if src.adapter is dest.adapter:
            return await src.adapter.rename(src, dest)
        if not await self._transfer(src, dest):
            return False
        return await src.adapter.unlink(src)

    async def _transfer(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        """Stream *src* into *dest* across two different backends."""
        logger.debug("Cross-backend transfer %s -> %s", src.virtual_path, dest.virtual_path)
        stream = await src.adapter.readfile(src)
        if stream is False or stream is True:
            raise BackendOperationError(
                f"Cannot transfer a non-file across backends: {src.virtual_path}",
                path=src.virtual_path,
            )
        return await dest.adapter.writefile(dest, stream)
