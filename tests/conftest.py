"""Shared fixtures for mountvfs tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pytest

from mountvfs.config import FilesystemConfig
from mountvfs.events import ClientSession, EventBus, FilesystemChangeEvent
from mountvfs.filesystem import Filesystem
from mountvfs.fs.adapters import AdapterRegistration
from mountvfs.fs.exceptions import BackendOperationError
from mountvfs.fs.system import session_username
from mountvfs.fs.types import FileStat
from mountvfs.fs.utils import join_virtual_path, parse_virtual_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable, Mapping

    from mountvfs.fs.types import Mountpoint, PlatformContext, ResolvedPath


# =========================================================================
# In-memory adapters
# =========================================================================


class MemoryAdapter:
    """Dict-backed adapter that records every call it receives."""

    def __init__(self, context: PlatformContext | None = None) -> None:
        self.context = context
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def resolve(self, mountpoint: Mountpoint, path: str, session: Mapping[str, Any]) -> str:
        self.calls.append(("resolve", path))
        _name, rel = parse_virtual_path(path)
        user = session_username(session)
        base = f"mem://{user}@{mountpoint.name}" if user else f"mem://{mountpoint.name}"
        return base if rel == "/" else base + rel

    def _missing(self, target: ResolvedPath) -> BackendOperationError:
        return BackendOperationError(
            f"Not found: {target.virtual_path}", code="ENOENT", path=target.virtual_path
        )

    def _is_dir(self, real: str) -> bool:
        return real in self.dirs or "/" not in real.removeprefix("mem://")

    async def exists(self, target: ResolvedPath) -> bool:
        self.calls.append(("exists", target.real_path))
        return target.real_path in self.files or self._is_dir(target.real_path)

    async def stat(self, target: ResolvedPath) -> FileStat:
        self.calls.append(("stat", target.real_path))
        name = target.virtual_path.rsplit("/", 1)[-1]
        if target.real_path in self.files:
            return FileStat(
                path=target.virtual_path,
                filename=name,
                is_directory=False,
                is_file=True,
                size=len(self.files[target.real_path]),
            )
        if self._is_dir(target.real_path):
            return FileStat(
                path=target.virtual_path, filename=name, is_directory=True, is_file=False
            )
        raise self._missing(target)

    async def readdir(self, target: ResolvedPath) -> list[FileStat]:
        self.calls.append(("readdir", target.real_path))
        prefix = target.real_path.rstrip("/") + "/"
        names = sorted(
            {p[len(prefix) :] for p in [*self.files, *self.dirs] if p.startswith(prefix)}
        )
        rel = target.virtual_path.partition(":/")[2]
        return [
            FileStat(
                path=join_virtual_path(target.mountpoint.name, f"{rel}/{n}"),
                filename=n,
                is_directory=prefix + n in self.dirs,
                is_file=prefix + n in self.files,
            )
            for n in names
            if "/" not in n
        ]

    async def readfile(self, target: ResolvedPath) -> AsyncIterator[bytes] | bool:
        self.calls.append(("readfile", target.real_path))
        if self._is_dir(target.real_path):
            return False
        if target.real_path not in self.files:
            raise self._missing(target)
        return _stream(self.files[target.real_path])

    async def mkdir(self, target: ResolvedPath) -> bool:
        self.calls.append(("mkdir", target.real_path))
        self.dirs.add(target.real_path)
        return True

    async def writefile(self, target: ResolvedPath, stream: AsyncIterable[bytes]) -> bool:
        self.calls.append(("writefile", target.real_path))
        if self._is_dir(target.real_path):
            return False
        self.files[target.real_path] = b"".join([chunk async for chunk in stream])
        return True

    async def rename(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        self.calls.append(("rename", src.real_path))
        if src.real_path not in self.files:
            raise self._missing(src)
        self.files[dest.real_path] = self.files.pop(src.real_path)
        return True

    async def copy(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        self.calls.append(("copy", src.real_path))
        if src.real_path not in self.files:
            raise self._missing(src)
        self.files[dest.real_path] = self.files[src.real_path]
        return True

    async def unlink(self, target: ResolvedPath) -> bool:
        self.calls.append(("unlink", target.real_path))
        if target.real_path not in self.files:
            raise self._missing(target)
        del self.files[target.real_path]
        return True


async def _stream(data: bytes) -> AsyncIterator[bytes]:
    yield data


class FakeWatch:
    """Watch handle that counts how often it was closed."""

    def __init__(self, mountpoint: Mountpoint, on_change: Callable[..., None]) -> None:
        self.mountpoint = mountpoint
        self.on_change = on_change
        self.close_count = 0

    def close(self) -> None:
        self.close_count += 1

    def fire(self, filter_args: dict[str, Any], relative_dir: str) -> None:
        self.on_change(filter_args, relative_dir)


class WatchingMemoryAdapter(MemoryAdapter):
    """MemoryAdapter that also supports watching."""

    def __init__(self, context: PlatformContext | None = None) -> None:
        super().__init__(context)
        self.watches: list[FakeWatch] = []

    def watch(self, mountpoint: Mountpoint, on_change: Callable[..., None]) -> FakeWatch:
        handle = FakeWatch(mountpoint, on_change)
        self.watches.append(handle)
        return handle


class LifecycleMemoryAdapter(MemoryAdapter):
    """MemoryAdapter with init/destroy hooks."""

    def __init__(self, context: PlatformContext | None = None) -> None:
        super().__init__(context)
        self.init_count = 0
        self.destroy_count = 0

    async def init(self) -> None:
        self.init_count += 1

    async def destroy(self) -> None:
        self.destroy_count += 1


# =========================================================================
# Sessions
# =========================================================================


@dataclass
class Recipient:
    """A client session that collects the events it receives."""

    attributes: dict[str, Any] = field(default_factory=dict)
    received: list[FilesystemChangeEvent] = field(default_factory=list)

    async def send(self, event: FilesystemChangeEvent) -> None:
        self.received.append(event)

    def session(self) -> ClientSession:
        return ClientSession(send=self.send, attributes=self.attributes)


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def config() -> FilesystemConfig:
    return FilesystemConfig(
        mountpoints=(
            {"name": "home", "adapter": "memory", "attributes": {"root": "/home"}},
            {"name": "shared", "adapter": "memory", "attributes": {"watch": False}},
        ),
        mime_filenames={"Makefile": "text/x-makefile"},
    )


@pytest.fixture
async def fs(config: FilesystemConfig, event_bus: EventBus) -> AsyncIterator[Filesystem]:
    """Initialized Filesystem with a watching in-memory adapter named ``memory``."""
    filesystem = Filesystem(
        config,
        event_bus=event_bus,
        adapters=[AdapterRegistration("memory", WatchingMemoryAdapter)],
    )
    await filesystem.init()
    yield filesystem
    await filesystem.destroy()


@pytest.fixture
def memory(fs: Filesystem) -> WatchingMemoryAdapter:
    adapter = fs.adapters.get("memory")
    assert isinstance(adapter, WatchingMemoryAdapter)
    return adapter
