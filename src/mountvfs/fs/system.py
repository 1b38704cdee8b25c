"""SystemAdapter — the default backend, direct local disk access.

Mountpoint ``attributes.root`` names the host directory.  A
``{username}`` segment in it is replaced with the session user, giving
every tenant their own directory under one mountpoint::

    {"name": "home", "attributes": {"root": "/srv/vfs/{username}"}}

Blocking disk calls run in worker threads; watch events arrive on a
watchdog observer thread and are handed back to the event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import os
import shutil
import stat
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer

from .exceptions import BackendOperationError, PathResolutionError
from .types import FileStat
from .utils import join_virtual_path, parse_virtual_path

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterator, Mapping

    from .protocol import ChangeCallback
    from .types import Mountpoint, PlatformContext, ResolvedPath

logger = logging.getLogger(__name__)

USERNAME_SEGMENT = "{username}"
CHUNK_SIZE = 64 * 1024
WATCHED_EVENT_TYPES = {"created", "deleted", "modified", "moved"}


def session_username(session: Mapping[str, Any]) -> str | None:
    """Username of the session user, which may be a mapping or a plain string."""
    user = session.get("user")
    if isinstance(user, dict):
        user = user.get("username")
    return str(user) if user else None


def split_root_template(root: str) -> tuple[Path, tuple[str, ...] | None]:
    """Split a root template around its ``{username}`` segment.

    Returns ``(prefix, suffix_parts)``; ``suffix_parts`` is ``None`` when
    the template has no ``{username}`` segment.

    Examples:
        split_root_template("/srv/{username}/files") -> (Path("/srv"), ("files",))
        split_root_template("/srv/shared") -> (Path("/srv/shared"), None)
    """
    parts = PurePosixPath(root).parts
    if USERNAME_SEGMENT not in parts:
        return Path(root), None
    index = parts.index(USERNAME_SEGMENT)
    return Path(*parts[:index]), tuple(parts[index + 1 :])


@contextlib.contextmanager
def _backend_errors(path: str) -> Iterator[None]:
    try:
        yield
    except OSError as e:
        code = errno.errorcode.get(e.errno) if e.errno is not None else None
        raise BackendOperationError(f"{e.strerror or e}: {path}", code=code, path=path) from e


class SystemAdapter:
    """Local disk backend.

    Implements ``Adapter`` and ``SupportsWatch``.  ``resolve()`` keeps
    every concrete path inside the mountpoint root.
    """

    def __init__(self, context: PlatformContext) -> None:
        self._mime: Callable[[str], str] = context.mime

    # =========================================================================
    # Path Resolution & Security
    # =========================================================================

    def resolve(self, mountpoint: Mountpoint, path: str, session: Mapping[str, Any]) -> str:
        root = mountpoint.attributes.get("root")
        if not root:
            raise PathResolutionError(f"Mountpoint {mountpoint.name!r} has no root attribute")

        if USERNAME_SEGMENT in root:
            username = session_username(session)
            if not username:
                raise PathResolutionError(
                    f"Mountpoint {mountpoint.name!r} requires a session user: {path}"
                )
            if "/" in username or username in {".", ".."}:
                raise PathResolutionError(f"Invalid username for path resolution: {username!r}")
            root = root.replace(USERNAME_SEGMENT, username)

        _name, relative = parse_virtual_path(path)
        base = Path(root).resolve()
        candidate = (base / relative.lstrip("/")).resolve()
        try:
            candidate.relative_to(base)
        except ValueError:
            raise PathResolutionError(
                f"Path traversal detected: {path} resolves outside mountpoint root"
            ) from None
        return str(candidate)

    def _file_stat(self, virtual_path: str, st: os.stat_result, is_dir: bool) -> FileStat:
        filename = PurePosixPath(virtual_path.partition(":/")[2]).name
        is_file = not is_dir and stat.S_ISREG(st.st_mode)
        return FileStat(
            path=virtual_path,
            filename=filename,
            is_directory=is_dir,
            is_file=is_file,
            size=st.st_size,
            mime=self._mime(filename) if is_file else None,
        )

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def exists(self, target: ResolvedPath) -> bool:
        return await asyncio.to_thread(os.path.exists, target.real_path)

    async def stat(self, target: ResolvedPath) -> FileStat:
        with _backend_errors(target.virtual_path):
            st = await asyncio.to_thread(os.stat, target.real_path)
        return self._file_stat(target.virtual_path, st, stat.S_ISDIR(st.st_mode))

    async def readdir(self, target: ResolvedPath) -> list[FileStat]:
        def scan() -> list[tuple[str, os.stat_result, bool]]:
            with os.scandir(target.real_path) as it:
                return [(e.name, e.stat(), e.is_dir()) for e in it]

        with _backend_errors(target.virtual_path):
            entries = await asyncio.to_thread(scan)

        name = target.mountpoint.name
        relative = target.virtual_path.partition(":/")[2]
        return [
            self._file_stat(join_virtual_path(name, f"{relative}/{entry}"), st, is_dir)
            for entry, st, is_dir in sorted(entries)
        ]

    async def readfile(self, target: ResolvedPath) -> AsyncIterator[bytes] | bool:
        with _backend_errors(target.virtual_path):
            is_file = await asyncio.to_thread(os.path.isfile, target.real_path)
            if not is_file:
                await asyncio.to_thread(os.stat, target.real_path)
                return False
        return self._read_chunks(target)

    async def _read_chunks(self, target: ResolvedPath) -> AsyncIterator[bytes]:
        with _backend_errors(target.virtual_path):
            fp = await asyncio.to_thread(open, target.real_path, "rb")
            try:
                while chunk := await asyncio.to_thread(fp.read, CHUNK_SIZE):
                    yield chunk
            finally:
                fp.close()

    # =========================================================================
    # Write Operations
    # =========================================================================

    async def mkdir(self, target: ResolvedPath) -> bool:
        with _backend_errors(target.virtual_path):
            await asyncio.to_thread(os.mkdir, target.real_path)
        return True

    async def writefile(self, target: ResolvedPath, stream: AsyncIterable[bytes]) -> bool:
        if await asyncio.to_thread(os.path.isdir, target.real_path):
            return False
        with _backend_errors(target.virtual_path):
            fp = await asyncio.to_thread(open, target.real_path, "wb")
            try:
                async for chunk in stream:
                    await asyncio.to_thread(fp.write, chunk)
            finally:
                fp.close()
        return True

    async def rename(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        with _backend_errors(src.virtual_path):
            await asyncio.to_thread(os.rename, src.real_path, dest.real_path)
        return True

    async def copy(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        def do_copy() -> None:
            if os.path.isdir(src.real_path):
                shutil.copytree(src.real_path, dest.real_path, dirs_exist_ok=True)
            else:
                shutil.copy2(src.real_path, dest.real_path)

        with _backend_errors(src.virtual_path):
            await asyncio.to_thread(do_copy)
        return True

    async def unlink(self, target: ResolvedPath) -> bool:
        def do_unlink() -> None:
            if os.path.isdir(target.real_path) and not os.path.islink(target.real_path):
                shutil.rmtree(target.real_path)
            else:
                os.unlink(target.real_path)

        with _backend_errors(target.virtual_path):
            await asyncio.to_thread(do_unlink)
        return True

    # =========================================================================
    # Watch
    # =========================================================================

    def watch(self, mountpoint: Mountpoint, on_change: ChangeCallback) -> ObserverHandle:
        prefix, suffix = split_root_template(mountpoint.attributes["root"])
        prefix = prefix.resolve()
        handler = ChangeHandler(prefix, suffix, asyncio.get_running_loop(), on_change)
        observer = Observer()
        with _backend_errors(mountpoint.root):
            observer.schedule(handler, str(prefix), recursive=True)
            observer.start()
        return ObserverHandle(observer)


class ObserverHandle:
    """Watch handle wrapping a running watchdog observer."""

    def __init__(self, observer: Any) -> None:
        self._observer = observer
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._observer.stop()
        self._observer.join()


class ChangeHandler(FileSystemEventHandler):
    """Translates watchdog events into ``(filter_args, relative_dir)`` callbacks.

    Runs on the observer thread; the callback is scheduled on *loop*.
    """

    def __init__(
        self,
        prefix: Path,
        suffix: tuple[str, ...] | None,
        loop: asyncio.AbstractEventLoop,
        on_change: ChangeCallback,
    ) -> None:
        super().__init__()
        self.prefix = prefix
        self.suffix = suffix
        self.loop = loop
        self.on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in WATCHED_EVENT_TYPES:
            return
        path = event.dest_path if isinstance(event, FileSystemMovedEvent) else event.src_path
        translated = self.translate(os.fsdecode(path))
        if translated is None:
            return
        if self.loop.is_closed():
            logger.debug("Dropping %s event for %s: event loop closed", event.event_type, path)
            return
        self.loop.call_soon_threadsafe(self.on_change, *translated)

    def translate(self, path: str) -> tuple[dict[str, Any], str] | None:
        """Map an absolute host path to ``(filter_args, relative_dir)``.

        Returns ``None`` for paths outside the watched tree.
        """
        try:
            parts = Path(path).relative_to(self.prefix).parts
        except ValueError:
            return None

        filter_args: dict[str, Any] = {}
        if self.suffix is not None:
            skip = 1 + len(self.suffix)
            if len(parts) <= skip or tuple(parts[1:skip]) != self.suffix:
                return None
            filter_args["username"] = parts[0]
            parts = parts[skip:]

        if not parts:
            return None
        return filter_args, "/".join(parts[:-1])
