"""DatabaseAdapter — files stored as rows, one table shared by all mountpoints.

Each mountpoint gets its own namespace inside the table
(``attributes.namespace``, defaulting to the mountpoint name; a
``{username}`` segment is replaced with the session user).  The root of
a namespace always exists and is never stored.

Sessions are per-operation only.  No transaction spans two calls.
"""

from __future__ import annotations

import logging
import posixpath
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import DateTime, LargeBinary, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import Field, SQLModel, select

from .exceptions import BackendOperationError, PathResolutionError
from .system import USERNAME_SEGMENT, session_username
from .types import FileStat
from .utils import join_virtual_path, parse_virtual_path

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator, Mapping

    from sqlalchemy.ext.asyncio import AsyncEngine

    from .types import Mountpoint, PlatformContext, ResolvedPath

logger = logging.getLogger(__name__)

DEFAULT_URL = "sqlite+aiosqlite://"
CHUNK_SIZE = 64 * 1024


class VFSNode(SQLModel, table=True):
    """A file or directory stored by :class:`DatabaseAdapter`."""

    __tablename__ = "mountvfs_nodes"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    path: str = Field(index=True, unique=True)
    parent_path: str = Field(index=True)
    name: str = Field(default="")
    is_directory: bool = Field(default=False)
    content: bytes | None = Field(default=None, sa_type=LargeBinary)
    size_bytes: int = Field(default=0)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),
    )


def _missing(target: ResolvedPath) -> BackendOperationError:
    return BackendOperationError(
        f"No such file or directory: {target.virtual_path}",
        code="ENOENT",
        path=target.virtual_path,
    )


class DatabaseAdapter:
    """SQL-backed adapter.

    Implements ``Adapter`` and ``SupportsLifecycle``; it cannot watch.
    Options come from ``FilesystemConfig.adapter_options["database"]``
    (``url``), or an engine can be passed directly.
    """

    def __init__(
        self,
        context: PlatformContext,
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        options = context.config.adapter_options.get("database", {})
        self._mime = context.mime
        self._engine = engine or create_async_engine(options.get("url", DEFAULT_URL), echo=False)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Create the node table if missing."""
        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all, tables=[VFSNode.__table__])

    async def destroy(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession]:
        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def resolve(self, mountpoint: Mountpoint, path: str, session: Mapping[str, Any]) -> str:
        namespace = str(mountpoint.attributes.get("namespace") or mountpoint.name)
        if USERNAME_SEGMENT in namespace:
            username = session_username(session)
            if not username:
                raise PathResolutionError(
                    f"Mountpoint {mountpoint.name!r} requires a session user: {path}"
                )
            namespace = namespace.replace(USERNAME_SEGMENT, username)
        _name, relative = parse_virtual_path(path)
        root = "/" + namespace.strip("/")
        return root if relative == "/" else root + relative

    @staticmethod
    def _is_root(target: ResolvedPath) -> bool:
        return target.virtual_path.endswith(":/")

    @staticmethod
    def _moved(path: str, src: str, dest: str) -> str:
        return dest + path[len(src) :]

    async def _get(self, session: AsyncSession, path: str) -> VFSNode | None:
        result = await session.execute(select(VFSNode).where(VFSNode.path == path))
        return result.scalar_one_or_none()

    async def _subtree(self, session: AsyncSession, path: str) -> list[VFSNode]:
        result = await session.execute(
            select(VFSNode).where(VFSNode.path.startswith(path + "/", autoescape=True))  # type: ignore[union-attr]
        )
        return list(result.scalars().all())

    async def _require_parent_dir(self, session: AsyncSession, target: ResolvedPath) -> None:
        if "/" not in target.virtual_path.partition(":/")[2]:
            return
        node = await self._get(session, posixpath.dirname(target.real_path))
        if node is None or not node.is_directory:
            raise BackendOperationError(
                f"Parent directory does not exist: {target.virtual_path}",
                code="ENOENT",
                path=target.virtual_path,
            )

    def _to_stat(self, node: VFSNode, virtual_path: str) -> FileStat:
        is_file = not node.is_directory
        return FileStat(
            path=virtual_path,
            filename=node.name,
            is_directory=node.is_directory,
            is_file=is_file,
            size=node.size_bytes,
            mime=self._mime(node.name) if is_file else None,
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def exists(self, target: ResolvedPath) -> bool:
        if self._is_root(target):
            return True
        async with self._session() as session:
            return await self._get(session, target.real_path) is not None

    async def stat(self, target: ResolvedPath) -> FileStat:
        if self._is_root(target):
            return FileStat(path=target.virtual_path, filename="", is_directory=True, is_file=False)
        async with self._session() as session:
            node = await self._get(session, target.real_path)
        if node is None:
            raise _missing(target)
        return self._to_stat(node, target.virtual_path)

    async def readdir(self, target: ResolvedPath) -> list[FileStat]:
        async with self._session() as session:
            if not self._is_root(target):
                node = await self._get(session, target.real_path)
                if node is None:
                    raise _missing(target)
                if not node.is_directory:
                    raise BackendOperationError(
                        f"Not a directory: {target.virtual_path}",
                        code="ENOTDIR",
                        path=target.virtual_path,
                    )
            result = await session.execute(
                select(VFSNode)
                .where(VFSNode.parent_path == target.real_path)
                .order_by(VFSNode.name)  # type: ignore[arg-type]
            )
            children = result.scalars().all()

        name = target.mountpoint.name
        relative = target.virtual_path.partition(":/")[2]
        return [
            self._to_stat(child, join_virtual_path(name, f"{relative}/{child.name}"))
            for child in children
        ]

    async def readfile(self, target: ResolvedPath) -> AsyncIterator[bytes] | bool:
        if self._is_root(target):
            return False
        async with self._session() as session:
            node = await self._get(session, target.real_path)
        if node is None:
            raise _missing(target)
        if node.is_directory:
            return False
        return self._chunks(node.content or b"")

    @staticmethod
    async def _chunks(content: bytes) -> AsyncIterator[bytes]:
        for start in range(0, len(content), CHUNK_SIZE):
            yield content[start : start + CHUNK_SIZE]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def mkdir(self, target: ResolvedPath) -> bool:
        if self._is_root(target):
            raise BackendOperationError(
                f"File exists: {target.virtual_path}", code="EEXIST", path=target.virtual_path
            )
        async with self._session() as session:
            if await self._get(session, target.real_path) is not None:
                raise BackendOperationError(
                    f"File exists: {target.virtual_path}", code="EEXIST", path=target.virtual_path
                )
            await self._require_parent_dir(session, target)
            session.add(
                VFSNode(
                    path=target.real_path,
                    parent_path=posixpath.dirname(target.real_path),
                    name=posixpath.basename(target.real_path),
                    is_directory=True,
                )
            )
        return True

    async def writefile(self, target: ResolvedPath, stream: AsyncIterable[bytes]) -> bool:
        if self._is_root(target):
            return False
        chunks = [chunk async for chunk in stream]
        content = b"".join(chunks)
        async with self._session() as session:
            node = await self._get(session, target.real_path)
            if node is not None and node.is_directory:
                return False
            if node is None:
                await self._require_parent_dir(session, target)
                node = VFSNode(
                    path=target.real_path,
                    parent_path=posixpath.dirname(target.real_path),
                    name=posixpath.basename(target.real_path),
                )
            node.content = content
            node.size_bytes = len(content)
            node.updated_at = datetime.now(UTC)
            session.add(node)
        return True

    async def rename(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        async with self._session() as session:
            node = await self._prepare_transfer(session, src, dest)
            for child in await self._subtree(session, src.real_path):
                child.path = self._moved(child.path, src.real_path, dest.real_path)
                child.parent_path = self._moved(child.parent_path, src.real_path, dest.real_path)
                session.add(child)
            node.path = dest.real_path
            node.parent_path = posixpath.dirname(dest.real_path)
            node.name = posixpath.basename(dest.real_path)
            node.updated_at = datetime.now(UTC)
            session.add(node)
        return True

    async def copy(self, src: ResolvedPath, dest: ResolvedPath) -> bool:
        async with self._session() as session:
            node = await self._prepare_transfer(session, src, dest)
            for original in [node, *await self._subtree(session, src.real_path)]:
                path = self._moved(original.path, src.real_path, dest.real_path)
                session.add(
                    VFSNode(
                        path=path,
                        parent_path=posixpath.dirname(path),
                        name=posixpath.basename(path),
                        is_directory=original.is_directory,
                        content=original.content,
                        size_bytes=original.size_bytes,
                    )
                )
        return True

    async def _prepare_transfer(
        self, session: AsyncSession, src: ResolvedPath, dest: ResolvedPath
    ) -> VFSNode:
        """Validate a rename/copy and clear a file sitting at *dest*."""
        node = await self._get(session, src.real_path) if not self._is_root(src) else None
        if node is None:
            raise _missing(src)
        if dest.real_path == src.real_path or dest.real_path.startswith(src.real_path + "/"):
            raise BackendOperationError(
                f"Cannot move or copy into itself: {dest.virtual_path}",
                code="EINVAL",
                path=dest.virtual_path,
            )
        await self._require_parent_dir(session, dest)
        existing = await self._get(session, dest.real_path)
        if existing is not None:
            if existing.is_directory or node.is_directory:
                raise BackendOperationError(
                    f"File exists: {dest.virtual_path}", code="EEXIST", path=dest.virtual_path
                )
            await session.delete(existing)
            await session.flush()
        return node

    async def unlink(self, target: ResolvedPath) -> bool:
        if self._is_root(target):
            raise BackendOperationError(
                f"Cannot remove mountpoint root: {target.virtual_path}",
                code="EPERM",
                path=target.virtual_path,
            )
        async with self._session() as session:
            node = await self._get(session, target.real_path)
            if node is None:
                raise _missing(target)
            await session.execute(
                delete(VFSNode).where(
                    VFSNode.path.startswith(target.real_path + "/", autoescape=True)  # type: ignore[union-attr]
                )
            )
            await session.delete(node)
        return True
