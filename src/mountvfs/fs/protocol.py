"""Adapter protocol: runtime-checkable interfaces.

Split into a core protocol and opt-in capability protocols so that a
backend implements only what it can offer.  Optional capabilities are
discovered with :func:`get_capability`, never by probing attributes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from .exceptions import CapabilityNotSupportedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Mapping

    from .types import FileStat, Mountpoint, ResolvedPath

T = TypeVar("T")

ChangeCallback = Callable[[dict[str, Any], str], None]
"""``(filter_args, relative_changed_dir)`` invoked on the event-loop thread."""


@runtime_checkable
class Adapter(Protocol):
    """Core interface every backend must implement."""

    def resolve(
        self,
        mountpoint: Mountpoint,
        path: str,
        session: Mapping[str, Any],
    ) -> str:
        """Map the virtual *path* on *mountpoint* to a concrete backend path."""
        ...

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def exists(self, target: ResolvedPath) -> bool: ...

    async def stat(self, target: ResolvedPath) -> FileStat: ...

    async def readdir(self, target: ResolvedPath) -> list[FileStat]: ...

    async def readfile(self, target: ResolvedPath) -> AsyncIterator[bytes] | bool:
        """Byte stream of the file, or ``False`` if it is not a regular file."""
        ...

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def mkdir(self, target: ResolvedPath) -> bool: ...

    async def writefile(self, target: ResolvedPath, stream: AsyncIterable[bytes]) -> bool:
        """Write *stream*; ``False`` if the destination is an existing directory."""
        ...

    async def rename(self, src: ResolvedPath, dest: ResolvedPath) -> bool: ...

    async def copy(self, src: ResolvedPath, dest: ResolvedPath) -> bool: ...

    async def unlink(self, target: ResolvedPath) -> bool: ...


@runtime_checkable
class WatchHandle(Protocol):
    """A live backend watch.  ``close()`` must be safe to call twice."""

    def close(self) -> None: ...


@runtime_checkable
class SupportsWatch(Protocol):
    """Opt-in: change notifications for a mountpoint's root."""

    def watch(self, mountpoint: Mountpoint, on_change: ChangeCallback) -> WatchHandle: ...


@runtime_checkable
class SupportsLifecycle(Protocol):
    """Opt-in: setup at filesystem init, teardown at filesystem destroy."""

    async def init(self) -> None: ...

    async def destroy(self) -> None: ...


def get_capability(adapter: Any, protocol: type[T]) -> T | None:
    """Return *adapter* typed as *protocol* if it implements it, else ``None``."""
    if isinstance(adapter, protocol):
        return adapter
    return None


def require_capability(adapter: Any, protocol: type[T]) -> T:
    """Like :func:`get_capability` but raise when the capability is missing."""
    cap = get_capability(adapter, protocol)
    if cap is None:
        raise CapabilityNotSupportedError(
            f"{type(adapter).__name__} does not support {protocol.__name__}"
        )
    return cap
