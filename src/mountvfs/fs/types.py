"""Data model: mountpoints, resolved paths, file stats, request context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigError
from .permissions import Permission

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from mountvfs.config import FilesystemConfig
    from mountvfs.events import EventBus

    from .protocol import Adapter


@dataclass(eq=False)
class Mountpoint:
    """A named binding of a virtual namespace to one adapter.

    Mountpoints compare by identity: two mounts under the same name are
    distinct entries.
    """

    name: str
    """Namespace key, the ``name`` in ``name:/path``."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    """Unique across all currently mounted entries."""

    root: str = ""
    """Virtual prefix, defaults to ``"<name>:/"``."""

    adapter: str | None = None
    """Adapter name in the AdapterRegistry; ``None`` means the default backend."""

    attributes: dict[str, Any] = field(default_factory=dict)
    """Open configuration: ``watch``, ``root``, ``readOnly`` and backend-specific keys."""

    def __post_init__(self) -> None:
        if not self.root:
            self.root = f"{self.name}:/"

    @classmethod
    def from_descriptor(cls, descriptor: Mapping[str, Any]) -> Mountpoint:
        """Finalize a ``{name, adapter?, attributes?, id?, root?}`` descriptor."""
        name = descriptor.get("name")
        if not isinstance(name, str) or not name:
            raise ConfigError(f"Mountpoint descriptor requires a non-empty name: {descriptor!r}")
        attributes = descriptor.get("attributes") or {}
        if not isinstance(attributes, dict):
            raise ConfigError(f"Mountpoint {name!r}: attributes must be a mapping")

        kwargs: dict[str, Any] = {
            "name": name,
            "root": descriptor.get("root") or "",
            "adapter": descriptor.get("adapter"),
            "attributes": {**attributes},
        }
        if descriptor.get("id"):
            kwargs["id"] = descriptor["id"]
        return cls(**kwargs)

    @property
    def permission(self) -> Permission:
        if self.attributes.get("readOnly"):
            return Permission.READ_ONLY
        return Permission.READ_WRITE


@dataclass
class FileStat:
    """File/directory metadata as reported by an adapter."""

    path: str
    filename: str
    is_directory: bool
    is_file: bool
    size: int = 0
    mime: str | None = None


@dataclass(frozen=True, slots=True)
class ResolvedPath:
    """A virtual path bound to its mountpoint, adapter and concrete backend path."""

    mountpoint: Mountpoint
    adapter: Adapter
    virtual_path: str
    real_path: str
    session: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class VFSRequest:
    """Minimal request context consumed by the dispatch methods."""

    session: dict[str, Any] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)
    files: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PlatformContext:
    """Dependencies handed to every adapter factory."""

    config: FilesystemConfig
    event_bus: EventBus
    mime: Callable[[str], str]
