"""Configuration snapshot consumed by :class:`~mountvfs.filesystem.Filesystem`.

Parsing is strict: unexpected types raise :class:`ConfigError` naming
the offending key, so a bad deployment fails at startup rather than on
the first request.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mountvfs.fs.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilesystemConfig:
    mountpoints: tuple[dict[str, Any], ...] = ()
    """Descriptors ``{name, adapter?, attributes?}`` mounted in order at startup."""

    watch: bool = True
    """Global kill-switch; ``False`` disables every watch."""

    mime_define: dict[str, list[str]] = field(default_factory=dict)
    """MIME type -> extensions, forced over the default table."""

    mime_filenames: dict[str, str] = field(default_factory=dict)
    """Exact basename -> MIME type, checked before extension lookup."""

    adapter_options: dict[str, dict[str, Any]] = field(default_factory=dict)
    """Per-adapter settings, keyed by adapter name."""

    @classmethod
    def parse(cls, data: Mapping[str, Any]) -> FilesystemConfig:
        vfs = data.get("vfs", {})
        if not isinstance(vfs, dict):
            raise ConfigError(f"Invalid value for vfs: must be a table: got {type(vfs)}")
        mime = data.get("mime", {})
        if not isinstance(mime, dict):
            raise ConfigError(f"Invalid value for mime: must be a table: got {type(mime)}")

        mountpoints = vfs.get("mountpoints", [])
        if not isinstance(mountpoints, list):
            raise ConfigError(
                f"Invalid value for vfs.mountpoints: must be a list: got {type(mountpoints)}"
            )
        for i, mount in enumerate(mountpoints):
            _validate_descriptor(i, mount)

        watch = vfs.get("watch", True)
        if not isinstance(watch, bool):
            raise ConfigError(f"Invalid value for vfs.watch: must be a bool: got {type(watch)}")

        define = mime.get("define", {})
        if not isinstance(define, dict):
            raise ConfigError(f"Invalid value for mime.define: must be a table: got {type(define)}")
        mime_define: dict[str, list[str]] = {}
        for mime_type, extensions in define.items():
            if isinstance(extensions, str):
                extensions = [extensions]
            if not isinstance(extensions, list) or not all(isinstance(e, str) for e in extensions):
                raise ConfigError(
                    f"Invalid value for mime.define[{mime_type!r}]: must be a list[str]"
                )
            mime_define[mime_type] = list(extensions)

        adapter_options = vfs.get("adapters", {})
        if not isinstance(adapter_options, dict) or not all(
            isinstance(v, dict) for v in adapter_options.values()
        ):
            raise ConfigError("Invalid value for vfs.adapters: must be a table of tables")

        filenames = mime.get("filenames", {})
        if not isinstance(filenames, dict) or not all(
            isinstance(v, str) for v in filenames.values()
        ):
            raise ConfigError("Invalid value for mime.filenames: must be a table of strings")

        return cls(
            mountpoints=tuple(dict(m) for m in mountpoints),
            watch=watch,
            mime_define=mime_define,
            mime_filenames=dict(filenames),
            adapter_options={k: dict(v) for k, v in adapter_options.items()},
        )

    @classmethod
    def from_toml(cls, path: Path) -> FilesystemConfig:
        try:
            with path.open("rb") as fp:
                data = tomllib.load(fp)
        except FileNotFoundError as e:
            raise ConfigError(f"Configuration file not found ({path})") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Failed to decode configuration file ({path}): {e}") from e
        logger.debug("Loaded configuration from %s", path)
        return cls.parse(data)


def _validate_descriptor(index: int, mount: Any) -> None:
    key = f"vfs.mountpoints[{index}]"
    if not isinstance(mount, dict):
        raise ConfigError(f"Invalid value for {key}: must be a table: got {type(mount)}")
    if not isinstance(mount.get("name"), str) or not mount["name"]:
        raise ConfigError(f"Missing key in configuration file: {key}.name")
    if "adapter" in mount and not isinstance(mount["adapter"], str):
        raise ConfigError(f"Invalid value for {key}.adapter: must be a string")
    if "attributes" in mount and not isinstance(mount["attributes"], dict):
        raise ConfigError(f"Invalid value for {key}.attributes: must be a table")
