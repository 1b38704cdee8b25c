"""Path utilities for virtual ``name:/relative`` paths."""

from __future__ import annotations

import posixpath

from .exceptions import PathResolutionError

SEPARATOR = ":/"


def normalize_path(path: str) -> str:
    """Normalize the relative part of a virtual path.

    - Ensures leading /
    - Resolves .. and . references
    - Removes double slashes
    - Removes trailing slash (except for root)

    Examples:
        normalize_path("foo.txt") -> "/foo.txt"
        normalize_path("/foo//bar.txt") -> "/foo/bar.txt"
        normalize_path("/foo/../bar.txt") -> "/bar.txt"
        normalize_path("/foo/") -> "/foo"
        normalize_path("") -> "/"
    """
    if not path:
        return "/"

    path = path.strip()

    if not path.startswith("/"):
        path = "/" + path

    path = posixpath.normpath(path)

    # posixpath keeps a leading "//" intact
    if path.startswith("//"):
        path = "/" + path.lstrip("/")

    if path != "/" and path.endswith("/"):
        path = path[:-1]

    return path


def parse_virtual_path(path: str) -> tuple[str, str]:
    """Split ``name:/relative/path`` into ``(name, "/relative/path")``.

    The relative part is normalized; ``..`` cannot climb above the
    mountpoint root.

    Raises:
        PathResolutionError: if *path* has no ``name:/`` prefix.
    """
    name, sep, rel = path.partition(SEPARATOR)
    if not sep or not name or "/" in name:
        raise PathResolutionError(f"Malformed virtual path: {path!r}")
    return name, normalize_path(rel)


def join_virtual_path(name: str, relative: str) -> str:
    """Build ``name:/relative`` from a mount name and a relative path."""
    relative = normalize_path(relative)
    return name + SEPARATOR + relative.lstrip("/")


def split_path(path: str) -> tuple[str, str]:
    """Split a relative path into (parent_dir, filename).

    Examples:
        split_path("/foo/bar.txt") -> ("/foo", "bar.txt")
        split_path("/foo.txt") -> ("/", "foo.txt")
        split_path("/") -> ("/", "")
    """
    path = normalize_path(path)
    if path == "/":
        return "/", ""
    return posixpath.split(path)
