"""MountpointRegistry — the set of active mountpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .exceptions import PathResolutionError

if TYPE_CHECKING:
    from .types import Mountpoint


class MountpointRegistry:
    """Registry of active mountpoints, keyed by id and kept in mount order.

    Several mountpoints may share a ``name``; lookups by name return the
    first one mounted.  Listings are snapshots, so unmounting while a
    caller iterates an earlier listing is safe.
    """

    def __init__(self) -> None:
        self._mounts: dict[str, Mountpoint] = {}

    def add(self, mountpoint: Mountpoint) -> None:
        """Append *mountpoint*.  Its id must not already be mounted."""
        if mountpoint.id in self._mounts:
            raise ValueError(f"Mountpoint id already mounted: {mountpoint.id}")
        self._mounts[mountpoint.id] = mountpoint

    def remove(self, mountpoint: Mountpoint) -> bool:
        """Remove *mountpoint* by identity. Return True if it was mounted."""
        if self._mounts.get(mountpoint.id) is not mountpoint:
            return False
        del self._mounts[mountpoint.id]
        return True

    def get(self, mount_id: str) -> Mountpoint | None:
        return self._mounts.get(mount_id)

    def find(self, name: str) -> Mountpoint | None:
        """First mountpoint in mount order whose name is *name*."""
        for mountpoint in self._mounts.values():
            if mountpoint.name == name:
                return mountpoint
        return None

    def resolve(self, name: str) -> Mountpoint:
        """Like :meth:`find` but raise when nothing is mounted as *name*."""
        mountpoint = self.find(name)
        if mountpoint is None:
            raise PathResolutionError(f"No mountpoint found for namespace: {name}")
        return mountpoint

    def list_mounts(self) -> list[Mountpoint]:
        """Active mountpoints in mount order."""
        return list(self._mounts.values())

    def clear(self) -> None:
        self._mounts.clear()

    def __contains__(self, mountpoint: object) -> bool:
        mount_id = getattr(mountpoint, "id", None)
        return mount_id is not None and self._mounts.get(mount_id) is mountpoint

    def __len__(self) -> int:
        return len(self._mounts)
