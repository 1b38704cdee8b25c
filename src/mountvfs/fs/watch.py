"""WatchManager — backend change notifications turned into broadcasts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from mountvfs.events import FilesystemChangeEvent

from .protocol import SupportsWatch, WatchHandle, get_capability
from .utils import join_virtual_path

if TYPE_CHECKING:
    from mountvfs.events import EventBus

    from .adapters import AdapterRegistry
    from .protocol import ChangeCallback
    from .types import Mountpoint

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class WatchSubscription:
    """A mountpoint's live backend watch.  Closes its handle at most once."""

    mount_id: str
    mount_name: str
    handle: Any
    closed: bool = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if isinstance(self.handle, WatchHandle):
            self.handle.close()


class WatchManager:
    """Owns one watch subscription per opted-in mountpoint.

    A watch is attached only when the mountpoint does not set
    ``attributes.watch`` to ``False``, the global switch is on,
    ``attributes.root`` is set and the bound adapter supports watching.
    Anything else is a silent no-op.
    """

    def __init__(
        self,
        adapters: AdapterRegistry,
        event_bus: EventBus,
        *,
        enabled: bool = True,
    ) -> None:
        self._adapters = adapters
        self._event_bus = event_bus
        self._enabled = enabled
        self._subscriptions: dict[str, WatchSubscription] = {}
        self._pending: set[asyncio.Task[int]] = set()

    # ------------------------------------------------------------------
    # Attach / detach
    # ------------------------------------------------------------------

    def watch(self, mountpoint: Mountpoint) -> WatchSubscription | None:
        """Attach a backend watch to *mountpoint* if it qualifies."""
        if mountpoint.attributes.get("watch") is False:
            logger.debug("Not watching %s: disabled for mountpoint", mountpoint.name)
            return None
        if not self._enabled:
            logger.debug("Not watching %s: watching disabled globally", mountpoint.name)
            return None
        if not mountpoint.attributes.get("root"):
            logger.debug("Not watching %s: no root attribute", mountpoint.name)
            return None

        existing = self._subscriptions.get(mountpoint.id)
        if existing is not None:
            return existing

        adapter = get_capability(self._adapters.for_mountpoint(mountpoint), SupportsWatch)
        if adapter is None:
            logger.debug("Not watching %s: adapter cannot watch", mountpoint.name)
            return None

        handle = adapter.watch(mountpoint, self._change_callback(mountpoint))
        subscription = WatchSubscription(
            mount_id=mountpoint.id,
            mount_name=mountpoint.name,
            handle=handle,
        )
        self._subscriptions[mountpoint.id] = subscription
        logger.info("Watching mountpoint %s", mountpoint.name)
        return subscription

    async def unwatch(self, mountpoint: Mountpoint) -> bool:
        """Close the watch attached to *mountpoint*. Return True if there was one."""
        subscription = self._subscriptions.pop(mountpoint.id, None)
        if subscription is None:
            return False
        await asyncio.to_thread(subscription.close)
        logger.info("Closed watch on mountpoint %s", subscription.mount_name)
        return True

    async def destroy(self) -> None:
        """Close every watch and forget them.  Safe to call repeatedly.

        Handles are closed in a worker thread.
        """
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await asyncio.to_thread(subscription.close)
        if subscriptions:
            logger.info("Closed %d watch(es)", len(subscriptions))

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def _change_callback(self, mountpoint: Mountpoint) -> ChangeCallback:
        name = mountpoint.name

        def on_change(filter_args: dict[str, Any], relative_dir: str) -> None:
            event = FilesystemChangeEvent(
                path=join_virtual_path(name, relative_dir),
                filter_args=dict(filter_args),
            )
            task = asyncio.ensure_future(self._event_bus.broadcast(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return on_change

    async def drain(self) -> None:
        """Wait for broadcasts already scheduled by change callbacks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, mount_id: str) -> WatchSubscription | None:
        return self._subscriptions.get(mount_id)

    @property
    def subscriptions(self) -> list[WatchSubscription]:
        return list(self._subscriptions.values())

    def __len__(self) -> int:
        return len(self._subscriptions)
