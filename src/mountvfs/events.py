"""EventBus and client sessions for filesystem-change broadcasts."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Mapping

logger = logging.getLogger(__name__)

FILESYSTEM_CHANGE = "filesystem-change"


@dataclass(frozen=True, slots=True)
class FilesystemChangeEvent:
    """Immutable record of a backend change under a watched mountpoint.

    Attributes:
        path: Absolute virtual path of the changed directory, ``name:/dir``.
        filter_args: Criteria a recipient's session attributes must match.
    """

    path: str
    filter_args: dict[str, Any] = field(default_factory=dict)
    name: str = FILESYSTEM_CHANGE


def matches_filter(attributes: Mapping[str, Any], filter_args: Mapping[str, Any]) -> bool:
    """Exact match on every key of *filter_args*; an empty filter matches all."""
    return all(k in attributes and attributes[k] == v for k, v in filter_args.items())


@dataclass(eq=False)
class ClientSession:
    """A connected client that may receive broadcasts.

    ``send`` is awaited once per delivered event.
    """

    send: Callable[[FilesystemChangeEvent], Awaitable[None]]
    attributes: dict[str, Any] = field(default_factory=dict)


class EventBus:
    """Fans filesystem events out to connected client sessions.

    Delivery is fire-and-forget: recipients are awaited sequentially in
    connection order, and a failing recipient is logged but never
    propagated, so it cannot stop delivery to the others.
    """

    def __init__(self) -> None:
        self._sessions: list[ClientSession] = []

    def connect(self, session: ClientSession) -> None:
        """Register *session* as a broadcast recipient."""
        self._sessions.append(session)

    def disconnect(self, session: ClientSession) -> bool:
        """Remove *session*. Return True if it was connected."""
        try:
            self._sessions.remove(session)
            return True
        except ValueError:
            return False

    async def broadcast(self, event: FilesystemChangeEvent) -> int:
        """Deliver *event* to every session matching its filter.

        Returns the number of sessions the event was handed to.
        """
        delivered = 0
        for session in list(self._sessions):
            if not matches_filter(session.attributes, event.filter_args):
                continue
            try:
                await session.send(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "Recipient %r failed for %s on %s",
                    session,
                    event.name,
                    event.path,
                    exc_info=True,
                )
        logger.debug("Broadcast %s on %s to %d session(s)", event.name, event.path, delivered)
        return delivered

    @property
    def session_count(self) -> int:
        """Number of connected sessions."""
        return len(self._sessions)

    def clear(self) -> None:
        """Disconnect all sessions."""
        self._sessions.clear()
