"""AdapterRegistry — eager instantiation of configured backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .exceptions import ConfigError, StartupError
from .protocol import Adapter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from .types import Mountpoint, PlatformContext

logger = logging.getLogger(__name__)

DEFAULT_ADAPTER = "system"


@dataclass(frozen=True)
class AdapterRegistration:
    """An adapter name paired with the factory that builds it."""

    name: str
    factory: Callable[[PlatformContext], Adapter]


def _default_registrations() -> list[AdapterRegistration]:
    from .system import SystemAdapter

    return [AdapterRegistration(DEFAULT_ADAPTER, SystemAdapter)]


class AdapterRegistry:
    """Fixed lookup table of live adapter instances.

    Built once from an explicit registration list.  The ``system``
    default is always present; a caller registration with the same name
    wins over it.  Factory exceptions propagate unchanged.
    """

    def __init__(self, adapters: dict[str, Adapter]) -> None:
        self._adapters = adapters

    @classmethod
    def build(
        cls,
        context: PlatformContext,
        registrations: Iterable[AdapterRegistration] = (),
    ) -> AdapterRegistry:
        factories: dict[str, Callable[[PlatformContext], Adapter]] = {}
        for reg in [*_default_registrations(), *registrations]:
            factories[reg.name] = reg.factory

        adapters: dict[str, Adapter] = {}
        for name, factory in factories.items():
            instance = factory(context)
            if not isinstance(instance, Adapter):
                raise StartupError(
                    f"Adapter {name!r} does not implement the adapter contract: "
                    f"{type(instance).__name__}"
                )
            adapters[name] = instance
            logger.debug("Instantiated adapter %s (%s)", name, type(instance).__name__)
        return cls(adapters)

    def get(self, name: str) -> Adapter:
        """Return the adapter registered as *name*."""
        try:
            return self._adapters[name]
        except KeyError:
            raise ConfigError(f"No adapter registered as {name!r}") from None

    def for_mountpoint(self, mountpoint: Mountpoint) -> Adapter:
        """Return the adapter bound to *mountpoint*, the default if it names none."""
        return self.get(mountpoint.adapter or DEFAULT_ADAPTER)

    def names(self) -> list[str]:
        return list(self._adapters)

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __iter__(self) -> Iterator[Adapter]:
        return iter(list(self._adapters.values()))

    def __len__(self) -> int:
        return len(self._adapters)
