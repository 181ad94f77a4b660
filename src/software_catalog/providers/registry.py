"""Provider registry: the immutable, priority-ordered provider chains."""

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from software_catalog.config import Settings, get_settings
from software_catalog.providers.base import Partition
from software_catalog.providers.cnet import CnetProvider
from software_catalog.providers.protocol import MetadataProvider
from software_catalog.providers.rawg import RawgProvider
from software_catalog.providers.wikipedia import WikipediaProvider
from software_catalog.providers.winget import WingetProvider

logger = structlog.get_logger(__name__)


def _ordered(providers: Iterable[MetadataProvider], partition: Partition) -> tuple[MetadataProvider, ...]:
    # sorted() is stable, so equal priorities keep registration order
    return tuple(sorted((p for p in providers if p.partition == partition), key=lambda p: p.priority))


@dataclass(frozen=True)
class ProviderRegistry:
    """
    Game and software provider chains, each sorted by ascending priority.

    Built once per process and shared by reference; the chains are
    tuples and cannot change after construction.

    Example:
        >>> registry = ProviderRegistry.from_providers([RawgProvider(), WikipediaProvider()])
        >>> [p.name for p in registry.software]
        ['Wikipedia']
    """

    games: tuple[MetadataProvider, ...] = field(default_factory=tuple)
    software: tuple[MetadataProvider, ...] = field(default_factory=tuple)

    @classmethod
    def from_providers(cls, providers: Iterable[MetadataProvider]) -> "ProviderRegistry":
        providers = list(providers)
        registry = cls(
            games=_ordered(providers, Partition.GAME),
            software=_ordered(providers, Partition.SOFTWARE),
        )
        logger.debug(
            "Provider registry built",
            games=[p.name for p in registry.games],
            software=[p.name for p in registry.software],
        )
        return registry

    def chain(self, partition: Partition) -> tuple[MetadataProvider, ...]:
        """Provider chain for one partition."""
        return self.games if partition == Partition.GAME else self.software

    def all(self) -> tuple[MetadataProvider, ...]:
        return self.games + self.software

    async def close(self) -> None:
        """Close HTTP clients held by providers."""
        for provider in self.all():
            close = getattr(provider, "close", None)
            if close is not None:
                await close()


def create_default_registry(settings: Settings | None = None) -> ProviderRegistry:
    """Registry with the four built-in providers."""
    settings = settings or get_settings()
    return ProviderRegistry.from_providers(
        [
            RawgProvider(settings),
            WingetProvider(settings),
            CnetProvider(settings),
            WikipediaProvider(settings),
        ]
    )
