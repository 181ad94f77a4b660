"""MetadataProvider protocol for enrichment sources."""

from typing import Protocol, runtime_checkable

from software_catalog.providers.base import MetadataResult, Partition


@runtime_checkable
class MetadataProvider(Protocol):
    """
    Interface every enrichment source satisfies.

    Providers are tried in priority order within their partition; lower
    numbers are tried first. A result is accepted when its confidence
    reaches the provider's own min_confidence.

    Example:
        class WikipediaProvider(BaseProvider):
            name = "Wikipedia"
            priority = 99
            min_confidence = 0.6
            partition = Partition.SOFTWARE

            async def _search(self, name: str) -> MetadataResult | None:
                ...
    """

    name: str
    priority: int
    min_confidence: float
    partition: Partition

    def is_available(self) -> bool:
        """
        Whether the provider can be queried.

        Unavailable providers are skipped without a call.
        """
        ...

    async def search_by_name(self, name: str | None) -> MetadataResult | None:
        """
        Look up metadata by name.

        Must return None for empty input without I/O and must never raise.
        """
        ...

    async def search_by_name_and_publisher(
        self, name: str | None, publisher: str | None
    ) -> MetadataResult | None:
        """Look up metadata by name and publisher. Must never raise."""
        ...


@runtime_checkable
class SteamLookupProvider(MetadataProvider, Protocol):
    """A game provider that can resolve a Steam app id directly."""

    async def search_by_steam_app_id(self, app_id: int) -> MetadataResult | None:
        ...
