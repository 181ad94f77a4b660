"""
Metadata providers for catalog enrichment.

All providers share BaseProvider: retry with backoff, a timeout
around every lookup, and failures reported as None.
"""

from software_catalog.providers.base import (
    APIError,
    BaseProvider,
    MetadataResult,
    ParseError,
    Partition,
    ProviderError,
    RateLimitError,
)
from software_catalog.providers.cnet import CnetProvider
from software_catalog.providers.protocol import MetadataProvider, SteamLookupProvider
from software_catalog.providers.rawg import RawgProvider
from software_catalog.providers.registry import ProviderRegistry, create_default_registry
from software_catalog.providers.wikipedia import WikipediaProvider
from software_catalog.providers.winget import WingetProvider

__all__ = [
    # Base classes and errors
    "APIError",
    "BaseProvider",
    "MetadataProvider",
    "MetadataResult",
    "ParseError",
    "Partition",
    "ProviderError",
    "RateLimitError",
    "SteamLookupProvider",
    # Registry
    "ProviderRegistry",
    "create_default_registry",
    # Providers
    "CnetProvider",
    "RawgProvider",
    "WikipediaProvider",
    "WingetProvider",
]
