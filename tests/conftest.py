"""Shared fixtures: temporary catalog, test settings, fake providers."""

import asyncio
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from software_catalog.catalog.contracts import ReferenceEntry
from software_catalog.catalog.store import CatalogStore
from software_catalog.config import (
    EnrichmentConfig,
    LoggingConfig,
    ProviderConfig,
    RawgAPIConfig,
    RetryConfig,
    Settings,
)
from software_catalog.logger import setup_logging
from software_catalog.providers.base import MetadataResult, Partition


class FakeProvider:
    """In-memory provider that records every call."""

    def __init__(
        self,
        name: str,
        priority: int,
        *,
        partition: Partition = Partition.SOFTWARE,
        result: MetadataResult | None = None,
        publisher_result: MetadataResult | None = None,
        available: bool = True,
        min_confidence: float = 0.6,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.priority = priority
        self.partition = partition
        self.min_confidence = min_confidence
        self.result = result
        self.publisher_result = publisher_result
        self.available = available
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, ...]] = []

    def is_available(self) -> bool:
        return self.available

    async def _answer(self, result: MetadataResult | None) -> MetadataResult | None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return result

    async def search_by_name(self, name: str | None) -> MetadataResult | None:
        self.calls.append(("name", name or ""))
        return await self._answer(self.result)

    async def search_by_name_and_publisher(
        self, name: str | None, publisher: str | None
    ) -> MetadataResult | None:
        self.calls.append(("publisher", name or "", publisher or ""))
        return await self._answer(self.publisher_result)


class FakeSteamProvider(FakeProvider):
    """Game provider that also resolves Steam app ids."""

    def __init__(self, *args: Any, steam_result: MetadataResult | None = None, **kwargs: Any) -> None:
        super().__init__(*args, partition=Partition.GAME, **kwargs)
        self.steam_result = steam_result

    async def search_by_steam_app_id(self, app_id: int) -> MetadataResult | None:
        self.calls.append(("steam", str(app_id)))
        return await self._answer(self.steam_result)


def make_result(source: str, confidence: float = 0.9, **fields: Any) -> MetadataResult:
    return MetadataResult(source=source, confidence=confidence, **fields)


@pytest.fixture
def settings() -> Settings:
    """Settings tuned for fast, offline tests."""
    return Settings(
        rawg=RawgAPIConfig(api_key="test-rawg-key", base_url="https://api.rawg.io/api"),
        providers=ProviderConfig(
            timeout_seconds=5.0,
            cnet_min_interval_seconds=0.0,
            winget_executable="winget-not-installed",
        ),
        enrichment=EnrichmentConfig(batch_delay_seconds=0.0, max_concurrency=4),
        retry=RetryConfig(max_attempts=2, base_delay_seconds=0.1, max_delay_seconds=1.0),
    )


@pytest.fixture
def store(tmp_path: Path) -> Iterator[CatalogStore]:
    """Fresh file-backed catalog per test."""
    catalog = CatalogStore.open(tmp_path / "catalog.db")
    yield catalog
    catalog.close()


@pytest.fixture
def add_entry(store: CatalogStore) -> Any:
    """Create an entry and return its snapshot."""

    def _add(source: str = "Software", external_id: str = "notepad", **fields: Any) -> ReferenceEntry:
        fields.setdefault("name", "Notepad++")
        result = store.upsert(source, external_id, fields)
        assert result.entry is not None
        return result.entry

    return _add


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def fake_steam_provider() -> type[FakeSteamProvider]:
    return FakeSteamProvider


@pytest.fixture
def result_factory() -> Any:
    return make_result


@pytest.fixture(autouse=True, scope="session")
def quiet_logging() -> None:
    """Route structlog to stderr so CLI JSON on stdout stays parseable."""
    setup_logging(LoggingConfig(level="WARNING", format="console", include_timestamp=False))
