"""
Enrichment orchestrator.

Walks the priority-ordered provider chain for each catalog entry and
writes the first confident match back through the Catalog Store.
Entries are processed concurrently under a semaphore; each entry's
own provider walk is strictly sequential.
"""

import asyncio
from collections import Counter, defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from software_catalog.catalog.contracts import EntryMetadata, ReferenceEntry
from software_catalog.catalog.manager import CatalogManager
from software_catalog.catalog.models import utc_now
from software_catalog.catalog.store import CatalogStore
from software_catalog.config import Settings, get_settings
from software_catalog.enrichment.classifier import classify, steam_app_id
from software_catalog.logger import get_logger
from software_catalog.providers.base import MetadataResult, Partition
from software_catalog.providers.protocol import MetadataProvider, SteamLookupProvider
from software_catalog.providers.registry import ProviderRegistry

CHANGED_BY = "enrichment"

SKIP_INVALID = "invalid"
SKIP_COOLDOWN = "cooldown"
NO_MATCH = "no_match"
STORAGE_FAILURE = "storage_failure"

# additional_data keys promoted to typed EntryMetadata fields
PROMOTED_KEYS = {"latest_version": "latest_version", "package_id": "package_id"}


@dataclass(frozen=True)
class EnrichmentOutcome:
    """
    Result of enriching one entry.

    Unpacks as (success, provider_name). skipped_reason tells a
    cool-down or validation skip apart from a real miss.
    """

    success: bool
    provider_name: str | None = None
    skipped_reason: str | None = None

    def __iter__(self):  # type: ignore[no-untyped-def]
        yield self.success
        yield self.provider_name

    @property
    def skipped(self) -> bool:
        return self.skipped_reason in (SKIP_INVALID, SKIP_COOLDOWN)


@dataclass(frozen=True)
class ProviderStatistics:
    """Snapshot of the provider chains."""

    total_game_providers: int
    available_game_providers: int
    total_software_providers: int
    available_software_providers: int
    game_providers: tuple[str, ...]
    software_providers: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_game_providers": self.total_game_providers,
            "available_game_providers": self.available_game_providers,
            "total_software_providers": self.total_software_providers,
            "available_software_providers": self.available_software_providers,
            "game_providers": list(self.game_providers),
            "software_providers": list(self.software_providers),
        }


@dataclass
class EnrichmentProgress:
    """Tracks progress of an enrichment run."""

    total: int
    completed: int = 0
    enriched: int = 0
    failed: int = 0
    skipped: int = 0
    current_name: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def percentage(self) -> float:
        """Get completion percentage."""
        if self.total == 0:
            return 100.0
        return (self.completed / self.total) * 100

    @property
    def elapsed_seconds(self) -> float:
        """Get elapsed time in seconds."""
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()


@dataclass
class EnrichmentRunResult:
    """Result of a complete enrichment run."""

    run_id: UUID
    started_at: datetime
    completed_at: datetime
    total: int
    enriched: int
    failed: int
    skipped: int
    provider_wins: dict[str, int]
    errors: list[dict[str, Any]]

    @property
    def success_rate(self) -> float:
        """Enriched entries as a percentage of attempted (non-skipped) entries."""
        attempted = self.total - self.skipped
        if attempted <= 0:
            return 100.0
        return (self.enriched / attempted) * 100

    @property
    def duration_seconds(self) -> float:
        """Get total duration in seconds."""
        return (self.completed_at - self.started_at).total_seconds()


def metadata_fields(
    entry: ReferenceEntry,
    result: MetadataResult,
    provider_name: str,
    now: datetime,
) -> dict[str, Any]:
    """
    Catalog fields to write for an accepted provider result.

    Publisher is only filled when the entry has none; descriptive
    fields are only overwritten with non-empty values.
    """
    fields: dict[str, Any] = {
        "metadata_source": provider_name,
        "last_enriched_date": now,
        "last_enrichment_attempt": now,
    }
    if result.publisher and not entry.publisher:
        fields["publisher"] = result.publisher
    if result.description and result.description.strip():
        fields["description"] = result.description
    if result.genres:
        fields["genres"] = ", ".join(result.genres)
    if result.developers:
        fields["developers"] = ", ".join(result.developers)
    if result.release_date is not None:
        fields["release_date"] = result.release_date

    cover = result.icon_url or result.background_image_url
    if cover:
        fields["cover_image_url"] = cover

    metadata = entry.metadata or EntryMetadata()
    update: dict[str, Any] = {}
    if result.rating is not None:
        update["rating"] = result.rating
    if result.background_image_url:
        update["background_image"] = result.background_image_url
    if result.website_url:
        update["website_url"] = result.website_url

    extras = dict(metadata.extras)
    for key, value in result.additional_data.items():
        if not value:
            continue
        if key in PROMOTED_KEYS:
            update[PROMOTED_KEYS[key]] = value
        else:
            extras[key] = value
    update["extras"] = extras

    fields["metadata"] = metadata.model_copy(update=update)
    return fields


class EnrichmentOrchestrator:
    """
    Enriches catalog entries from external metadata providers.

    Example:
        >>> orchestrator = EnrichmentOrchestrator(store, create_default_registry())
        >>> success, provider = await orchestrator.enrich(entry)
    """

    def __init__(
        self,
        store: CatalogStore,
        registry: ProviderRegistry,
        *,
        settings: Settings | None = None,
        manager: CatalogManager | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._registry = registry
        config = self._settings.enrichment
        self._manager = manager or CatalogManager(
            cooldown_hours=config.cooldown_hours,
            max_age_days=config.max_age_days,
        )
        self._max_concurrency = config.max_concurrency
        self._batch_delay = config.batch_delay_seconds
        self._call_timeout = self._settings.providers.timeout_seconds
        self._logger = get_logger(__name__, component="enrichment_orchestrator")

    # =========================================================================
    # Single entry
    # =========================================================================

    async def enrich(self, item: ReferenceEntry | None, *, force: bool = False) -> EnrichmentOutcome:
        """
        Enrich one catalog entry.

        Args:
            item: Entry to enrich
            force: Ignore the cool-down window

        Returns:
            EnrichmentOutcome: (True, provider_name) on a match, (False, None) otherwise
        """
        if item is None or not item.name or not item.name.strip():
            self._logger.debug("Rejected entry without a name")
            return EnrichmentOutcome(False, skipped_reason=SKIP_INVALID)

        # Gate on the stored row; the caller's snapshot may predate earlier enrichments
        stored = self._store.find_by_external_id(item.source, item.external_id)
        if stored is not None:
            item = stored

        log = self._logger.bind(entry_id=item.id, name=item.name, source=item.source)

        if not force and self._manager.is_in_cooldown(item):
            log.debug("Entry in cool-down, skipping")
            return EnrichmentOutcome(False, skipped_reason=SKIP_COOLDOWN)

        partition = classify(item)
        match = await self._walk(item, partition)
        now = utc_now()

        if match is not None:
            provider, result = match
            write = self._store.upsert(
                item.source,
                item.external_id,
                metadata_fields(item, result, provider.name, now),
                changed_by=CHANGED_BY,
            )
            if not write.ok:
                log.error("Failed to store enrichment", error=str(write.error))
                return EnrichmentOutcome(False, skipped_reason=STORAGE_FAILURE)

            log.info(
                "Entry enriched",
                provider=provider.name,
                confidence=round(result.confidence, 3),
                changed=write.changed,
            )
            return EnrichmentOutcome(True, provider.name)

        write = self._store.upsert(
            item.source,
            item.external_id,
            {"last_enrichment_attempt": now},
            changed_by=CHANGED_BY,
        )
        if not write.ok:
            log.error("Failed to record enrichment attempt", error=str(write.error))
            return EnrichmentOutcome(False, skipped_reason=STORAGE_FAILURE)

        log.info("No provider matched", partition=partition.value)
        return EnrichmentOutcome(False, skipped_reason=NO_MATCH)

    async def _walk(
        self, item: ReferenceEntry, partition: Partition
    ) -> tuple[MetadataProvider, MetadataResult] | None:
        """First provider result that meets that provider's confidence threshold."""
        for provider in self._registry.chain(partition):
            if not provider.is_available():
                self._logger.debug("Provider unavailable, skipping", provider=provider.name)
                continue

            result = await self._query(provider, item, partition)
            if result is None:
                continue
            if result.confidence >= provider.min_confidence:
                return provider, result

            self._logger.debug(
                "Result below confidence threshold",
                provider=provider.name,
                confidence=round(result.confidence, 3),
                threshold=provider.min_confidence,
            )
        return None

    async def _query(
        self, provider: MetadataProvider, item: ReferenceEntry, partition: Partition
    ) -> MetadataResult | None:
        """Ask one provider, trying the most specific lookup first."""
        if partition == Partition.GAME:
            app_id = steam_app_id(item)
            if app_id is not None and isinstance(provider, SteamLookupProvider):
                result = await self._call(provider, provider.search_by_steam_app_id(app_id))
                if result is not None and result.confidence >= provider.min_confidence:
                    return result
        elif item.publisher:
            result = await self._call(
                provider, provider.search_by_name_and_publisher(item.name, item.publisher)
            )
            if result is not None and result.confidence >= provider.min_confidence:
                return result

        return await self._call(provider, provider.search_by_name(item.name))

    async def _call(
        self, provider: MetadataProvider, lookup: Awaitable[MetadataResult | None]
    ) -> MetadataResult | None:
        try:
            return await asyncio.wait_for(lookup, self._call_timeout)
        except asyncio.TimeoutError:
            self._logger.warning("Provider timed out", provider=provider.name)
        except Exception as e:
            self._logger.error(
                "Provider raised",
                provider=provider.name,
                error=str(e),
                error_type=type(e).__name__,
            )
        return None

    # =========================================================================
    # Batches
    # =========================================================================

    async def enrich_batch(
        self,
        items: Iterable[ReferenceEntry],
        *,
        on_progress: Callable[[EnrichmentProgress], None] | None = None,
        force: bool = False,
    ) -> EnrichmentRunResult:
        """
        Enrich many entries with bounded concurrency.

        Cancelling the run abandons entries still in flight; entries
        already written keep their results.
        """
        items = list(items)
        run_id = uuid4()
        started_at = datetime.now(timezone.utc)
        progress = EnrichmentProgress(total=len(items))
        provider_wins: Counter[str] = Counter()
        errors: list[dict[str, Any]] = []
        semaphore = asyncio.Semaphore(self._max_concurrency)
        # Repeats of one key run one after another so the cool-down sees the first write
        key_locks: defaultdict[tuple[str, str], asyncio.Lock] = defaultdict(asyncio.Lock)

        self._logger.info(
            "Starting enrichment",
            run_id=str(run_id),
            total=len(items),
            max_concurrency=self._max_concurrency,
            force=force,
        )

        async def worker(item: ReferenceEntry) -> None:
            async with semaphore:
                progress.current_name = item.name
                try:
                    async with key_locks[(item.source, item.external_id)]:
                        outcome = await self.enrich(item, force=force)
                except Exception as e:
                    progress.failed += 1
                    errors.append({"entry_id": item.id, "name": item.name, "error": str(e)})
                    self._logger.error("Enrichment failed", entry_id=item.id, error=str(e))
                else:
                    if outcome.success:
                        progress.enriched += 1
                        provider_wins[outcome.provider_name or "unknown"] += 1
                    elif outcome.skipped:
                        progress.skipped += 1
                    else:
                        progress.failed += 1
                        if outcome.skipped_reason == STORAGE_FAILURE:
                            errors.append(
                                {"entry_id": item.id, "name": item.name, "error": STORAGE_FAILURE}
                            )

                progress.completed += 1
                if on_progress:
                    on_progress(progress)

                if self._batch_delay:
                    await asyncio.sleep(self._batch_delay)

        await asyncio.gather(*(worker(item) for item in items))

        result = EnrichmentRunResult(
            run_id=run_id,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            total=len(items),
            enriched=progress.enriched,
            failed=progress.failed,
            skipped=progress.skipped,
            provider_wins=dict(provider_wins),
            errors=errors,
        )

        self._logger.info(
            "Enrichment complete",
            run_id=str(run_id),
            duration_seconds=round(result.duration_seconds, 2),
            enriched=result.enriched,
            failed=result.failed,
            skipped=result.skipped,
            success_rate=round(result.success_rate, 1),
        )
        return result

    async def run_sweep(
        self,
        max_age_days: int | None = None,
        limit: int | None = None,
        *,
        on_progress: Callable[[EnrichmentProgress], None] | None = None,
        force: bool = False,
    ) -> EnrichmentRunResult:
        """Enrich entries never enriched or enriched longer than max_age_days ago."""
        config = self._settings.enrichment
        entries = self._store.get_unenriched_entries(
            max_age_days=max_age_days or config.max_age_days,
            max_results=limit or config.sweep_limit,
        )
        return await self.enrich_batch(entries, on_progress=on_progress, force=force)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_provider_statistics(self) -> ProviderStatistics:
        """Provider counts and names per partition. Read-only."""
        games = self._registry.games
        software = self._registry.software
        return ProviderStatistics(
            total_game_providers=len(games),
            available_game_providers=sum(1 for p in games if p.is_available()),
            total_software_providers=len(software),
            available_software_providers=sum(1 for p in software if p.is_available()),
            game_providers=tuple(p.name for p in games),
            software_providers=tuple(p.name for p in software),
        )
