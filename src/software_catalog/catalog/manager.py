"""
Catalog Manager.

Classifies entries by enrichment state, decides which entries are due
for a sweep, and summarizes the catalog for diagnostics.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import Enum

import structlog

from software_catalog.catalog.contracts import ReferenceEntry
from software_catalog.catalog.models import utc_now

logger = structlog.get_logger(__name__)


class EnrichmentState(str, Enum):
    """
    Where an entry stands in the enrichment lifecycle.

    NEVER_ATTEMPTED -> ATTEMPTED_FAILED -> ENRICHED, and ENRICHED
    becomes STALE once older than the re-enrichment window.
    """

    NEVER_ATTEMPTED = "never_attempted"
    ATTEMPTED_FAILED = "attempted_failed"
    ENRICHED = "enriched"
    STALE = "stale"


class CatalogManager:
    """
    Enrichment scheduling rules for catalog entries.

    - Entries attempted within the cool-down window are left alone,
      unless they have never been enriched.
    - Enriched entries are revisited after max_age_days.
    """

    DEFAULT_COOLDOWN_HOURS = 24.0
    DEFAULT_MAX_AGE_DAYS = 30

    def __init__(
        self,
        cooldown_hours: float = DEFAULT_COOLDOWN_HOURS,
        max_age_days: int = DEFAULT_MAX_AGE_DAYS,
    ) -> None:
        self.cooldown = timedelta(hours=cooldown_hours)
        self.max_age = timedelta(days=max_age_days)

    def classify(self, entry: ReferenceEntry, now: datetime | None = None) -> EnrichmentState:
        """Enrichment state of one entry."""
        now = now or utc_now()

        if entry.last_enriched_date is None:
            if entry.last_enrichment_attempt is None:
                return EnrichmentState.NEVER_ATTEMPTED
            return EnrichmentState.ATTEMPTED_FAILED

        if now - entry.last_enriched_date > self.max_age:
            return EnrichmentState.STALE
        return EnrichmentState.ENRICHED

    def is_in_cooldown(self, entry: ReferenceEntry, now: datetime | None = None) -> bool:
        """
        True when the entry was attempted recently and already carries metadata.

        Never-enriched entries are never held back.
        """
        if entry.last_enrichment_attempt is None or entry.last_enriched_date is None:
            return False
        now = now or utc_now()
        return now - entry.last_enrichment_attempt < self.cooldown

    def select_for_enrichment(
        self,
        entries: Iterable[ReferenceEntry],
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[ReferenceEntry]:
        """
        Entries due for enrichment, never-attempted first, then failed, then stale.

        Args:
            entries: Candidate entries
            limit: Maximum number of entries to return
            now: Reference time (default: current UTC time)

        Returns:
            Ordered list of entries to enrich
        """
        now = now or utc_now()
        order = {
            EnrichmentState.NEVER_ATTEMPTED: 0,
            EnrichmentState.ATTEMPTED_FAILED: 1,
            EnrichmentState.STALE: 2,
        }

        due: list[tuple[int, datetime, ReferenceEntry]] = []
        for entry in entries:
            state = self.classify(entry, now)
            if state not in order:
                continue
            if state == EnrichmentState.ATTEMPTED_FAILED and (
                entry.last_enrichment_attempt
                and now - entry.last_enrichment_attempt < self.cooldown
            ):
                continue
            due.append((order[state], entry.last_enriched_date or datetime.min, entry))

        due.sort(key=lambda item: (item[0], item[1], item[2].id))
        selected = [entry for _, _, entry in due]
        if limit is not None:
            selected = selected[:limit]

        logger.info("Selected entries for enrichment", candidates=len(due), selected=len(selected))
        return selected

    def get_catalog_stats(self, entries: Iterable[ReferenceEntry]) -> dict:
        """
        Get statistics about the catalog.

        Returns:
            Dict with totals per type, source, enrichment state and metadata source
        """
        now = utc_now()
        by_type: Counter[str] = Counter()
        by_source: Counter[str] = Counter()
        by_state: Counter[str] = Counter({state.value: 0 for state in EnrichmentState})
        by_provider: Counter[str] = Counter()
        total = 0

        for entry in entries:
            total += 1
            by_type[entry.type.value] += 1
            by_source[entry.source] += 1
            by_state[self.classify(entry, now).value] += 1
            if entry.metadata_source:
                by_provider[entry.metadata_source] += 1

        enriched = by_state[EnrichmentState.ENRICHED.value] + by_state[EnrichmentState.STALE.value]
        return {
            "total": total,
            "by_type": dict(by_type),
            "by_source": dict(by_source),
            "by_state": dict(by_state),
            "by_metadata_source": dict(by_provider),
            "enriched_ratio": round(enriched / total, 3) if total else 0.0,
        }

    def estimate_enrichment_time(
        self,
        entry_count: int,
        max_concurrency: int = 4,
        seconds_per_entry: float = 2.5,
    ) -> dict:
        """
        Estimate wall time for enriching entry_count entries.

        Args:
            entry_count: Number of entries to enrich
            max_concurrency: Parallel worker slots
            seconds_per_entry: Average provider walk duration per entry

        Returns:
            Dict with time estimates
        """
        seconds = entry_count * seconds_per_entry / max(max_concurrency, 1)
        minutes = seconds / 60

        return {
            "entry_count": entry_count,
            "max_concurrency": max_concurrency,
            "estimated_seconds": round(seconds, 1),
            "estimated_minutes": round(minutes, 1),
            "estimated_hours": round(minutes / 60, 2),
        }
