"""
Metadata enrichment of catalog entries.

Classifies entries as games or software and walks the matching
provider chain until one provider returns a confident match.
"""

from software_catalog.enrichment.classifier import classify, is_game_source, steam_app_id
from software_catalog.enrichment.orchestrator import (
    EnrichmentOrchestrator,
    EnrichmentOutcome,
    EnrichmentProgress,
    EnrichmentRunResult,
    ProviderStatistics,
    metadata_fields,
)

__all__ = [
    "EnrichmentOrchestrator",
    "EnrichmentOutcome",
    "EnrichmentProgress",
    "EnrichmentRunResult",
    "ProviderStatistics",
    "classify",
    "is_game_source",
    "metadata_fields",
    "steam_app_id",
]
