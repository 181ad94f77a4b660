"""
Game / software classification of catalog entries.

An entry is a game when its type says so, when it sits in the Games
category, or when its source is a known game store or launcher.
"""

from software_catalog.catalog.contracts import ReferenceEntry, SoftwareType
from software_catalog.providers.base import Partition

GAMES_CATEGORY = "Games"

GAME_SOURCE_KEYWORDS = (
    "steam",
    "gog",
    "epic",
    "amazon games",
    "ea app",
    "origin",
    "ubisoft",
    "battle.net",
    "battlenet",
    "xbox",
)


def is_game_source(source: str | None) -> bool:
    """True when the source platform is a game store or launcher."""
    if not source:
        return False
    lowered = source.lower()
    return any(keyword in lowered for keyword in GAME_SOURCE_KEYWORDS)


def classify(entry: ReferenceEntry) -> Partition:
    """Provider partition that should enrich this entry."""
    if entry.type == SoftwareType.GAME:
        return Partition.GAME
    if entry.category.strip().lower() == GAMES_CATEGORY.lower():
        return Partition.GAME
    if is_game_source(entry.source):
        return Partition.GAME
    return Partition.SOFTWARE


def steam_app_id(entry: ReferenceEntry) -> int | None:
    """Steam app id of a Steam entry, or None."""
    if entry.source.strip().lower() != "steam":
        return None
    external_id = entry.external_id.strip()
    if not external_id.isdigit():
        return None
    app_id = int(external_id)
    return app_id if app_id > 0 else None
