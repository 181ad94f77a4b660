"""
Contracts for installed-game detectors.

Detectors for individual launchers (Steam, GOG, Epic, ...) live outside
this package. They hand over InstalledGameRecord values; records that
fail validation never reach the catalog.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

# Names launchers report when the real title is not known
PLACEHOLDER_NAME = re.compile(
    r"^(app \d+|unknown app \d+|steam app \d+|appid \d+|unknown game|unknown)$",
    re.IGNORECASE,
)


class InstalledGameRecord(BaseModel):
    """A game found installed on this machine by a launcher-specific detector."""

    model_config = ConfigDict(frozen=True)

    game_id: str
    name: str | None = None
    platform: str
    install_dir: str | None = None
    executable_path: str | None = None
    icon_path: str | None = None
    shortcut_path: str | None = None
    size_on_disk: int | None = Field(default=None, ge=0)
    last_updated: datetime | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


def is_placeholder_name(name: str) -> bool:
    """True for names like "Unknown Game" or "App 12345"."""
    return bool(PLACEHOLDER_NAME.match(name.strip()))


def invalid_reason(record: InstalledGameRecord) -> str | None:
    """Why a record must be discarded, or None when it is usable."""
    if not record.game_id or not record.game_id.strip():
        return "missing game id"
    if not record.platform or not record.platform.strip():
        return "missing platform"
    if record.name is None or not record.name.strip():
        return "missing name"
    if is_placeholder_name(record.name):
        return "placeholder name"
    return None


def is_valid_record(record: InstalledGameRecord) -> bool:
    return invalid_reason(record) is None


@runtime_checkable
class GameStoreDetector(Protocol):
    """
    A launcher-specific installed-game detector.

    get_installed_games() scans afresh on every call; callers must not
    assume caching.
    """

    @property
    def platform_name(self) -> str:
        ...

    def is_installed(self) -> bool:
        """Whether the launcher itself is present on this machine."""
        ...

    def get_install_path(self) -> str | None:
        ...

    def get_installed_games(self) -> list[InstalledGameRecord]:
        ...

    def create_game_shortcut(self, game_id: str, name: str, output_dir: Path) -> Path | None:
        """Write a launcher shortcut for the game; returns its path."""
        ...
