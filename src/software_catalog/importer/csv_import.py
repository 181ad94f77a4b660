"""
Batch import of reference data from CSV files.

Input directory layout:
    Software.csv   Name, Company
    steam.csv      AppID, Name, Release date, Developers, Publishers,
                   Genres, Windows, Mac, Linux, ...

Every row goes through CatalogStore.upsert, so imports are versioned
and audited like any other write and re-running an import is a no-op.
"""

import csv
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from software_catalog.catalog.contracts import EntryMetadata, SoftwareType
from software_catalog.catalog.store import CatalogStore

SOFTWARE_FILE = "Software.csv"
STEAM_FILE = "steam.csv"
SOFTWARE_SOURCE = "Software"
STEAM_SOURCE = "Steam"
DEFAULT_MAX_STEAM_GAMES = 10_000
MAX_ID_LENGTH = 200

# First matching rule wins
CATEGORY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Development", ("visual studio", "intellij", "eclipse", "vscode", "compiler", "sdk")),
    ("OfficeProductivity", ("office", "word", "excel", "powerpoint")),
    ("Design", ("photoshop", "illustrator", "designer", "gimp", "blender")),
    ("Communication", ("chrome", "firefox", "edge", "browser", "teams", "slack", "discord")),
    ("Media", ("player", "vlc", "spotify", "media")),
    ("Games", ("game", "gaming")),
)

RELEASE_DATE_FORMATS = ("%Y-%m-%d", "%b %d, %Y", "%d %b, %Y", "%B %d, %Y", "%b %Y", "%Y")

logger = structlog.get_logger(__name__)


def generate_id(name: str, company: str | None = None) -> str:
    """
    Stable slug for a software entry.

    Example:
        >>> generate_id("Notepad++", "Don Ho")
        'notepad++-don-ho'
    """

    def slug(value: str) -> str:
        return value.strip().lower().replace(" ", "-").replace(".", "").replace(",", "")

    identifier = slug(name)
    if company and company.strip():
        identifier += "-" + slug(company)
    return identifier[:MAX_ID_LENGTH]


def determine_category(name: str) -> str:
    lowered = name.lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "Other"


def split_list(value: str | None) -> list[str]:
    """Split a comma or semicolon separated cell."""
    if not value:
        return []
    return [part.strip() for part in re.split(r"[,;]", value) if part.strip()]


def parse_release_date(value: str | None) -> datetime | None:
    if not value or not value.strip():
        return None
    text = value.strip()
    for fmt in RELEASE_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def _is_true(value: str | None) -> bool:
    return (value or "").strip().lower() in {"true", "1", "yes"}


@dataclass
class ImportResult:
    """Outcome of importing one CSV file."""

    source: str
    success: bool = False
    imported_count: int = 0
    skipped_count: int = 0
    error_message: str | None = None


class CatalogImporter:
    """
    Imports Software.csv and steam.csv into the catalog.

    Example:
        >>> importer = CatalogImporter(CatalogStore.open("master_catalog.db"))
        >>> results = importer.import_all(Path("_software_list"))
    """

    def __init__(self, store: CatalogStore, *, imported_by: str = "importer") -> None:
        self._store = store
        self._imported_by = imported_by

    def import_all(
        self, directory: Path, max_steam_games: int = DEFAULT_MAX_STEAM_GAMES
    ) -> list[ImportResult]:
        """Import whichever of the known files exist in directory."""
        results: list[ImportResult] = []

        software_path = directory / SOFTWARE_FILE
        if software_path.is_file():
            results.append(self.import_software_csv(software_path))

        steam_path = directory / STEAM_FILE
        if steam_path.is_file():
            results.append(self.import_steam_csv(steam_path, max_entries=max_steam_games))

        if results:
            total_software, total_games = self._store.refresh_totals(
                description=f"Imported from {directory}"
            )
            logger.info(
                "Catalog totals refreshed",
                total_software=total_software,
                total_games=total_games,
                version=self._store.current_version(),
            )
        return results

    def import_software_csv(self, path: Path) -> ImportResult:
        """Import Software.csv (Name, Company)."""
        result = ImportResult(source=str(path))

        def rows() -> Iterator[tuple[str, str, dict[str, Any]] | None]:
            for row in self._read_rows(path):
                name = (row.get("name") or "").strip()
                if not name:
                    yield None
                    continue
                company = (row.get("company") or "").strip() or None
                yield (
                    SOFTWARE_SOURCE,
                    generate_id(name, company),
                    {
                        "name": name,
                        "publisher": company,
                        "category": determine_category(name),
                        "type": SoftwareType.APPLICATION,
                    },
                )

        return self._run(path, rows(), result, limit=0)

    def import_steam_csv(self, path: Path, max_entries: int = 0) -> ImportResult:
        """
        Import steam.csv.

        Args:
            path: CSV file with a header row
            max_entries: Stop after this many imported rows (0 = no limit)
        """
        result = ImportResult(source=str(path))

        def rows() -> Iterator[tuple[str, str, dict[str, Any]] | None]:
            for row in self._read_rows(path):
                app_id = (row.get("appid") or "").strip()
                name = (row.get("name") or "").strip()
                if not app_id.isdigit() or not name:
                    yield None
                    continue

                publishers = split_list(row.get("publishers"))
                platforms = [p for p in ("windows", "mac", "linux") if _is_true(row.get(p))]
                metadata = EntryMetadata(extras={"platforms": ", ".join(platforms)} if platforms else {})
                yield (
                    STEAM_SOURCE,
                    app_id,
                    {
                        "name": name,
                        "type": SoftwareType.GAME,
                        "category": "Games",
                        "publisher": publishers[0] if publishers else None,
                        "developers": ", ".join(split_list(row.get("developers"))) or None,
                        "genres": ", ".join(split_list(row.get("genres"))) or None,
                        "release_date": parse_release_date(row.get("release date")),
                        "metadata": metadata,
                    },
                )

        return self._run(path, rows(), result, limit=max_entries)

    def _read_rows(self, path: Path) -> Iterator[dict[str, str]]:
        """Rows keyed by lower-cased header names."""
        with path.open(newline="", encoding="utf-8-sig") as handle:
            reader = csv.DictReader(handle)
            if not reader.fieldnames:
                raise ValueError("CSV file is empty or has no header row")
            for row in reader:
                yield {(key or "").strip().lower(): value for key, value in row.items() if key}

    def _run(
        self,
        path: Path,
        rows: Iterator[tuple[str, str, dict[str, Any]] | None],
        result: ImportResult,
        *,
        limit: int,
    ) -> ImportResult:
        if not path.is_file():
            result.error_message = f"File not found: {path}"
            logger.error("Import failed", path=str(path), error=result.error_message)
            return result

        logger.info("Starting import", path=str(path), limit=limit or None)
        try:
            for row in rows:
                if limit and result.imported_count >= limit:
                    break
                if row is None:
                    result.skipped_count += 1
                    continue

                source, external_id, fields = row
                write = self._store.upsert(source, external_id, fields, changed_by=self._imported_by)
                if not write.ok:
                    logger.warning(
                        "Row not imported",
                        source=source,
                        external_id=external_id,
                        error=str(write.error),
                    )
                    result.skipped_count += 1
                elif write.changed:
                    result.imported_count += 1
                    if result.imported_count % 1000 == 0:
                        logger.info("Import progress", path=str(path), imported=result.imported_count)
                else:
                    result.skipped_count += 1
        except (OSError, ValueError, csv.Error) as e:
            result.error_message = str(e)
            logger.error("Import failed", path=str(path), error=str(e))
            return result

        result.success = True
        logger.info(
            "Import complete",
            path=str(path),
            imported=result.imported_count,
            skipped=result.skipped_count,
        )
        return result
