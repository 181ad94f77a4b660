"""
Detector synchronization.

Turns detector output into catalog entries (Type Game, Category Games)
plus machine-local installed records.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from software_catalog.catalog.contracts import SoftwareType
from software_catalog.catalog.models import utc_now
from software_catalog.catalog.store import CatalogStore, StorageError
from software_catalog.detection.contracts import GameStoreDetector, InstalledGameRecord, invalid_reason
from software_catalog.logger import get_logger

GAMES_CATEGORY = "Games"


@dataclass
class SyncResult:
    """Result of one detector sweep."""

    detected: int = 0
    synced: int = 0
    invalid: int = 0
    created_entry_ids: list[int] = field(default_factory=list)
    failed_detectors: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)


class DetectionSync:
    """
    Upserts installed games reported by detectors into the catalog.

    Example:
        >>> result = DetectionSync(store).sync([steam_detector, gog_detector])
        >>> await orchestrator.enrich_batch(store.get_by_id(i) for i in result.created_entry_ids)
    """

    def __init__(self, store: CatalogStore) -> None:
        self._store = store
        self._logger = get_logger(__name__, component="detection_sync")

    def sync(self, detectors: Iterable[GameStoreDetector]) -> SyncResult:
        result = SyncResult()

        for detector in detectors:
            platform = detector.platform_name
            try:
                if not detector.is_installed():
                    self._logger.debug("Launcher not installed", platform=platform)
                    continue
                records = detector.get_installed_games()
            except Exception as e:
                self._logger.error("Detector failed", platform=platform, error=str(e))
                result.failed_detectors.append(platform)
                continue

            self._logger.info("Games detected", platform=platform, count=len(records))
            for record in records:
                result.detected += 1
                self._sync_record(record, result)

        self._logger.info(
            "Detection sync complete",
            detected=result.detected,
            synced=result.synced,
            invalid=result.invalid,
            created=len(result.created_entry_ids),
            failed_detectors=result.failed_detectors,
        )
        return result

    def _sync_record(self, record: InstalledGameRecord, result: SyncResult) -> None:
        reason = invalid_reason(record)
        if reason is not None:
            result.invalid += 1
            self._logger.debug(
                "Discarding detected game",
                platform=record.platform,
                game_id=record.game_id,
                reason=reason,
            )
            return

        write = self._store.upsert(
            record.platform,
            record.game_id,
            {
                "name": record.name,
                "type": SoftwareType.GAME,
                "category": GAMES_CATEGORY,
            },
            changed_by=f"detector:{record.platform}",
        )
        if not write.ok or write.entry is None:
            result.errors.append(
                {"platform": record.platform, "game_id": record.game_id, "error": str(write.error)}
            )
            return

        try:
            self._store.upsert_installed(
                write.entry.id,
                {
                    "install_location": record.install_dir,
                    "executable_path": record.executable_path,
                    "icon_path": record.icon_path,
                    "size_bytes": record.size_on_disk,
                    "install_date": record.last_updated,
                    "last_detected": utc_now(),
                },
            )
        except StorageError as e:
            result.errors.append(
                {"platform": record.platform, "game_id": record.game_id, "error": str(e)}
            )
            return

        result.synced += 1
        if write.created:
            result.created_entry_ids.append(write.entry.id)
