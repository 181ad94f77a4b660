"""Tests for syncing detector output into the catalog."""

from dataclasses import dataclass, field
from pathlib import Path

from software_catalog.catalog.contracts import SoftwareType
from software_catalog.catalog.store import CatalogStore
from software_catalog.detection.contracts import GameStoreDetector, InstalledGameRecord
from software_catalog.detection.sync import DetectionSync


@dataclass
class StubDetector:
    platform: str
    games: list[InstalledGameRecord] = field(default_factory=list)
    installed: bool = True
    error: Exception | None = None

    @property
    def platform_name(self) -> str:
        return self.platform

    def is_installed(self) -> bool:
        return self.installed

    def get_install_path(self) -> str | None:
        return None

    def get_installed_games(self) -> list[InstalledGameRecord]:
        if self.error is not None:
            raise self.error
        return self.games

    def create_game_shortcut(self, game_id: str, name: str, output_dir: Path) -> Path | None:
        return None


def record(game_id: str, name: str | None, platform: str = "Steam", **extra: object) -> InstalledGameRecord:
    return InstalledGameRecord(game_id=game_id, name=name, platform=platform, **extra)


class TestDetectionSync:
    """Tests for DetectionSync.sync."""

    def test_stub_satisfies_protocol(self) -> None:
        assert isinstance(StubDetector("Steam"), GameStoreDetector)

    def test_valid_records_become_games(self, store: CatalogStore) -> None:
        detector = StubDetector(
            "Steam",
            [
                record("440", "Team Fortress 2", install_dir="C:/Steam/tf2", size_on_disk=1024),
                record("570", "Dota 2"),
            ],
        )

        result = DetectionSync(store).sync([detector])

        assert result.detected == 2
        assert result.synced == 2
        assert len(result.created_entry_ids) == 2
        entry = store.find_by_external_id("Steam", "440")
        assert entry is not None
        assert entry.type == SoftwareType.GAME
        assert entry.category == "Games"
        installed = store.get_installed(entry.id)
        assert installed is not None
        assert installed.install_location == "C:/Steam/tf2"
        assert installed.size_bytes == 1024
        assert store.get_change_log(entry.id)[0].changed_by == "detector:Steam"

    def test_invalid_records_discarded(self, store: CatalogStore) -> None:
        detector = StubDetector(
            "Epic",
            [record("a1", "Unknown Game", "Epic"), record("a2", None, "Epic"), record("a3", "Hades", "Epic")],
        )

        result = DetectionSync(store).sync([detector])

        assert result.detected == 3
        assert result.invalid == 2
        assert result.synced == 1
        assert [e.name for e in store.get_all_entries()] == ["Hades"]

    def test_resync_does_not_recreate(self, store: CatalogStore) -> None:
        detector = StubDetector("GOG", [record("1207658924", "The Witcher 3", "GOG")])
        sync = DetectionSync(store)

        first = sync.sync([detector])
        version = store.current_version()
        second = sync.sync([detector])

        assert len(first.created_entry_ids) == 1
        assert second.created_entry_ids == []
        assert second.synced == 1
        assert store.current_version() == version

    def test_failing_and_missing_launchers(self, store: CatalogStore) -> None:
        detectors = [
            StubDetector("Battle.net", installed=False, games=[record("x", "Overwatch", "Battle.net")]),
            StubDetector("Ubisoft", error=RuntimeError("registry unreadable")),
            StubDetector("Steam", [record("440", "Team Fortress 2")]),
        ]

        result = DetectionSync(store).sync(detectors)

        assert result.failed_detectors == ["Ubisoft"]
        assert result.synced == 1
        assert store.find_by_external_id("Battle.net", "x") is None
