"""Tests for the CSV importer."""

from datetime import datetime
from pathlib import Path

import pytest

from software_catalog.catalog.contracts import SoftwareType
from software_catalog.catalog.store import CatalogStore
from software_catalog.importer.csv_import import (
    MAX_ID_LENGTH,
    CatalogImporter,
    determine_category,
    generate_id,
    parse_release_date,
    split_list,
)

SOFTWARE_CSV = """Name,Company
Notepad++,Don Ho
Visual Studio Code,Microsoft Corporation
,Nobody
VLC media player,VideoLAN
"""

STEAM_CSV = """AppID,Name,Release date,Developers,Publishers,Genres,Windows,Mac,Linux
440,Team Fortress 2,"Oct 10, 2007",Valve,Valve,"Action,Free to Play",True,True,True
570,Dota 2,"Jul 9, 2013",Valve,Valve,"Action;Strategy",True,False,False
abc,Broken Row,,,,,,,
620,Portal 2,2011-04-18,Valve,"Valve,Electronic Arts",Puzzle,True,True,False
"""


def write(directory: Path, name: str, content: str) -> Path:
    path = directory / name
    path.write_text(content, encoding="utf-8")
    return path


class TestHelpers:
    """Tests for the import helpers."""

    def test_generate_id(self) -> None:
        assert generate_id("Notepad++", "Don Ho") == "notepad++-don-ho"
        assert generate_id("Node.js") == "nodejs"
        assert len(generate_id("x" * 500)) == MAX_ID_LENGTH

    @pytest.mark.parametrize(
        ("name", "category"),
        [
            ("Microsoft Visual Studio", "Development"),
            ("Microsoft Excel", "OfficeProductivity"),
            ("GIMP", "Design"),
            ("Mozilla Firefox", "Communication"),
            ("VLC media player", "Media"),
            ("Xbox Gaming Services", "Games"),
            ("7-Zip", "Other"),
        ],
    )
    def test_determine_category(self, name: str, category: str) -> None:
        assert determine_category(name) == category

    def test_split_list(self) -> None:
        assert split_list("Action; RPG ,Indie") == ["Action", "RPG", "Indie"]
        assert split_list("") == []
        assert split_list(None) == []

    def test_parse_release_date(self) -> None:
        assert parse_release_date("Oct 10, 2007") == datetime(2007, 10, 10)
        assert parse_release_date("2011-04-18") == datetime(2011, 4, 18)
        assert parse_release_date("Coming soon") is None
        assert parse_release_date("  ") is None


class TestCatalogImporter:
    """Tests for importing CSV files into the catalog."""

    def test_software_csv(self, store: CatalogStore, tmp_path: Path) -> None:
        path = write(tmp_path, "Software.csv", SOFTWARE_CSV)

        result = CatalogImporter(store).import_software_csv(path)

        assert result.success is True
        assert result.imported_count == 3
        assert result.skipped_count == 1
        entry = store.find_by_external_id("Software", "notepad++-don-ho")
        assert entry is not None
        assert entry.publisher == "Don Ho"
        assert entry.type == SoftwareType.APPLICATION

    def test_reimport_is_noop(self, store: CatalogStore, tmp_path: Path) -> None:
        path = write(tmp_path, "Software.csv", SOFTWARE_CSV)
        importer = CatalogImporter(store)
        importer.import_software_csv(path)
        version = store.current_version()

        again = importer.import_software_csv(path)

        assert again.imported_count == 0
        assert again.skipped_count == 4
        assert store.current_version() == version

    def test_steam_csv(self, store: CatalogStore, tmp_path: Path) -> None:
        path = write(tmp_path, "steam.csv", STEAM_CSV)

        result = CatalogImporter(store).import_steam_csv(path)

        assert result.success is True
        assert result.imported_count == 3
        assert result.skipped_count == 1

        tf2 = store.find_by_external_id("Steam", "440")
        assert tf2 is not None
        assert tf2.type == SoftwareType.GAME
        assert tf2.genres == "Action, Free to Play"
        assert tf2.release_date == datetime(2007, 10, 10)
        assert tf2.metadata is not None
        assert tf2.metadata.extras == {"platforms": "windows, mac, linux"}

        portal = store.find_by_external_id("Steam", "620")
        assert portal is not None
        assert portal.publisher == "Valve"

    def test_steam_limit(self, store: CatalogStore, tmp_path: Path) -> None:
        path = write(tmp_path, "steam.csv", STEAM_CSV)

        result = CatalogImporter(store).import_steam_csv(path, max_entries=1)

        assert result.imported_count == 1
        assert len(store.get_all_entries()) == 1

    def test_missing_file(self, store: CatalogStore, tmp_path: Path) -> None:
        result = CatalogImporter(store).import_software_csv(tmp_path / "Software.csv")

        assert result.success is False
        assert result.error_message is not None
        assert "File not found" in result.error_message

    def test_empty_file(self, store: CatalogStore, tmp_path: Path) -> None:
        path = write(tmp_path, "Software.csv", "")

        result = CatalogImporter(store).import_software_csv(path)

        assert result.success is False
        assert result.error_message == "CSV file is empty or has no header row"

    def test_import_all_refreshes_totals(self, store: CatalogStore, tmp_path: Path) -> None:
        write(tmp_path, "Software.csv", SOFTWARE_CSV)
        write(tmp_path, "steam.csv", STEAM_CSV)

        results = CatalogImporter(store).import_all(tmp_path)

        assert [r.success for r in results] == [True, True]
        assert store.refresh_totals() == (6, 3)

    def test_import_all_empty_directory(self, store: CatalogStore, tmp_path: Path) -> None:
        assert CatalogImporter(store).import_all(tmp_path) == []
