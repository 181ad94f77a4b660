"""Tests for provider name cleaning, confidence rules and output parsers."""

import pytest

from software_catalog.providers.cnet import parse_search_page
from software_catalog.providers.rawg import clean_game_name, name_similarity
from software_catalog.providers.wikipedia import title_confidence
from software_catalog.providers.winget import (
    clean_software_name,
    match_confidence,
    parse_search_output,
    parse_show_output,
)


class TestGameNames:
    """Tests for RAWG title cleaning."""

    @pytest.mark.parametrize(
        ("raw", "cleaned"),
        [
            ("Portal 2 - Game of the Year Edition", "Portal 2"),
            ("Doom (2016)", "Doom"),
            ("Fallout 3 GOTY", "Fallout 3"),
            ("Skyrim Special Edition", "Skyrim Special Edition"),
            ("Blade Runner (1882)", "Blade Runner (1882)"),
            ("  Hades  ", "Hades"),
        ],
    )
    def test_clean_game_name(self, raw: str, cleaned: str) -> None:
        assert clean_game_name(raw) == cleaned

    def test_similarity(self) -> None:
        assert name_similarity("Hades", "HADES") == 1.0
        assert name_similarity("Hades", "") == 0.0
        assert 0.0 < name_similarity("Hades", "Hades II") < 1.0


class TestSoftwareNames:
    """Tests for winget name cleaning and confidence."""

    @pytest.mark.parametrize(
        ("raw", "cleaned"),
        [
            ("7-Zip 23.01 (x64)", "7-Zip"),
            ("Python 3.12.1", "Python"),
            ("Git v2.43.0", "Git"),
            ("Mozilla Firefox (x64 en-US)", "Mozilla Firefox (x64 en-US)"),
            ("Notepad++", "Notepad++"),
        ],
    )
    def test_clean_software_name(self, raw: str, cleaned: str) -> None:
        assert clean_software_name(raw) == cleaned

    def test_match_confidence(self) -> None:
        assert match_confidence("7-Zip", "7-zip") == 1.0
        assert match_confidence("Visual Studio Code", "Visual Studio") == 0.8
        assert match_confidence("Paint.NET", "GIMP") == 0.6

    def test_title_confidence(self) -> None:
        assert title_confidence("GIMP", "gimp") == 0.9
        assert title_confidence("GIMP (software)", "GIMP") == 0.7
        assert title_confidence("Raster graphics editor", "GIMP") == 0.5


class TestWingetParsing:
    """Tests for winget table and key/value parsing."""

    def test_search_output_names_with_spaces(self) -> None:
        output = (
            "Name               Id                         Version  Source\n"
            "---------------------------------------------------------------\n"
            "Visual Studio Code Microsoft.VisualStudioCode 1.85.1   winget\n"
            "VS Code Insiders   Microsoft.VSCode.Insiders  1.86.0   winget\n"
        )

        packages = parse_search_output(output)

        assert [p.name for p in packages] == ["Visual Studio Code", "VS Code Insiders"]
        assert packages[0].package_id == "Microsoft.VisualStudioCode"
        assert packages[0].version == "1.85.1"

    def test_search_output_without_table(self) -> None:
        assert parse_search_output("No package found matching input criteria.") == []
        assert parse_search_output("") == []

    def test_show_output(self) -> None:
        details = parse_show_output(
            "Found 7-Zip [7zip.7zip]\n"
            "Version: 23.01\n"
            "Publisher: Igor Pavlov\n"
            "Homepage: https://www.7-zip.org/\n"
            "Tags:\n"
        )

        assert details == {
            "version": "23.01",
            "publisher": "Igor Pavlov",
            "homepage": "https://www.7-zip.org/",
        }


class TestCnetParsing:
    """Tests for the CNET search page parser."""

    def test_heading_fallback(self) -> None:
        html = """
        <html><body>
          <h2>Top downloads</h2>
          <h3>GIMP 2.10 for Windows</h3>
          <p>Free and open-source raster graphics editor.</p>
        </body></html>
        """

        result = parse_search_page(html, "GIMP")

        assert result is not None
        assert result.confidence == 0.6
        assert result.name == "GIMP 2.10 for Windows"
        assert result.description == "Free and open-source raster graphics editor."

    def test_json_ld_preferred_over_heading(self) -> None:
        html = """
        <html><head><script type="application/ld+json">
        [{"@type": ["SoftwareApplication"], "name": "GIMP", "url": "https://download.cnet.com/gimp"}]
        </script></head>
        <body><h1>GIMP</h1></body></html>
        """

        result = parse_search_page(html, "GIMP")

        assert result is not None
        assert result.confidence == 0.8
        assert result.website_url == "https://download.cnet.com/gimp"

    def test_malformed_json_ld_and_no_heading(self) -> None:
        html = """
        <script type="application/ld+json">{broken</script>
        <h1>Something else</h1>
        """

        assert parse_search_page(html, "GIMP") is None
