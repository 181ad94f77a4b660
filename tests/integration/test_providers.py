"""Integration tests for metadata providers with mocked HTTP responses."""

from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from software_catalog.config import RawgAPIConfig, Settings
from software_catalog.providers import (
    CnetProvider,
    MetadataProvider,
    RawgProvider,
    SteamLookupProvider,
    WikipediaProvider,
    WingetProvider,
    create_default_registry,
)
from software_catalog.providers.base import Partition, ProviderError

RAWG_GAMES = "https://api.rawg.io/api/games"
WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"
CNET_SEARCH = "https://www.cnet.com/search/"


@pytest.fixture
def rawg_search_response() -> dict[str, Any]:
    """RAWG /games search payload."""
    return {
        "count": 1,
        "results": [
            {
                "id": 3328,
                "name": "The Witcher 3: Wild Hunt",
                "released": "2015-05-18",
                "background_image": "https://media.rawg.io/witcher3.jpg",
                "rating": 4.66,
                "genres": [{"id": 4, "name": "Action"}, {"id": 5, "name": "RPG"}],
            }
        ],
    }


@pytest.fixture
def rawg_details_response() -> dict[str, Any]:
    """RAWG /games/{id} payload."""
    return {
        "id": 3328,
        "name": "The Witcher 3: Wild Hunt",
        "description_raw": "The third game in a series of open world RPGs.",
        "website": "https://thewitcher.com/en/witcher3",
        "metacritic": 92,
        "playtime": 46,
        "developers": [{"name": "CD PROJEKT RED"}],
        "publishers": [{"name": "CD PROJEKT RED"}, {"name": "Warner Bros."}],
        "esrb_rating": {"id": 4, "name": "Mature"},
    }


def winget_row(name: str, package_id: str, version: str, match: str = "", source: str = "winget") -> str:
    return f"{name:<19}{package_id:<27}{version:<10}{match:<15}{source}"


WINGET_SEARCH = "\n".join(
    [
        winget_row("Name", "Id", "Version", "Match", "Source"),
        "-" * 76,
        winget_row("Notepad++", "Notepad++.Notepad++", "8.6.2"),
        winget_row("Notepad Next", "dail8859.NotepadNext", "0.7", "Tag: notepad"),
        "",
    ]
)

WINGET_SHOW = """Found Notepad++ [Notepad++.Notepad++]
Version: 8.6.2
Publisher: Notepad++ Team
Publisher Url: https://notepad-plus-plus.org/
Description: Notepad++ is a free source code editor and Notepad replacement.
Homepage: https://notepad-plus-plus.org/
License: GPL-2.0-only
"""


class TestRawgProvider:
    """Integration tests for the RAWG provider."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_search_with_details(
        self,
        settings: Settings,
        rawg_search_response: dict[str, Any],
        rawg_details_response: dict[str, Any],
    ) -> None:
        """Edition suffix is stripped and details are merged."""
        search = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json=rawg_search_response))
        respx.get(f"{RAWG_GAMES}/3328").mock(return_value=httpx.Response(200, json=rawg_details_response))

        async with RawgProvider(settings) as provider:
            result = await provider.search_by_name("The Witcher 3: Wild Hunt - Game of the Year Edition")

        assert result is not None
        assert result.source == "RAWG"
        assert result.confidence == pytest.approx(1.0)
        assert result.genres == ["Action", "RPG"]
        assert result.developers == ["CD PROJEKT RED"]
        assert result.publisher == "CD PROJEKT RED"
        assert result.website_url == "https://thewitcher.com/en/witcher3"
        assert result.release_date is not None and result.release_date.year == 2015
        assert result.additional_data["rawg_id"] == "3328"
        assert result.additional_data["esrb_rating"] == "Mature"

        params = search.calls.last.request.url.params
        assert params["search"] == "The Witcher 3: Wild Hunt"
        assert params["key"] == "test-rawg-key"

    @respx.mock
    @pytest.mark.asyncio
    async def test_details_failure_keeps_search_result(
        self, settings: Settings, rawg_search_response: dict[str, Any]
    ) -> None:
        respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json=rawg_search_response))
        respx.get(f"{RAWG_GAMES}/3328").mock(return_value=httpx.Response(404))

        async with RawgProvider(settings) as provider:
            result = await provider.search_by_name("The Witcher 3: Wild Hunt")

        assert result is not None
        assert result.description is None
        assert "rawg_id" not in result.additional_data

    @respx.mock
    @pytest.mark.asyncio
    async def test_dissimilar_name_has_low_confidence(self, settings: Settings) -> None:
        respx.get(RAWG_GAMES).mock(
            return_value=httpx.Response(200, json={"results": [{"id": 0, "name": "Portal Knights"}]})
        )

        async with RawgProvider(settings) as provider:
            result = await provider.search_by_name("Portal 2")

        assert result is not None
        assert result.confidence < provider.min_confidence

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_results(self, settings: Settings) -> None:
        respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json={"count": 0, "results": []}))

        async with RawgProvider(settings) as provider:
            assert await provider.search_by_name("Nothing Here") is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_server_error_retried_then_none(self, settings: Settings) -> None:
        """5xx is retried up to max_attempts and then contained."""
        route = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(503))

        async with RawgProvider(settings) as provider:
            result = await provider.search_by_name("Hades")

        assert result is None
        assert route.call_count == settings.retry.max_attempts

    @respx.mock
    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, settings: Settings) -> None:
        route = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(401))

        async with RawgProvider(settings) as provider:
            assert await provider.search_by_name("Hades") is None

        assert route.call_count == 1

    @respx.mock
    @pytest.mark.asyncio
    async def test_invalid_json(self, settings: Settings) -> None:
        respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, text="<html>oops</html>"))

        async with RawgProvider(settings) as provider:
            assert await provider.search_by_name("Hades") is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_steam_app_id_lookup(self, settings: Settings, rawg_search_response: dict[str, Any]) -> None:
        route = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json=rawg_search_response))

        async with RawgProvider(settings) as provider:
            result = await provider.search_by_steam_app_id(292030)

        assert result is not None
        assert result.confidence == 0.95
        params = route.calls.last.request.url.params
        assert params["stores"] == "1"
        assert params["search"] == "292030"

    @respx.mock
    @pytest.mark.asyncio
    async def test_unavailable_without_key(self, settings: Settings) -> None:
        """No key means no HTTP traffic at all."""
        settings.rawg = RawgAPIConfig(api_key=None)
        route = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json={"results": []}))

        async with RawgProvider(settings) as provider:
            assert provider.is_available() is False
            assert await provider.search_by_name("Hades") is None
            assert await provider.search_by_steam_app_id(1145360) is None

        assert route.call_count == 0

    @respx.mock
    @pytest.mark.asyncio
    async def test_request_without_key_raises_provider_error(self, settings: Settings) -> None:
        settings.rawg = RawgAPIConfig(api_key=None)
        route = respx.get(RAWG_GAMES).mock(return_value=httpx.Response(200, json={"results": []}))

        async with RawgProvider(settings) as provider:
            with pytest.raises(ProviderError, match="API key is not configured"):
                await provider._fetch("/games", search="Hades")

        assert route.call_count == 0

    @pytest.mark.asyncio
    async def test_blank_name(self, settings: Settings) -> None:
        async with RawgProvider(settings) as provider:
            assert await provider.search_by_name("   ") is None
            assert await provider.search_by_name(None) is None


class TestWikipediaProvider:
    """Integration tests for the Wikipedia provider."""

    @staticmethod
    def responses(title: str, extract: str = "Blender is a 3D creation suite.") -> list[httpx.Response]:
        return [
            httpx.Response(200, json={"query": {"search": [{"pageid": 4291, "title": title}]}}),
            httpx.Response(
                200,
                json={
                    "query": {
                        "pages": {
                            "4291": {
                                "pageid": 4291,
                                "title": title,
                                "extract": extract,
                                "fullurl": f"https://en.wikipedia.org/wiki/{title.replace(' ', '_')}",
                            }
                        }
                    }
                },
            ),
        ]

    @respx.mock
    @pytest.mark.asyncio
    async def test_exact_title(self, settings: Settings) -> None:
        route = respx.get(WIKIPEDIA_API).mock(side_effect=self.responses("Blender"))

        async with WikipediaProvider(settings) as provider:
            result = await provider.search_by_name("blender")

        assert result is not None
        assert result.confidence == 0.9
        assert result.description == "Blender is a 3D creation suite."
        assert result.website_url == "https://en.wikipedia.org/wiki/Blender"
        assert result.additional_data == {"wikipedia_page_id": "4291"}
        assert route.call_count == 2

    @respx.mock
    @pytest.mark.asyncio
    async def test_partial_title(self, settings: Settings) -> None:
        respx.get(WIKIPEDIA_API).mock(side_effect=self.responses("Blender (software)"))

        async with WikipediaProvider(settings) as provider:
            result = await provider.search_by_name_and_publisher("Blender", "Blender Foundation")

        assert result is not None
        assert result.confidence == 0.7

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_hits(self, settings: Settings) -> None:
        route = respx.get(WIKIPEDIA_API).mock(
            return_value=httpx.Response(200, json={"query": {"search": []}})
        )

        async with WikipediaProvider(settings) as provider:
            assert await provider.search_by_name("qwertyuiop") is None

        assert route.call_count == 1


class TestCnetProvider:
    """Integration tests for the CNET scraper."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_json_ld_match(self, settings: Settings) -> None:
        html = """
        <html><head>
        <script type="application/ld+json">
        {"@context": "https://schema.org", "@graph": [
            {"@type": "WebPage", "name": "Search"},
            {"@type": "SoftwareApplication", "name": "VLC Media Player",
             "description": "Free multimedia player.",
             "publisher": {"@type": "Organization", "name": "VideoLAN"},
             "aggregateRating": {"ratingValue": "4.5"}}
        ]}
        </script>
        </head><body></body></html>
        """
        route = respx.get(CNET_SEARCH).mock(return_value=httpx.Response(200, text=html))

        async with CnetProvider(settings) as provider:
            result = await provider.search_by_name_and_publisher("VLC media player", "VideoLAN")

        assert result is not None
        assert result.confidence == 0.8
        assert result.publisher == "VideoLAN"
        assert result.rating == 4.5
        assert route.calls.last.request.url.params["q"] == "VLC media player VideoLAN"

    @respx.mock
    @pytest.mark.asyncio
    async def test_forbidden(self, settings: Settings) -> None:
        respx.get(CNET_SEARCH).mock(return_value=httpx.Response(403))

        async with CnetProvider(settings) as provider:
            assert await provider.search_by_name("VLC") is None


class TestWingetProvider:
    """Tests for the winget CLI provider with the CLI stubbed out."""

    @pytest.mark.asyncio
    async def test_exact_match_with_details(self, settings: Settings) -> None:
        provider = WingetProvider(settings)
        run = AsyncMock(side_effect=[WINGET_SEARCH, WINGET_SHOW])

        with patch.object(provider, "_run", run):
            result = await provider.search_by_name("Notepad++ 8.6.2 (x64)")

        assert result is not None
        assert result.confidence == 1.0
        assert result.publisher == "Notepad++ Team"
        assert result.website_url == "https://notepad-plus-plus.org/"
        assert result.additional_data["package_id"] == "Notepad++.Notepad++"
        assert result.additional_data["latest_version"] == "8.6.2"
        assert run.await_args_list[0].args == ("search", "Notepad++")
        assert run.await_args_list[1].args == ("show", "--id", "Notepad++.Notepad++", "--exact")

    @pytest.mark.asyncio
    async def test_publisher_prefers_matching_package_id(self, settings: Settings) -> None:
        provider = WingetProvider(settings)
        run = AsyncMock(side_effect=[WINGET_SEARCH, None])

        with patch.object(provider, "_run", run):
            result = await provider.search_by_name_and_publisher("Notepad", "dail8859")

        assert result is not None
        assert result.name == "Notepad Next"
        assert result.confidence == 0.8

    @pytest.mark.asyncio
    async def test_missing_cli(self, settings: Settings) -> None:
        """settings point at an executable that does not exist."""
        provider = WingetProvider(settings)

        assert await provider.search_by_name("Notepad++") is None


class TestRegistry:
    def test_default_registry(self, settings: Settings) -> None:
        registry = create_default_registry(settings)

        assert [p.name for p in registry.games] == ["RAWG"]
        assert [p.name for p in registry.software] == ["Winget", "CNET", "Wikipedia"]
        assert all(isinstance(p, MetadataProvider) for p in registry.all())
        assert isinstance(registry.games[0], SteamLookupProvider)
        assert not isinstance(registry.software[0], SteamLookupProvider)
        assert registry.chain(Partition.GAME) == registry.games

    @pytest.mark.asyncio
    async def test_close(self, settings: Settings) -> None:
        registry = create_default_registry(settings)
        for provider in registry.all():
            assert provider.client is not None

        await registry.close()
