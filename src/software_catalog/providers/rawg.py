"""
RAWG game database provider.

Endpoints:
    GET /games?key=&search=&page_size=5    name search
    GET /games?key=&stores=1&search=<id>   Steam app id lookup
    GET /games/{id}?key=                   game details

Documentation: https://api.rawg.io/docs/
"""

import re
from datetime import datetime
from typing import Any

from rapidfuzz.distance import Levenshtein

from software_catalog.config import Settings
from software_catalog.providers.base import (
    BaseProvider,
    MetadataResult,
    ParseError,
    Partition,
    ProviderError,
)
from software_catalog.utils.rate_limiter import RateLimiter, RateLimiterConfig

STEAM_STORE_ID = 1
STEAM_LOOKUP_CONFIDENCE = 0.95

EDITION_SUFFIXES = (
    " - Game of the Year Edition",
    " - Definitive Edition",
    " - Complete Edition",
    " - Enhanced Edition",
    " - Remastered",
    " GOTY",
    " Deluxe Edition",
    " Gold Edition",
)
TRAILING_YEAR = re.compile(r"\s*\((\d{4})\)\s*$")


def clean_game_name(name: str) -> str:
    """
    Strip edition suffixes and a trailing "(year)" from a game title.

    Example:
        >>> clean_game_name("Portal 2 - Game of the Year Edition")
        'Portal 2'
        >>> clean_game_name("Doom (2016)")
        'Doom'
    """
    cleaned = name.strip()
    for suffix in EDITION_SUFFIXES:
        if cleaned.lower().endswith(suffix.lower()):
            cleaned = cleaned[: -len(suffix)].strip()

    match = TRAILING_YEAR.search(cleaned)
    if match and 1970 <= int(match.group(1)) <= datetime.now().year + 2:
        cleaned = cleaned[: match.start()].strip()

    return cleaned or name.strip()


def name_similarity(expected: str, found: str) -> float:
    """Normalized Levenshtein similarity of two names, case-insensitive."""
    a, b = expected.strip().lower(), found.strip().lower()
    if not a or not b:
        return 0.0
    return Levenshtein.normalized_similarity(a, b)


def _parse_date(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _names(items: Any) -> list[str]:
    if not isinstance(items, list):
        return []
    return [str(item["name"]) for item in items if isinstance(item, dict) and item.get("name")]


class RawgProvider(BaseProvider):
    """
    Game metadata from RAWG.

    Confidence is the name similarity between the requested title and
    the first search hit; Steam id lookups report a fixed 0.95.
    Disabled unless RAWG_API_KEY is set.
    """

    name = "RAWG"
    priority = 1
    min_confidence = 0.85
    partition = Partition.GAME

    def __init__(self, settings: Settings | None = None, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        self._config = self._settings.rawg
        self._base_url = self._config.base_url.rstrip("/")
        self._rate_limiter = RateLimiter(
            RateLimiterConfig(requests_per_minute=self._config.requests_per_minute),
            name="rawg",
        )

    def is_available(self) -> bool:
        return self._config.is_configured

    def _params(self, **params: Any) -> dict[str, Any]:
        if self._config.api_key is None:
            raise ProviderError("RAWG API key is not configured", provider=self.name)
        return {"key": self._config.api_key.get_secret_value(), **params}

    async def _fetch(self, path: str, **params: Any) -> Any:
        async with self._rate_limiter:
            return await self._get_json(f"{self._base_url}{path}", params=self._params(**params))

    async def _search(self, name: str) -> MetadataResult | None:
        if not self.is_available():
            return None

        cleaned = clean_game_name(name)
        data = await self._fetch("/games", search=cleaned, page_size=5)
        game = self._first_result(data)
        if game is None:
            return None

        result = self._parse_game(game, confidence=name_similarity(cleaned, str(game.get("name", ""))))
        return await self._with_details(game, result)

    async def search_by_steam_app_id(self, app_id: int) -> MetadataResult | None:
        """Resolve a Steam app id through RAWG's store filter."""
        if app_id <= 0 or not self.is_available():
            return None

        async def lookup() -> MetadataResult | None:
            data = await self._fetch("/games", stores=STEAM_STORE_ID, search=str(app_id))
            game = self._first_result(data)
            if game is None:
                return None
            return self._parse_game(game, confidence=STEAM_LOOKUP_CONFIDENCE)

        return await self._guarded(lookup(), app_id=app_id)

    def _first_result(self, data: Any) -> dict[str, Any] | None:
        if not isinstance(data, dict):
            raise ParseError("Unexpected search payload", provider=self.name)
        results = data.get("results") or []
        if not results or not isinstance(results[0], dict):
            return None
        return results[0]

    def _parse_game(self, game: dict[str, Any], *, confidence: float) -> MetadataResult:
        background = game.get("background_image") or None
        return MetadataResult(
            source=self.name,
            confidence=confidence,
            name=game.get("name"),
            description=game.get("short_description") or None,
            genres=_names(game.get("genres")),
            release_date=_parse_date(game.get("released")),
            rating=game.get("rating"),
            icon_url=background,
            background_image_url=background,
        )

    async def _with_details(self, game: dict[str, Any], result: MetadataResult) -> MetadataResult:
        """Merge /games/{id} details into result; details are best effort."""
        game_id = game.get("id")
        if not isinstance(game_id, int) or game_id <= 0:
            return result

        try:
            details = await self._fetch(f"/games/{game_id}")
        except ProviderError as e:
            self._logger.warning("Detail lookup failed", game_id=game_id, error=str(e))
            return result
        if not isinstance(details, dict):
            return result

        update: dict[str, Any] = {}
        if details.get("description_raw"):
            update["description"] = details["description_raw"]
        if details.get("website"):
            update["website_url"] = details["website"]
        developers = _names(details.get("developers"))
        if developers:
            update["developers"] = developers
        publishers = _names(details.get("publishers"))
        if publishers:
            update["publisher"] = publishers[0]

        esrb = details.get("esrb_rating")
        update["additional_data"] = {
            **result.additional_data,
            "rawg_id": str(game_id),
            "metacritic": str(details.get("metacritic") or ""),
            "playtime": str(details.get("playtime") or ""),
            "esrb_rating": str(esrb.get("name") or "") if isinstance(esrb, dict) else "",
        }
        return result.model_copy(update=update)
