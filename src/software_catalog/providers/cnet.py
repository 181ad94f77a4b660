"""
CNET download-page scraper.

CNET has no public API. The search page is fetched and parsed with
BeautifulSoup: schema.org JSON-LD is preferred, a heading that contains
the searched name is the fallback. Requests are spaced at least
cnet_min_interval_seconds apart.
"""

import json
from typing import Any

from bs4 import BeautifulSoup, Tag

from software_catalog.config import Settings
from software_catalog.providers.base import BaseProvider, MetadataResult, Partition
from software_catalog.utils.rate_limiter import IntervalLimiter

JSON_LD_CONFIDENCE = 0.8
HEADING_CONFIDENCE = 0.6
APPLICATION_TYPES = {"SoftwareApplication", "WebApplication"}
HEADINGS = ("h1", "h2", "h3", "h4", "h5", "h6")


def _json_ld_objects(soup: BeautifulSoup) -> list[dict[str, Any]]:
    objects: list[dict[str, Any]] = []
    for script in soup.find_all("script", type="application/ld+json"):
        try:
            data = json.loads(script.string or "")
        except ValueError:
            continue
        items = data if isinstance(data, list) else [data]
        for item in items:
            if not isinstance(item, dict):
                continue
            objects.append(item)
            graph = item.get("@graph")
            if isinstance(graph, list):
                objects.extend(obj for obj in graph if isinstance(obj, dict))
    return objects


def _is_application(obj: dict[str, Any]) -> bool:
    kind = obj.get("@type")
    kinds = kind if isinstance(kind, list) else [kind]
    return any(k in APPLICATION_TYPES for k in kinds)


def _text(value: Any) -> str | None:
    """schema.org values may be plain strings or objects with a name/url."""
    if isinstance(value, list):
        return _text(value[0]) if value else None
    if isinstance(value, dict):
        value = value.get("name") or value.get("url")
    if value is None:
        return None
    return str(value).strip() or None


def _rating(obj: dict[str, Any]) -> float | None:
    rating = obj.get("aggregateRating")
    if not isinstance(rating, dict):
        return None
    try:
        return float(rating.get("ratingValue"))
    except (TypeError, ValueError):
        return None


def parse_search_page(html: str, search_term: str, source: str = "CNET") -> MetadataResult | None:
    """Extract the best application match from a CNET search page."""
    soup = BeautifulSoup(html, "html.parser")

    for obj in _json_ld_objects(soup):
        if _is_application(obj) and obj.get("name"):
            return MetadataResult(
                source=source,
                confidence=JSON_LD_CONFIDENCE,
                name=_text(obj.get("name")),
                description=_text(obj.get("description")),
                publisher=_text(obj.get("publisher")),
                rating=_rating(obj),
                website_url=_text(obj.get("url")),
                icon_url=_text(obj.get("image")),
            )

    needle = search_term.strip().lower()
    for heading in soup.find_all(HEADINGS):
        title = heading.get_text(" ", strip=True)
        if needle and needle in title.lower():
            paragraph = heading.find_next("p")
            description = paragraph.get_text(" ", strip=True) if isinstance(paragraph, Tag) else None
            return MetadataResult(
                source=source,
                confidence=HEADING_CONFIDENCE,
                name=title,
                description=description or None,
            )

    return None


class CnetProvider(BaseProvider):
    """Software metadata scraped from CNET search results."""

    name = "CNET"
    priority = 10
    min_confidence = 0.6
    partition = Partition.SOFTWARE

    def __init__(self, settings: Settings | None = None, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        self._search_url = self._settings.providers.cnet_search_url
        self._limiter = IntervalLimiter(
            self._settings.providers.cnet_min_interval_seconds,
            name="cnet",
        )

    async def _search(self, name: str) -> MetadataResult | None:
        return await self._query(name, match_term=name)

    async def _search_with_publisher(self, name: str, publisher: str) -> MetadataResult | None:
        return await self._query(f"{name} {publisher}", match_term=name)

    async def _query(self, query: str, *, match_term: str) -> MetadataResult | None:
        async with self._limiter:
            response = await self._make_request(
                "GET",
                self._search_url,
                params={"q": query},
                headers={"Accept": "text/html,application/xhtml+xml"},
            )
        return parse_search_page(response.text, match_term, source=self.name)
