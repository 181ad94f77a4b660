"""
Wikipedia provider (last-resort fallback for software).

Two MediaWiki API calls: a full-text search for the best page, then
the plain-text intro extract and canonical URL of that page.
"""

from typing import Any

from software_catalog.config import Settings
from software_catalog.providers.base import BaseProvider, MetadataResult, Partition


def title_confidence(title: str, search_term: str) -> float:
    """0.9 exact title, 0.7 when either contains the other, 0.5 otherwise."""
    a, b = title.strip().lower(), search_term.strip().lower()
    if not a or not b:
        return 0.5
    if a == b:
        return 0.9
    if b in a or a in b:
        return 0.7
    return 0.5


class WikipediaProvider(BaseProvider):
    """Descriptions from the English Wikipedia."""

    name = "Wikipedia"
    priority = 99
    min_confidence = 0.6
    partition = Partition.SOFTWARE

    def __init__(self, settings: Settings | None = None, **kwargs: Any) -> None:
        super().__init__(settings, **kwargs)
        self._api_url = self._settings.providers.wikipedia_api_url

    async def _search(self, name: str) -> MetadataResult | None:
        return await self._query(name, compare_to=name)

    async def _search_with_publisher(self, name: str, publisher: str) -> MetadataResult | None:
        return await self._query(f"{name} {publisher}", compare_to=name)

    async def _query(self, query: str, *, compare_to: str) -> MetadataResult | None:
        search = await self._get_json(
            self._api_url,
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": 1,
                "format": "json",
            },
        )
        hits = (search.get("query") or {}).get("search") or [] if isinstance(search, dict) else []
        if not hits:
            return None

        page_id = hits[0].get("pageid")
        title = hits[0].get("title")
        if not page_id or not title:
            return None

        extract = await self._get_json(
            self._api_url,
            params={
                "action": "query",
                "prop": "extracts|info",
                "pageids": page_id,
                "exintro": 1,
                "explaintext": 1,
                "inprop": "url",
                "format": "json",
            },
        )
        pages = (extract.get("query") or {}).get("pages") or {} if isinstance(extract, dict) else {}
        page = pages.get(str(page_id))
        if not isinstance(page, dict):
            return None

        return MetadataResult(
            source=self.name,
            confidence=title_confidence(title, compare_to),
            name=title,
            description=(page.get("extract") or "").strip() or None,
            website_url=page.get("fullurl"),
            additional_data={"wikipedia_page_id": str(page_id)},
        )
