"""Paginated, filterable full-text search with facet counts.

Unlike the suggestion endpoint, every facet here is computed from the same
fully filtered query: an active author filter narrows the genre and year
counts *and* the author facet itself.
"""

from __future__ import annotations

import logging
from typing import Any, TypedDict

from src.common.capabilities import EngineCapabilities
from src.common.engine import SearchEngine
from src.search.filters import ActiveFilters, build_filter_clauses
from src.search.settings import settings

logger = logging.getLogger(__name__)

DEFAULT_SORT = "relevance"

# Single-key sorts; ties fall back to the engine's internal order.
SORT_OPTIONS: dict[str, list[Any]] = {
    "relevance": ["_score"],
    "rating": [{"rating": "desc"}],
    "title": [{"title.keyword": "asc"}],
    "year": [{"releaseYear": "desc"}],
    "trending": [{"trending": "desc"}],
}


class SearchPage(TypedDict):
    total: int
    page: int
    size: int
    results: list[dict[str, Any]]
    facets: dict[str, list[dict[str, Any]]]
    activeFilters: dict[str, list]


def resolve_sort(sort: str | None) -> list[Any]:
    """Engine sort clause for *sort*; unknown or empty keys mean relevance."""
    return SORT_OPTIONS.get((sort or DEFAULT_SORT).lower(), SORT_OPTIONS[DEFAULT_SORT])


def text_clause(text: str, phonetic: bool) -> dict[str, Any]:
    should: list[dict[str, Any]] = [
        {"match": {"title.autocomplete": {"query": text, "operator": "or", "boost": 3}}},
        {"match": {"author.autocomplete": {"query": text, "operator": "or", "boost": 2}}},
        {"match": {"nameVariants": {"query": text, "boost": 0.8}}},
    ]
    if phonetic:
        should.append({"match": {"title.phonetic": {"query": text, "boost": 0.6}}})
        should.append({"match": {"author.phonetic": {"query": text, "boost": 0.5}}})
    return {"bool": {"should": should, "minimum_should_match": 1}}


def facet_aggs(size: int) -> dict[str, Any]:
    return {
        "authors": {"terms": {"field": "author.keyword", "size": size}},
        "genres": {"terms": {"field": "genre", "size": size}},
        "years": {"terms": {"field": "releaseYear", "size": size, "order": {"_key": "desc"}}},
    }


def build_search_body(
    text: str | None,
    filters: ActiveFilters,
    *,
    sort: str | None = None,
    page: int = 1,
    size: int = 12,
    phonetic: bool = False,
    facet_size: int = 20,
) -> dict[str, Any]:
    """Engine request body for one result page plus facets.

    *page* is 1-indexed; the offset is ``(page - 1) * size`` with no upper
    bound.
    """
    text = (text or "").strip()
    must = [text_clause(text, phonetic)] if text else [{"match_all": {}}]
    return {
        "from": (page - 1) * size,
        "size": size,
        "track_total_hits": True,
        "query": {"bool": {"must": must, "filter": build_filter_clauses(filters)}},
        "sort": resolve_sort(sort),
        "aggs": facet_aggs(facet_size),
    }


def _total(hits: dict[str, Any]) -> int:
    total = hits.get("total") or 0
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total)


class FilteredSearchExecutor:
    """Runs the combined text + filter + sort + page query."""

    def __init__(
        self,
        engine: SearchEngine,
        capabilities: EngineCapabilities,
        index_name: str | None = None,
        max_page_size: int | None = None,
        facet_size: int | None = None,
    ) -> None:
        self._engine = engine
        self._capabilities = capabilities
        self._index = index_name or settings.index_name
        self._max_page_size = max_page_size or settings.max_page_size
        self._facet_size = facet_size or settings.facet_size

    async def search(
        self,
        text: str | None = None,
        filters: ActiveFilters | None = None,
        sort: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> SearchPage:
        """Return one page of matching books with author/genre/year facets.

        Raises:
            EngineError: If the engine rejects or cannot run the query.
        """
        filters = filters or ActiveFilters()
        page = max(1, page)
        if page_size is None:
            page_size = settings.default_page_size
        size = min(max(1, page_size), self._max_page_size)
        phonetic = await self._capabilities.phonetic() if (text or "").strip() else False

        body = build_search_body(
            text,
            filters,
            sort=sort,
            page=page,
            size=size,
            phonetic=phonetic,
            facet_size=self._facet_size,
        )
        result = await self._engine.search(self._index, body)

        hits = result.get("hits") or {}
        aggregations = result.get("aggregations") or {}
        results = [
            {"id": hit.get("_id"), "score": hit.get("_score"), **(hit.get("_source") or {})}
            for hit in hits.get("hits") or []
        ]
        logger.debug("Search '%s' page %d: %d/%d hits", text, page, len(results), _total(hits))
        return {
            "total": _total(hits),
            "page": page,
            "size": size,
            "results": results,
            "facets": {
                name: (aggregations.get(name) or {}).get("buckets") or []
                for name in ("authors", "genres", "years")
            },
            "activeFilters": filters.to_dict(),
        }
