"""Federated autocomplete over the book index.

One free-text input is split into a residual text query and any year-like
substrings, then four category queries run concurrently:

* **authors** – aggregation over ``author.keyword``
* **titles**  – the only category returning book documents
* **genres**  – aggregation over ``genre`` tags, prefix-matched per term
* **years**   – aggregation over ``releaseYear``, prefix-matched on the
  autocomplete sub-field

Each aggregation query is filtered by the active filters of the *other*
dimensions only, so selecting an author never hides the remaining author
suggestions.  Titles honour every active filter.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Coroutine, TypedDict

from src.common.capabilities import EngineCapabilities
from src.common.engine import SearchEngine
from src.search.filters import ActiveFilters, build_filter_clauses
from src.search.settings import settings

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

# 3-4 digit runs that look like the start of a 20th/21st century year.
YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{1,2}\b")

TITLE_SOURCE_FIELDS = ["title", "author", "releaseYear", "rating", "genre"]


class AuthorSuggestion(TypedDict):
    value: str
    count: int
    matchedTerms: list[str]


class GenreSuggestion(TypedDict):
    value: str
    count: int
    matchedTerms: list[str]


class TitleSuggestion(TypedDict):
    id: str
    value: str
    author: str | None
    year: int | None
    rating: float | None
    genre: list[str]
    matchedTerms: list[str]


class YearSuggestion(TypedDict):
    value: int
    count: int


class SuggestionEnvelope(TypedDict):
    query: str
    textQuery: str
    yearPattern: list[str] | None
    authors: list[AuthorSuggestion]
    titles: list[TitleSuggestion]
    genres: list[GenreSuggestion]
    years: list[YearSuggestion]
    activeFilters: dict[str, list]


@dataclass
class ParsedQuery:
    """Raw input split into residual text, lowercase terms and year prefixes."""

    raw: str
    text: str
    terms: list[str] = field(default_factory=list)
    year_patterns: list[str] = field(default_factory=list)

    @property
    def has_text(self) -> bool:
        return len(self.text) >= MIN_QUERY_LENGTH

    @property
    def has_year(self) -> bool:
        return bool(self.year_patterns)


def parse_query(raw: str | None) -> ParsedQuery:
    raw = (raw or "").strip()
    year_patterns = YEAR_PATTERN.findall(raw)
    text = " ".join(YEAR_PATTERN.sub(" ", raw).split())
    return ParsedQuery(
        raw=raw,
        text=text,
        terms=text.lower().split(),
        year_patterns=year_patterns,
    )


def find_matched_terms(value: str | None, terms: list[str]) -> list[str]:
    """Terms that occur (case-insensitively) inside *value*."""
    if not value:
        return []
    lowered = value.lower()
    return [term for term in terms if term in lowered]


def name_match_clauses(text: str, phonetic: bool, weight: float = 1.0) -> list[dict[str, Any]]:
    """Author prefix, name-variant and (optionally) phonetic author clauses."""
    clauses: list[dict[str, Any]] = [
        {"match": {"author.autocomplete": {"query": text, "operator": "or", "boost": weight}}},
        {"match": {"nameVariants": {"query": text, "boost": round(0.8 * weight, 3)}}},
    ]
    if phonetic:
        clauses.append({"match": {"author.phonetic": {"query": text, "boost": round(0.5 * weight, 3)}}})
    return clauses


def _bool_query(should: list[dict[str, Any]], filters: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "bool": {
            "must": [{"bool": {"should": should, "minimum_should_match": 1}}],
            "filter": filters,
        }
    }


def build_authors_body(parsed: ParsedQuery, filters: ActiveFilters, phonetic: bool, size: int) -> dict[str, Any]:
    return {
        "size": 0,
        "query": _bool_query(
            name_match_clauses(parsed.text, phonetic),
            build_filter_clauses(filters, exclude="authors"),
        ),
        "aggs": {"authors": {"terms": {"field": "author.keyword", "size": size}}},
    }


def build_titles_body(parsed: ParsedQuery, filters: ActiveFilters, phonetic: bool, size: int) -> dict[str, Any]:
    should: list[dict[str, Any]] = [
        {"match": {"title.autocomplete": {"query": parsed.text, "operator": "or", "boost": 2}}},
    ]
    if phonetic:
        should.append({"match": {"title.phonetic": {"query": parsed.text, "boost": 0.5}}})
    should.extend(name_match_clauses(parsed.text, phonetic, weight=0.5))
    return {
        "size": size,
        "query": _bool_query(should, build_filter_clauses(filters)),
        "_source": TITLE_SOURCE_FIELDS,
    }


def build_genres_body(parsed: ParsedQuery, filters: ActiveFilters, size: int) -> dict[str, Any]:
    should = [
        {"prefix": {"genre": {"value": term, "case_insensitive": True}}}
        for term in parsed.terms
    ]
    return {
        "size": 0,
        "query": _bool_query(should, build_filter_clauses(filters, exclude="genres")),
        "aggs": {"genres": {"terms": {"field": "genre", "size": size}}},
    }


def build_years_body(parsed: ParsedQuery, filters: ActiveFilters, size: int) -> dict[str, Any]:
    should = [
        {"match": {"releaseYear.autocomplete": {"query": pattern}}}
        for pattern in parsed.year_patterns
    ]
    return {
        "size": 0,
        "query": _bool_query(should, build_filter_clauses(filters, exclude="years")),
        "aggs": {
            "years": {
                "terms": {"field": "releaseYear", "size": size, "order": {"_key": "desc"}}
            }
        },
    }


async def fan_out(*coros: Coroutine[Any, Any, Any]) -> list[Any]:
    """Run *coros* concurrently and return their results in order.

    The first failure cancels the remaining tasks and is re-raised as is.
    """
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except ExceptionGroup as failures:
        raise failures.exceptions[0] from None
    return [task.result() for task in tasks]


async def _skipped() -> dict[str, Any]:
    return {}


def _buckets(result: dict[str, Any], name: str) -> list[dict[str, Any]]:
    return ((result.get("aggregations") or {}).get(name) or {}).get("buckets") or []


def _hits(result: dict[str, Any]) -> list[dict[str, Any]]:
    return (result.get("hits") or {}).get("hits") or []


class SuggestionFederator:
    """Builds the categorized suggestion envelope for a partial query."""

    def __init__(
        self,
        engine: SearchEngine,
        capabilities: EngineCapabilities,
        index_name: str | None = None,
        size: int | None = None,
        year_size: int | None = None,
    ) -> None:
        self._engine = engine
        self._capabilities = capabilities
        self._index = index_name or settings.index_name
        self._size = size or settings.suggest_size
        self._year_size = year_size or settings.year_suggest_size

    def _search(self, body: dict[str, Any]) -> Coroutine[Any, Any, dict[str, Any]]:
        return self._engine.search(self._index, body)

    async def suggest(self, raw_query: str | None, filters: ActiveFilters | None = None) -> SuggestionEnvelope:
        """Suggestions for *raw_query* under the current filter chips.

        Raises:
            EngineError: If any of the category queries fails.
        """
        filters = filters or ActiveFilters()
        parsed = parse_query(raw_query)
        envelope: SuggestionEnvelope = {
            "query": raw_query or "",
            "textQuery": parsed.text,
            "yearPattern": parsed.year_patterns or None,
            "authors": [],
            "titles": [],
            "genres": [],
            "years": [],
            "activeFilters": filters.to_dict(),
        }
        if len(parsed.raw) < MIN_QUERY_LENGTH:
            return envelope

        phonetic = await self._capabilities.phonetic() if parsed.has_text else False
        authors, titles, genres, years = await fan_out(
            self._search(build_authors_body(parsed, filters, phonetic, self._size))
            if parsed.has_text else _skipped(),
            self._search(build_titles_body(parsed, filters, phonetic, self._size))
            if parsed.has_text else _skipped(),
            self._search(build_genres_body(parsed, filters, self._size))
            if parsed.has_text else _skipped(),
            self._search(build_years_body(parsed, filters, self._year_size))
            if parsed.has_year else _skipped(),
        )

        terms = parsed.terms
        envelope["authors"] = [
            {"value": b["key"], "count": b["doc_count"], "matchedTerms": find_matched_terms(b["key"], terms)}
            for b in _buckets(authors, "authors")
        ]
        envelope["titles"] = [self._title(hit, terms) for hit in _hits(titles)]
        envelope["genres"] = [
            {"value": b["key"], "count": b["doc_count"], "matchedTerms": find_matched_terms(b["key"], terms)}
            for b in _buckets(genres, "genres")
        ]
        envelope["years"] = [
            {"value": b["key"], "count": b["doc_count"]}
            for b in _buckets(years, "years")
            if any(str(b["key"]).startswith(p) for p in parsed.year_patterns)
        ]
        logger.debug(
            "Suggest '%s': %d authors, %d titles, %d genres, %d years",
            parsed.raw,
            len(envelope["authors"]),
            len(envelope["titles"]),
            len(envelope["genres"]),
            len(envelope["years"]),
        )
        return envelope

    @staticmethod
    def _title(hit: dict[str, Any], terms: list[str]) -> TitleSuggestion:
        source = hit.get("_source") or {}
        return {
            "id": hit.get("_id"),
            "value": source.get("title"),
            "author": source.get("author"),
            "year": source.get("releaseYear"),
            "rating": source.get("rating"),
            "genre": source.get("genre") or [],
            "matchedTerms": find_matched_terms(source.get("title"), terms),
        }
