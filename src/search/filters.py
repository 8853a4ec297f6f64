"""Active filter chips and the engine filter clauses derived from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal

logger = logging.getLogger(__name__)

Dimension = Literal["authors", "genres", "years"]

# dimension -> field filtered with exact-match ``terms``
FILTER_FIELDS: dict[str, str] = {
    "authors": "author.keyword",
    "genres": "genre",
    "years": "releaseYear",
}


def _dedupe(values: Iterable) -> tuple:
    return tuple(dict.fromkeys(values))


def split_param(raw: str | None) -> list[str]:
    """Split a comma-separated query parameter, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def parse_years(values: Iterable[str]) -> list[int]:
    """Keep values that parse as non-zero integers."""
    years: list[int] = []
    for value in values:
        try:
            year = int(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric year filter %r", value)
            continue
        if year:
            years.append(year)
    return years


@dataclass(frozen=True)
class ActiveFilters:
    """Selected authors, genres and release years (each deduplicated)."""

    authors: tuple[str, ...] = field(default_factory=tuple)
    genres: tuple[str, ...] = field(default_factory=tuple)
    years: tuple[int, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "authors", _dedupe(self.authors))
        object.__setattr__(self, "genres", _dedupe(self.genres))
        object.__setattr__(self, "years", _dedupe(self.years))

    @classmethod
    def from_params(
        cls,
        authors: str | None = None,
        genres: str | None = None,
        years: str | None = None,
    ) -> "ActiveFilters":
        return cls(
            authors=tuple(split_param(authors)),
            genres=tuple(split_param(genres)),
            years=tuple(parse_years(split_param(years))),
        )

    def to_dict(self) -> dict[str, list]:
        return {
            "authors": list(self.authors),
            "genres": list(self.genres),
            "years": list(self.years),
        }


def build_filter_clauses(
    filters: ActiveFilters, exclude: Dimension | None = None
) -> list[dict[str, Any]]:
    """``terms`` clauses for every non-empty dimension except *exclude*.

    Dimensions combine with AND (separate clauses); values inside one
    dimension combine with OR (``terms`` membership).
    """
    clauses: list[dict[str, Any]] = []
    for dimension, field_name in FILTER_FIELDS.items():
        if dimension == exclude:
            continue
        values = getattr(filters, dimension)
        if values:
            clauses.append({"terms": {field_name: list(values)}})
    return clauses
