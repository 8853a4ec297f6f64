"""entities.py
Shared type definitions for catalog records before and after enrichment.
"""

from __future__ import annotations

from typing import Literal, TypedDict


class BookRecord(TypedDict):
    """A catalog entry as authored in the sample data."""

    title: str
    author: str
    genre: list[str]  # first tag is the broad category
    releaseYear: int
    rating: float
    ratingCount: int
    language: str
    formats: list[Literal["audio", "ebook"]]
    trending: int


class IndexedBook(BookRecord):
    """Canonical schema for documents indexed in the search engine.

    ``authorFirstName`` and ``nameVariants`` are always derived from
    ``author`` during enrichment.
    """

    authorFirstName: str | None
    nameVariants: list[str]
