"""catalog.py
Loading the book catalog and deriving the name-variant fields.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Iterable

from tqdm import tqdm

from src.indexing.entities import BookRecord, IndexedBook
from src.indexing.name_variants import NameVariantResolver, extract_first_name

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "author", "genre", "releaseYear")


class CatalogError(ValueError):
    """Raised when the catalog file is missing or malformed."""


def load_catalog(path: Path) -> list[BookRecord]:
    """Read and validate a JSON list of book records.

    Args:
        path: Filesystem path to a JSON file containing a list of objects.

    Returns:
        The records, with ``genre``/``formats`` coerced to lists and derived
        fields stripped.

    Raises:
        CatalogError: If the file cannot be read, a record lacks a
            required field, or its releaseYear is not a number.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
    if not isinstance(raw, list):
        raise CatalogError(f"Catalog {path} must contain a JSON list")

    books: list[BookRecord] = []
    for position, record in enumerate(raw):
        if not isinstance(record, dict):
            raise CatalogError(f"Record #{position} is not an object")
        missing = [f for f in REQUIRED_FIELDS if record.get(f) in (None, "", [])]
        if missing:
            raise CatalogError(f"Record #{position} is missing {', '.join(missing)}")
        book = {k: v for k, v in record.items() if k not in ("authorFirstName", "nameVariants")}
        book["genre"] = list(book["genre"]) if isinstance(book["genre"], list) else [book["genre"]]
        book["formats"] = list(book.get("formats") or [])
        try:
            book["releaseYear"] = int(book["releaseYear"])
        except (TypeError, ValueError) as exc:
            raise CatalogError(f"Record #{position} has a non-numeric releaseYear") from exc
        books.append(book)  # type: ignore[arg-type]
    return books


def unique_first_names(books: Iterable[BookRecord]) -> list[str]:
    """Lower-case first names of all authors, first occurrence order."""
    names: dict[str, None] = {}
    for book in books:
        first = extract_first_name(book.get("author"))
        if first:
            names.setdefault(first.lower(), None)
    return list(names)


async def enrich_books(
    books: list[BookRecord],
    resolver: NameVariantResolver,
    delay: float = 0.0,
) -> list[IndexedBook]:
    """Attach ``authorFirstName`` and ``nameVariants`` to every book.

    Each unique first name is resolved once, sequentially; after every lookup
    that was not answered from the cache the loop sleeps *delay* seconds.
    """
    names = unique_first_names(books)
    logger.info("Found %d unique first names to look up", len(names))

    variants_by_name: dict[str, list[str]] = {}
    for name in tqdm(names, desc="Name variants", unit="name"):
        was_cached = name in resolver.cache
        variants_by_name[name] = await resolver.resolve(name)
        if resolver.enabled and not was_cached and delay > 0:
            await asyncio.sleep(delay)

    enriched: list[IndexedBook] = []
    for book in books:
        first = extract_first_name(book.get("author"))
        first = first.lower() if first else None
        variants = variants_by_name.get(first, []) if first else []
        enriched.append({**book, "authorFirstName": first, "nameVariants": list(variants)})  # type: ignore[typeddict-item]

    for book in enriched:
        shown = book["nameVariants"]
        if shown:
            more = f" (+{len(shown) - 5} more)" if len(shown) > 5 else ""
            logger.info("  %s -> %s%s", book["author"], ", ".join(shown[:5]), more)
        else:
            logger.info("  %s -> (no variants found)", book["author"])
    return enriched
