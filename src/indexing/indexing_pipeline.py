"""Catalog → name-variant enrichment → search index seeding pipeline.

Workflow
---------
1. Check that the cluster answers a health request.
2. Drop and recreate the catalog index (phonetic sub-fields if the plugin is
   installed).
3. Load the JSON catalog and resolve every unique author first name to its
   variant spellings (Wikidata, cached per name family).
4. Bulk-index the enriched books with ``refresh`` so they are searchable at once.
5. Verify the document count.

Environment variables are consumed via :pyfile:`src.indexing.settings` and
:pyfile:`src.common.settings`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from src.common.engine import EngineError, SearchEngine, create_engine
from src.indexing.catalog import CatalogError, enrich_books, load_catalog
from src.indexing.name_variants import NameVariantResolver, create_cache
from src.indexing.schema import recreate_index
from src.indexing.settings import settings

logger = logging.getLogger(__name__)


class SeedError(RuntimeError):
    """Raised when the seeding run cannot complete."""


@dataclass
class SeedReport:
    index_name: str
    indexed: int
    failed: int
    document_count: int
    phonetic: bool


async def seed_catalog(
    engine: SearchEngine,
    *,
    index_name: str | None = None,
    catalog_file: Path | None = None,
    resolver: NameVariantResolver | None = None,
    delay: float | None = None,
) -> SeedReport:
    """Recreate *index_name* and fill it with the enriched catalog.

    Raises:
        SeedError: On any engine failure or an unreadable catalog.
    """
    index_name = index_name or settings.index_name
    catalog_file = catalog_file or settings.catalog_file
    delay = settings.wikidata_delay if delay is None else delay

    try:
        books = load_catalog(catalog_file)
    except CatalogError as exc:
        raise SeedError(str(exc)) from exc

    try:
        health = await engine.cluster_health()
        logger.info("Cluster status: %s", health.get("status"))

        phonetic = await recreate_index(engine, index_name)

        if resolver is None:
            resolver = NameVariantResolver(create_cache())
        if resolver.enabled:
            logger.info("Fetching name variants from Wikidata ...")
        else:
            logger.info("Wikidata disabled; using cached name variants only")
        docs = await enrich_books(books, resolver, delay=delay)

        indexed, errors = await engine.bulk_index(index_name, docs, refresh=True)
        for item in errors:
            logger.error("Failed to index document: %s", item)
        if not errors:
            logger.info("Successfully indexed %d books", indexed)

        count = await engine.count(index_name)
    except EngineError as exc:
        raise SeedError(str(exc)) from exc

    logger.info("Total documents in index '%s': %d", index_name, count)
    return SeedReport(
        index_name=index_name,
        indexed=indexed,
        failed=len(errors),
        document_count=count,
        phonetic=phonetic,
    )


async def seed_async(
    *,
    index_name: str | None = None,
    catalog_file: Path | None = None,
    use_wikidata: bool | None = None,
) -> SeedReport:
    """Run :func:`seed_catalog` against the configured engine and Wikidata."""

    engine = create_engine()
    try:
        async with httpx.AsyncClient(timeout=settings.wikidata_timeout) as client:
            resolver = NameVariantResolver(
                create_cache(), client=client, enabled=use_wikidata
            )
            return await seed_catalog(
                engine,
                index_name=index_name,
                catalog_file=catalog_file,
                resolver=resolver,
            )
    finally:
        await engine.close()


if __name__ == "__main__":
    asyncio.run(seed_async())
