"""index_cli.py
Command-line entry point for (re)seeding the book catalog index.

This module only handles CLI parsing and delegates all heavy lifting to
:pyfunc:`src.indexing.indexing_pipeline.seed_async`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from src.common.settings import settings as common_settings
from src.indexing.indexing_pipeline import SeedError, seed_async
from src.indexing.settings import settings

logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Recreate the book index and seed it with the sample catalog.",
    )
    parser.add_argument(
        "--catalog-file", type=Path, default=settings.catalog_file, help="Path to catalog JSON"
    )
    parser.add_argument(
        "--index-name", type=str, default=settings.index_name, help="Search index name"
    )
    parser.add_argument(
        "--no-wikidata",
        action="store_true",
        help="Skip Wikidata lookups; rely on the fallback name-variant table",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:  # noqa: D401
    """Parse CLI options and run the seeding coroutine."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=common_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        report = asyncio.run(
            seed_async(
                index_name=args.index_name,
                catalog_file=args.catalog_file,
                use_wikidata=False if args.no_wikidata else None,
            )
        )
    except SeedError as exc:
        logger.error("Error during setup: %s", exc)
        return 1

    if report.failed:
        logger.warning("%d documents failed to index", report.failed)
    print(f"Seeded '{report.index_name}' with {report.document_count} documents.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
