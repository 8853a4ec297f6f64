"""Index settings and mappings for the book catalog.

Provides two helpers used by the seeding pipeline:

* :py:func:`build_index_body` – analyzers + field mappings, with optional
  phonetic sub-fields.
* :py:func:`recreate_index` – drop any existing index of the same name, probe
  for the phonetic plugin and create the index.
"""

from __future__ import annotations

import logging
from typing import Any

from src.common.capabilities import detect_phonetic_plugin
from src.common.engine import SearchEngine

logger = logging.getLogger(__name__)

EDGE_NGRAM_MIN = 2
EDGE_NGRAM_MAX = 15

# Index-time analyzer expands prefixes; search-time analyzer does not.
_AUTOCOMPLETE = {
    "type": "text",
    "analyzer": "autocomplete_index",
    "search_analyzer": "autocomplete_search",
}
_PHONETIC = {"type": "text", "analyzer": "phonetic_analyzer"}


def build_analysis(phonetic: bool) -> dict[str, Any]:
    """Token filters and analyzers for the ``settings.analysis`` block."""
    filters: dict[str, Any] = {
        "swedish_stemmer": {"type": "stemmer", "language": "swedish"},
        "edge_ngram_filter": {
            "type": "edge_ngram",
            "min_gram": EDGE_NGRAM_MIN,
            "max_gram": EDGE_NGRAM_MAX,
        },
    }
    analyzers: dict[str, Any] = {
        "swedish_analyzer": {
            "type": "custom",
            "tokenizer": "standard",
            "filter": ["lowercase", "swedish_stemmer"],
        },
        "autocomplete_index": {
            "type": "custom",
            "tokenizer": "standard",
            "filter": ["lowercase", "edge_ngram_filter"],
        },
        "autocomplete_search": {
            "type": "custom",
            "tokenizer": "standard",
            "filter": ["lowercase"],
        },
    }
    if phonetic:
        # German/English are the closest Beider-Morse language sets to Swedish.
        filters["swedish_phonetic"] = {
            "type": "phonetic",
            "encoder": "beider_morse",
            "rule_type": "approx",
            "name_type": "generic",
            "languageset": ["german", "english"],
        }
        analyzers["phonetic_analyzer"] = {
            "type": "custom",
            "tokenizer": "standard",
            "filter": ["lowercase", "swedish_phonetic"],
        }
    return {"filter": filters, "analyzer": analyzers}


def _text_with_subfields(analyzer: str, phonetic: bool) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "keyword": {"type": "keyword"},
        "autocomplete": dict(_AUTOCOMPLETE),
    }
    if phonetic:
        fields["phonetic"] = dict(_PHONETIC)
    return {"type": "text", "analyzer": analyzer, "fields": fields}


def build_mappings(phonetic: bool) -> dict[str, Any]:
    return {
        "properties": {
            "title": _text_with_subfields("swedish_analyzer", phonetic),
            "author": _text_with_subfields("standard", phonetic),
            "genre": {"type": "keyword"},
            "releaseYear": {
                "type": "integer",
                "fields": {"autocomplete": dict(_AUTOCOMPLETE)},
            },
            "rating": {"type": "float"},
            "ratingCount": {"type": "integer"},
            "language": {"type": "keyword"},
            "formats": {"type": "keyword"},
            "trending": {"type": "integer"},
            "authorFirstName": {"type": "keyword"},
            "nameVariants": dict(_AUTOCOMPLETE),
        }
    }


def build_index_body(phonetic: bool = False) -> dict[str, Any]:
    """Full ``indices.create`` body for the catalog index."""
    return {
        "settings": {"analysis": build_analysis(phonetic)},
        "mappings": build_mappings(phonetic),
    }


async def recreate_index(engine: SearchEngine, index_name: str) -> bool:
    """Drop *index_name* if present and create it again.

    Existing documents are lost.  Returns whether the phonetic sub-fields were included.
    """
    if await engine.index_exists(index_name):
        logger.info("Deleting existing index '%s'.", index_name)
        await engine.delete_index(index_name)

    phonetic = await detect_phonetic_plugin(engine)
    logger.info("Creating index '%s' (phonetic=%s).", index_name, phonetic)
    await engine.create_index(index_name, build_index_body(phonetic))
    return phonetic
