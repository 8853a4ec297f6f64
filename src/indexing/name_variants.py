"""name_variants.py
Alternate spellings of author first names ("kristoffer" <-> "christopher").

Variants come from Wikidata's "said to be the same as" (P460) relation between
given-name items and are stored in a :class:`NameVariantCache`.  A single
lookup caches the whole name family, so resolving "Christopher" also answers
"Kristoffer" and "Christoph" without further requests.

Lookups never raise: timeouts, HTTP errors and malformed bodies are logged and
cached as an empty result so the same slow name is not retried.
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections.abc import Iterable, Mapping, Sequence

import httpx

from src.indexing.settings import settings

logger = logging.getLogger(__name__)

# Q12308941 = male given name, Q11879590 = female given name, Q202444 = given name
_SPARQL_TEMPLATE = """
SELECT DISTINCT ?variantLabel WHERE {{
  VALUES ?types {{ wd:Q12308941 wd:Q11879590 wd:Q202444 }}
  ?name wdt:P31 ?types .
  ?name rdfs:label "{label}"@en .
  ?name wdt:P460 ?variant .
  ?variant rdfs:label ?variantLabel .
  FILTER({languages})
}}
LIMIT {limit}
"""

LABEL_LANGUAGES = ("en", "sv")

# Basic + Latin-1 letters, spaces, hyphens, apostrophes.
_LATIN_NAME = re.compile(r"^[a-zA-ZÀ-ÿ\s\-']+$")
MIN_VARIANT_LENGTH = 2
MAX_VARIANT_LENGTH = 20

# Curated Nordic/English given-name families, usable with the endpoint disabled.
FALLBACK_VARIANTS: dict[str, list[str]] = {
    "christopher": ["kristoffer", "christoffer", "kristofer", "christoph"],
    "kristoffer": ["christopher", "christoffer", "kristofer"],
    "christoffer": ["christopher", "kristoffer"],
    "daniel": ["dan", "danny", "daniele"],
    "steve": ["steven", "stephen", "stefan", "staffan"],
    "stephen": ["steven", "steve", "stefan", "staffan"],
    "stefan": ["staffan", "stephen", "steven"],
    "stieg": ["stig"],
    "stig": ["stieg"],
    "johan": ["john", "jon", "johannes", "jan"],
    "john": ["johan", "jon", "johannes", "jan"],
    "erik": ["eric", "erich"],
    "eric": ["erik", "erich"],
    "karl": ["carl", "charles", "kalle"],
    "carl": ["karl", "charles"],
    "fredrik": ["frederick", "frederik", "friedrich"],
    "mikael": ["michael", "mikkel", "michel"],
    "michael": ["mikael", "mikkel", "michel"],
    "anders": ["andrew", "andreas", "andre"],
    "henrik": ["henry", "heinrich", "henri"],
    "lars": ["laurence", "lorenz", "laurentius"],
    "lena": ["helena", "lene"],
    "monica": ["monika", "mona"],
    "linda": ["lynda", "lind"],
}


def normalize_name(name: str | None) -> str:
    """Lower-case and trim *name*; ``None`` becomes the empty string."""
    return (name or "").strip().lower()


def extract_first_name(full_name: str | None) -> str | None:
    """Return the first whitespace-separated token of *full_name*."""
    if not full_name:
        return None
    parts = full_name.split()
    return parts[0] if parts else None


def is_latin_name(value: str) -> bool:
    return bool(_LATIN_NAME.match(value))


def filter_labels(labels: Iterable[str | None]) -> list[str]:
    """Lower-case, de-duplicate and drop unusable variant labels.

    Kept labels are non-empty, Latin-script only and 2-20 characters long.
    Order of first appearance is preserved.
    """
    seen: dict[str, None] = {}
    for label in labels:
        value = normalize_name(label)
        if not value or not is_latin_name(value):
            continue
        if not MIN_VARIANT_LENGTH <= len(value) <= MAX_VARIANT_LENGTH:
            continue
        seen.setdefault(value, None)
    return list(seen)


class NameVariantCache:
    """Thread-safe map of first name -> alternate spellings.

    ``get`` distinguishes three states: ``None`` (never looked up), ``[]``
    (looked up, no variants known) and a populated list.  Entries never
    expire.
    """

    def __init__(self, preload: Mapping[str, Sequence[str]] | None = None) -> None:
        self._entries: dict[str, list[str]] = {}
        self._lock = threading.RLock()
        if preload:
            for name, variants in preload.items():
                self.set(name, variants)

    def get(self, name: str) -> list[str] | None:
        with self._lock:
            variants = self._entries.get(normalize_name(name))
        return None if variants is None else list(variants)

    def set(self, name: str, variants: Iterable[str]) -> None:
        key = normalize_name(name)
        with self._lock:
            self._entries[key] = [v for v in variants if v != key]

    def set_if_absent(self, name: str, variants: Iterable[str]) -> bool:
        key = normalize_name(name)
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = [v for v in variants if v != key]
            return True

    def store_family(self, family: Sequence[str]) -> int:
        """Cache every member of *family* as equivalent to all the others.

        Names that already have an entry (including pre-seeded ones) are left
        untouched.  Returns the number of entries written.
        """
        members = list(dict.fromkeys(normalize_name(n) for n in family if n))
        written = 0
        with self._lock:
            for member in members:
                if member not in self._entries:
                    self._entries[member] = [m for m in members if m != member]
                    written += 1
        return written

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        with self._lock:
            return normalize_name(name) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        with self._lock:
            return {"size": len(self._entries), "entries": sorted(self._entries)}


def build_variant_query(name: str, limit: int, languages: Sequence[str] = LABEL_LANGUAGES) -> str:
    """SPARQL for P460 variants of the given-name item labelled *name*."""
    label = name.capitalize().replace("\\", "\\\\").replace('"', '\\"')
    lang_filter = " || ".join(f'LANG(?variantLabel) = "{lang}"' for lang in languages)
    return _SPARQL_TEMPLATE.format(label=label, languages=lang_filter, limit=limit)


class NameVariantResolver:
    """Resolve first names to their variant spellings through the cache.

    Concurrent lookups of the same uncached name share a single request.
    """

    def __init__(
        self,
        cache: NameVariantCache,
        *,
        client: httpx.AsyncClient | None = None,
        enabled: bool | None = None,
        endpoint: str | None = None,
        timeout: float | None = None,
        limit: int | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.cache = cache
        self._client = client
        self.enabled = settings.use_wikidata if enabled is None else enabled
        self._endpoint = endpoint or settings.wikidata_endpoint
        self._timeout = settings.wikidata_timeout if timeout is None else timeout
        self._limit = limit or settings.wikidata_limit
        self._user_agent = user_agent or settings.wikidata_user_agent
        self._in_flight: dict[str, asyncio.Future[list[str]]] = {}

    async def resolve(self, first_name: str | None) -> list[str]:
        """Return the variants of *first_name*, never including the name itself."""
        name = normalize_name(first_name)
        if not name:
            return []

        cached = self.cache.get(name)
        if cached is not None:
            return cached
        if not self.enabled:
            return []

        pending = self._in_flight.get(name)
        if pending is None:
            pending = asyncio.ensure_future(self._lookup(name))
            self._in_flight[name] = pending
            pending.add_done_callback(lambda _: self._in_flight.pop(name, None))
        return list(await asyncio.shield(pending))

    async def _lookup(self, name: str) -> list[str]:
        try:
            labels = await asyncio.wait_for(self._fetch_labels(name), self._timeout)
        except (TimeoutError, httpx.TimeoutException):
            logger.info("Wikidata timeout for '%s'", name)
            self.cache.set(name, [])
            return []
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Wikidata error for '%s': %s", name, exc)
            self.cache.set(name, [])
            return []

        family = [name] + [v for v in filter_labels(labels) if v != name]
        self.cache.store_family(family)
        variants = family[1:]

        if variants:
            more = f" (+{len(variants) - 5} more)" if len(variants) > 5 else ""
            logger.info(
                "Wikidata: '%s' -> %s%s [cached %d names]",
                name,
                ", ".join(variants[:5]),
                more,
                len(family),
            )
        else:
            logger.info("Wikidata: '%s' -> (no variants found)", name)
        return variants

    async def _fetch_labels(self, name: str) -> list[str | None]:
        if self._client is None:
            async with httpx.AsyncClient() as client:
                return await self._request_labels(client, name)
        return await self._request_labels(self._client, name)

    async def _request_labels(self, client: httpx.AsyncClient, name: str) -> list[str | None]:
        resp = await client.get(
            self._endpoint,
            params={"query": build_variant_query(name, self._limit)},
            headers={
                "Accept": "application/sparql-results+json",
                "User-Agent": self._user_agent,
            },
            timeout=self._timeout,
        )
        resp.raise_for_status()
        bindings = resp.json()["results"]["bindings"]
        labels = [(row.get("variantLabel") or {}).get("value") for row in bindings]
        if not all(label is None or isinstance(label, str) for label in labels):
            raise ValueError("non-string variant label in SPARQL response")
        return labels


def create_cache(preload_fallback: bool | None = None) -> NameVariantCache:
    """Build the process cache, optionally pre-seeded with :data:`FALLBACK_VARIANTS`."""
    if preload_fallback is None:
        preload_fallback = settings.preload_fallback_variants
    cache = NameVariantCache(FALLBACK_VARIANTS if preload_fallback else None)
    logger.info("Name variant cache initialised with %d entries", len(cache))
    return cache
