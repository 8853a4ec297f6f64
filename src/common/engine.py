"""Thin async adapter over the two supported search engine clients.

The catalog can live in either Elasticsearch or OpenSearch.  Both speak the
same wire protocol but their Python clients hand back responses differently:
``elasticsearch`` wraps every body in an ``ObjectApiResponse`` (payload under
``.body``) while ``opensearch-py`` returns plain dicts.  Everything above this
module only sees :class:`SearchEngine` and plain dicts produced by
:func:`unwrap_response`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Iterable

from elasticsearch import AsyncElasticsearch
from elasticsearch import ApiError as ElasticsearchApiError
from elasticsearch import TransportError as ElasticsearchTransportError
from elasticsearch.helpers import async_bulk as es_async_bulk
from opensearchpy import AsyncOpenSearch
from opensearchpy.exceptions import OpenSearchException
from opensearchpy.helpers import async_bulk as os_async_bulk

from src.common.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

# Hosted OpenSearch providers reachable only through the OpenSearch client.
_OPENSEARCH_HOST_MARKERS = ("bonsai", "opensearch")


class EngineError(RuntimeError):
    """Raised when the search engine rejects a request or cannot be reached."""


def unwrap_response(response: Any) -> dict[str, Any]:
    """Return the JSON payload of an engine response as a plain dict.

    Accepts client response objects exposing ``.body``, transport envelopes of
    the form ``{"body": ..., "statusCode": ...}`` and bare payload dicts.
    """
    body = getattr(response, "body", response)
    if isinstance(body, Mapping) and "body" in body and "statusCode" in body:
        body = body["body"]
    if body is None:
        return {}
    if not isinstance(body, Mapping):
        raise EngineError(f"Unexpected engine response type: {type(body).__name__}")
    return dict(body)


class SearchEngine(ABC):
    """Operations the indexing and search layers need from the engine."""

    name: str = "engine"

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    @abstractmethod
    def _errors(self) -> tuple[type[BaseException], ...]:
        """Exception types raised by the underlying client library."""

    @abstractmethod
    async def _bulk(self, actions: list[dict[str, Any]], refresh: bool) -> tuple[int, list]:
        """Run the client library's async bulk helper."""

    async def _call(self, operation: str, coro) -> Any:
        try:
            return await coro
        except self._errors as exc:
            logger.debug("%s %s failed: %s", self.name, operation, exc)
            raise EngineError(f"{operation} failed: {exc}") from exc

    async def cluster_health(self) -> dict[str, Any]:
        return unwrap_response(await self._call("cluster health", self._client.cluster.health()))

    async def index_exists(self, index: str) -> bool:
        return bool(await self._call("index exists", self._client.indices.exists(index=index)))

    async def delete_index(self, index: str) -> None:
        await self._call("delete index", self._client.indices.delete(index=index))

    async def create_index(self, index: str, body: dict[str, Any]) -> None:
        await self._call("create index", self._client.indices.create(index=index, body=body))

    async def plugin_names(self) -> set[str]:
        """Names of the plugins installed on any node of the cluster."""
        info = unwrap_response(
            await self._call("nodes info", self._client.nodes.info(metric="plugins"))
        )
        names: set[str] = set()
        for node in (info.get("nodes") or {}).values():
            for plugin in node.get("plugins") or []:
                if plugin.get("name"):
                    names.add(plugin["name"])
        return names

    async def search(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        return unwrap_response(await self._call("search", self._client.search(index=index, body=body)))

    async def count(self, index: str) -> int:
        result = unwrap_response(await self._call("count", self._client.count(index=index)))
        return int(result.get("count", 0))

    async def bulk_index(
        self, index: str, docs: Iterable[Mapping[str, Any]], refresh: bool = True
    ) -> tuple[int, list]:
        """Index *docs* in one bulk request; returns (indexed, per-item errors)."""
        actions = [{"_op_type": "index", "_index": index, "_source": dict(doc)} for doc in docs]
        return await self._call("bulk", self._bulk(actions, refresh))

    async def close(self) -> None:
        await self._client.close()


class ElasticsearchEngine(SearchEngine):
    name = "elasticsearch"

    @property
    def _errors(self) -> tuple[type[BaseException], ...]:
        return (ElasticsearchApiError, ElasticsearchTransportError)

    async def _bulk(self, actions: list[dict[str, Any]], refresh: bool) -> tuple[int, list]:
        return await es_async_bulk(
            self._client, actions, refresh=refresh, raise_on_error=False
        )


class OpenSearchEngine(SearchEngine):
    name = "opensearch"

    @property
    def _errors(self) -> tuple[type[BaseException], ...]:
        return (OpenSearchException,)

    async def _bulk(self, actions: list[dict[str, Any]], refresh: bool) -> tuple[int, list]:
        return await os_async_bulk(
            self._client, actions, refresh=refresh, raise_on_error=False
        )


def resolve_engine_kind(host: str, engine: str = "auto") -> str:
    """Pick ``elasticsearch`` or ``opensearch`` for *host*."""
    engine = engine.lower()
    if engine in (ElasticsearchEngine.name, OpenSearchEngine.name):
        return engine
    if engine != "auto":
        raise ValueError(f"Unknown engine '{engine}'")
    if any(marker in host.lower() for marker in _OPENSEARCH_HOST_MARKERS):
        return OpenSearchEngine.name
    return ElasticsearchEngine.name


def create_engine(config: Settings | None = None) -> SearchEngine:
    """Instantiate the adapter selected by *config* (defaults to env settings)."""
    config = config or default_settings
    kind = resolve_engine_kind(config.es_host, config.engine)
    logger.info("Using %s client for %s", kind, config.es_host)
    if kind == OpenSearchEngine.name:
        return OpenSearchEngine(
            AsyncOpenSearch(hosts=[config.es_host], timeout=config.es_request_timeout)
        )
    return ElasticsearchEngine(
        AsyncElasticsearch(config.es_host, request_timeout=config.es_request_timeout)
    )
