"""
Shared pytest fixtures: an in-memory search engine and Wikidata stubs.
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from src.common.engine import EngineError, SearchEngine, unwrap_response


class FakeEngine(SearchEngine):
    """In-memory :class:`SearchEngine` recording every request.

    ``handler`` receives each search body and returns the raw response
    (wrapped or not) or an exception instance to raise.
    """

    name = "elasticsearch"
    _errors = (EngineError,)

    def __init__(
        self,
        handler: Callable[[dict], Any] | None = None,
        plugins: tuple[str, ...] = (),
        plugins_error: bool = False,
        health: str = "green",
    ) -> None:
        super().__init__(client=None)
        self.handler = handler or (lambda body: {})
        self.plugins = set(plugins)
        self.plugins_error = plugins_error
        self.health = health
        self.indices: dict[str, list[dict]] = {}
        self.searches: list[dict] = []
        self.created: list[tuple[str, dict]] = []
        self.deleted: list[str] = []
        self.plugin_probes = 0
        self.closed = False

    async def _bulk(self, actions, refresh):
        for action in actions:
            self.indices[action["_index"]].append(action["_source"])
        return len(actions), []

    async def cluster_health(self) -> dict:
        if isinstance(self.health, Exception):
            raise self.health
        return {"status": self.health}

    async def index_exists(self, index: str) -> bool:
        return index in self.indices

    async def delete_index(self, index: str) -> None:
        self.deleted.append(index)
        del self.indices[index]

    async def create_index(self, index: str, body: dict) -> None:
        if index in self.indices:
            raise EngineError(f"resource_already_exists_exception: {index}")
        self.created.append((index, body))
        self.indices[index] = []

    async def plugin_names(self) -> set[str]:
        self.plugin_probes += 1
        if self.plugins_error:
            raise EngineError("nodes info failed: security_exception")
        return set(self.plugins)

    async def search(self, index: str, body: dict) -> dict:
        self.searches.append(body)
        result = self.handler(body)
        if isinstance(result, Exception):
            raise result
        return unwrap_response(result)

    async def count(self, index: str) -> int:
        return len(self.indices.get(index, []))

    async def close(self) -> None:
        self.closed = True


def aggregation_handler(**buckets: list[tuple[Any, int]]) -> Callable[[dict], dict]:
    """Answer aggregation queries by name, document queries with no hits."""

    def handler(body: dict) -> dict:
        aggs = body.get("aggs") or {}
        return {
            "hits": {"total": {"value": 0}, "hits": []},
            "aggregations": {
                name: {
                    "buckets": [
                        {"key": key, "doc_count": count}
                        for key, count in buckets.get(name, [])
                    ]
                }
                for name in aggs
            },
        }

    return handler


@pytest.fixture
def fake_engine():
    return FakeEngine()


class WikidataStub:
    """``httpx.MockTransport`` handler serving canned SPARQL label rows."""

    def __init__(self, labels: list[str] | None = None, status: int = 200) -> None:
        self.labels = labels or []
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status, text="Service Unavailable")
        rows = [{"variantLabel": {"type": "literal", "value": v}} for v in self.labels]
        return httpx.Response(200, json={"head": {"vars": ["variantLabel"]}, "results": {"bindings": rows}})


@pytest.fixture
def wikidata():
    return WikidataStub()
