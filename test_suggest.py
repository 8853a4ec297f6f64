import asyncio

import pytest

from conftest import FakeEngine, aggregation_handler
from src.common.capabilities import EngineCapabilities
from src.common.engine import EngineError
from src.search.filters import ActiveFilters
from src.search.suggest import (
    SuggestionFederator,
    fan_out,
    find_matched_terms,
    parse_query,
)


def _federator(engine: FakeEngine, phonetic: bool | None = False) -> SuggestionFederator:
    return SuggestionFederator(
        engine, EngineCapabilities(engine, phonetic=phonetic), index_name="books", size=5, year_size=10
    )


def _body_with_agg(engine: FakeEngine, name: str) -> dict:
    return next(b for b in engine.searches if name in (b.get("aggs") or {}))


def _titles_body(engine: FakeEngine) -> dict:
    return next(b for b in engine.searches if "_source" in b)


def _fields(clauses: list[dict]) -> set[str]:
    return {field for clause in clauses for kind in clause.values() for field in kind}


def _should(body: dict) -> list[dict]:
    return body["query"]["bool"]["must"][0]["bool"]["should"]


def _filters(body: dict) -> list[dict]:
    return body["query"]["bool"]["filter"]


class TestParseQuery:
    def test_year_substring_is_removed_from_text(self):
        parsed = parse_query("Dan Brown 2017")
        assert parsed.text == "Dan Brown"
        assert parsed.terms == ["dan", "brown"]
        assert parsed.year_patterns == ["2017"]

    def test_partial_year_prefix(self):
        parsed = parse_query("202")
        assert parsed.text == ""
        assert parsed.year_patterns == ["202"]
        assert not parsed.has_text
        assert parsed.has_year

    @pytest.mark.parametrize("raw", ["zlatan", "20", "2", "1850 classics", "21st century", "20234"])
    def test_no_year_detected(self, raw):
        assert parse_query(raw).year_patterns == []

    def test_year_in_middle_collapses_whitespace(self):
        parsed = parse_query("  thriller 1999   noir ")
        assert parsed.text == "thriller noir"
        assert parsed.year_patterns == ["1999"]


def test_find_matched_terms_is_case_insensitive_substring():
    assert find_matched_terms("Daniel Hurst", ["dan", "hurst", "brown"]) == ["dan", "hurst"]
    assert find_matched_terms("Psykologisk Thriller", ["thri"]) == ["thri"]
    assert find_matched_terms(None, ["dan"]) == []


@pytest.mark.parametrize("query", ["", "d", " d ", None])
def test_short_query_returns_empty_without_engine_calls(query):
    engine = FakeEngine()
    envelope = asyncio.run(_federator(engine).suggest(query))

    for category in ("authors", "titles", "genres", "years"):
        assert envelope[category] == []
    assert engine.searches == []


def test_authors_scenario_counts_and_matched_terms():
    engine = FakeEngine(aggregation_handler(authors=[("Daniel Hurst", 2), ("Dan Brown", 1)]))

    envelope = asyncio.run(_federator(engine).suggest("dan"))

    assert envelope["authors"] == [
        {"value": "Daniel Hurst", "count": 2, "matchedTerms": ["dan"]},
        {"value": "Dan Brown", "count": 1, "matchedTerms": ["dan"]},
    ]
    assert envelope["yearPattern"] is None
    assert envelope["years"] == []
    # authors, titles and genres only; no year pattern means no year query
    assert len(engine.searches) == 3


def test_active_filter_does_not_suppress_its_own_dimension():
    engine = FakeEngine(aggregation_handler(authors=[("Dan Brown", 1)]))
    filters = ActiveFilters(authors=("Dan Brown",), genres=("Thriller",))

    asyncio.run(_federator(engine).suggest("dan", filters))

    author_filters = _filters(_body_with_agg(engine, "authors"))
    assert {"terms": {"author.keyword": ["Dan Brown"]}} not in author_filters
    assert {"terms": {"genre": ["Thriller"]}} in author_filters

    title_filters = _filters(_titles_body(engine))
    assert {"terms": {"author.keyword": ["Dan Brown"]}} in title_filters
    assert {"terms": {"genre": ["Thriller"]}} in title_filters

    genre_filters = _filters(_body_with_agg(engine, "genres"))
    assert {"terms": {"author.keyword": ["Dan Brown"]}} in genre_filters
    assert {"terms": {"genre": ["Thriller"]}} not in genre_filters


def test_year_query_excludes_year_filter_and_filters_prefixes():
    engine = FakeEngine(aggregation_handler(years=[(2025, 3), (2024, 4), (2019, 1), (2020, 2)]))
    filters = ActiveFilters(years=(2024,), genres=("Deckare",))

    envelope = asyncio.run(_federator(engine).suggest("202", filters))

    assert envelope["years"] == [
        {"value": 2025, "count": 3},
        {"value": 2024, "count": 4},
        {"value": 2020, "count": 2},
    ]
    assert len(engine.searches) == 1
    body = engine.searches[0]
    assert _should(body) == [{"match": {"releaseYear.autocomplete": {"query": "202"}}}]
    assert _filters(body) == [{"terms": {"genre": ["Deckare"]}}]
    assert body["aggs"]["years"]["terms"]["order"] == {"_key": "desc"}
    assert body["aggs"]["years"]["terms"]["size"] == 10


def test_genre_query_prefix_matches_each_term():
    engine = FakeEngine(aggregation_handler(genres=[("Psykologisk Thriller", 5), ("Thriller", 19)]))

    envelope = asyncio.run(_federator(engine).suggest("psyk thri"))

    body = _body_with_agg(engine, "genres")
    assert _should(body) == [
        {"prefix": {"genre": {"value": "psyk", "case_insensitive": True}}},
        {"prefix": {"genre": {"value": "thri", "case_insensitive": True}}},
    ]
    assert envelope["genres"][0]["matchedTerms"] == ["psyk", "thri"]
    assert envelope["genres"][1]["matchedTerms"] == ["thri"]


def test_titles_return_documents():
    def handler(body):
        if "_source" in body:
            return {
                "hits": {
                    "total": {"value": 1},
                    "hits": [
                        {
                            "_id": "b1",
                            "_score": 3.2,
                            "_source": {
                                "title": "Min dotters man",
                                "author": "Daniel Hurst",
                                "releaseYear": 2023,
                                "rating": 3.7,
                                "genre": ["Thriller"],
                            },
                        }
                    ],
                }
            }
        return {}

    engine = FakeEngine(handler)
    envelope = asyncio.run(_federator(engine).suggest("min dan"))

    assert envelope["titles"] == [
        {
            "id": "b1",
            "value": "Min dotters man",
            "author": "Daniel Hurst",
            "year": 2023,
            "rating": 3.7,
            "genre": ["Thriller"],
            "matchedTerms": ["min"],
        }
    ]
    assert _titles_body(engine)["size"] == 5


def test_phonetic_clauses_only_when_available():
    engine = FakeEngine()
    asyncio.run(_federator(engine, phonetic=False).suggest("kristoffer"))
    fields = _fields(_should(_body_with_agg(engine, "authors"))) | _fields(_should(_titles_body(engine)))
    assert "nameVariants" in fields
    assert not {"author.phonetic", "title.phonetic"} & fields

    engine = FakeEngine()
    asyncio.run(_federator(engine, phonetic=True).suggest("kristoffer"))
    assert "author.phonetic" in _fields(_should(_body_with_agg(engine, "authors")))
    assert {"title.phonetic", "author.phonetic"} <= _fields(_should(_titles_body(engine)))


def test_phonetic_probe_runs_once_per_process():
    engine = FakeEngine(plugins=("analysis-phonetic",))
    federator = SuggestionFederator(engine, EngineCapabilities(engine), index_name="books")

    asyncio.run(federator.suggest("dan"))
    asyncio.run(federator.suggest("lars"))

    assert engine.plugin_probes == 1
    assert "author.phonetic" in _fields(_should(_body_with_agg(engine, "authors")))


def test_any_failure_fails_whole_request():
    def handler(body):
        if "genres" in (body.get("aggs") or {}):
            return EngineError("search failed: index_not_found_exception")
        return {}

    engine = FakeEngine(handler)
    with pytest.raises(EngineError, match="index_not_found_exception"):
        asyncio.run(_federator(engine).suggest("dan 2023"))


def test_wrapped_responses_are_normalised():
    class Wrapped:
        def __init__(self, body):
            self.body = body

    inner = aggregation_handler(authors=[("Dan Brown", 1)])
    engine = FakeEngine(lambda body: Wrapped(inner(body)))

    envelope = asyncio.run(_federator(engine).suggest("dan"))
    assert envelope["authors"][0]["value"] == "Dan Brown"


def test_envelope_echoes_query_state():
    engine = FakeEngine()
    filters = ActiveFilters.from_params("Dan Brown", "", "2017")
    envelope = asyncio.run(_federator(engine).suggest("brown 2017", filters))

    assert envelope["query"] == "brown 2017"
    assert envelope["textQuery"] == "brown"
    assert envelope["yearPattern"] == ["2017"]
    assert envelope["activeFilters"] == {"authors": ["Dan Brown"], "genres": [], "years": [2017]}


def test_fan_out_keeps_order_and_propagates_first_error():
    async def value(v, delay=0.0):
        await asyncio.sleep(delay)
        return v

    async def boom():
        raise EngineError("boom")

    assert asyncio.run(fan_out(value(1, 0.02), value(2), value(3, 0.01))) == [1, 2, 3]

    cancelled = []

    async def slow():
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    with pytest.raises(EngineError, match="boom"):
        asyncio.run(fan_out(slow(), boom()))
    assert cancelled == [True]
