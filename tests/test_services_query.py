"""Tests for the bounded search executor."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from refarray.models import DEFAULT_RESULT_LIMIT, MAX_RESULT_LIMIT, QueryFailure, StoreConfig
from refarray.services.query_service import (
    QueryExecutor,
    coerce_result_limit,
    describe_failure,
    to_search_result,
)
from refarray.services.store_service import SanityDocumentStore, StoreError


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://abc.api.sanity.io/v1/data/query/production")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


def _store(records=None, side_effect=None) -> AsyncMock:
    store = AsyncMock()
    store.query = AsyncMock(return_value=records or [], side_effect=side_effect)
    return store


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (10, 10),
        (0, 1),
        (-5, 1),
        (MAX_RESULT_LIMIT + 1, MAX_RESULT_LIMIT),
        ("20", DEFAULT_RESULT_LIMIT),
        (True, DEFAULT_RESULT_LIMIT),
        (None, DEFAULT_RESULT_LIMIT),
    ],
)
def test_coerce_result_limit(value, expected) -> None:
    assert coerce_result_limit(value) == expected


def test_to_search_result_falls_back_to_id_for_title() -> None:
    result = to_search_result({"_id": "p1", "_type": "product", "sku": 7}, ("name",))
    assert result is not None
    assert result.title == "p1"
    assert result.kind == "product"
    assert result.extra == {"sku": 7}


def test_to_search_result_uses_search_field_as_title() -> None:
    result = to_search_result({"_id": "p1", "name": "Widget"}, ("name",))
    assert result is not None and result.title == "Widget"


def test_to_search_result_requires_id() -> None:
    assert to_search_result({"title": "no id"}, ()) is None


@pytest.mark.parametrize(
    ("exc", "fragment"),
    [
        (_status_error(401), "refused access"),
        (_status_error(429), "rate limit"),
        (_status_error(503), "HTTP 503"),
        (httpx.ConnectTimeout("slow"), "did not answer in time"),
        (StoreError("bad payload"), "bad payload"),
        (OSError("disk"), "network or I/O error"),
    ],
)
def test_describe_failure_messages(exc, fragment) -> None:
    message = describe_failure(exc)
    assert message.startswith("Could not search documents.")
    assert fragment in message
    assert "Next step:" in message


def test_describe_failure_custom_action() -> None:
    assert describe_failure(OSError(), action="save the field").startswith(
        "Could not save the field."
    )


@pytest.mark.asyncio
async def test_search_builds_filter_and_projection() -> None:
    store = _store([{"_id": "p2", "_type": "product", "title": "Widget"}])
    executor = QueryExecutor(store, search_fields=["title", "sku"], default_limit=10)

    results = await executor.search("wid  blue", ["product", "variant"])

    assert [r.id for r in results] == ["p2"]
    query_filter, projection = store.query.await_args.args
    assert query_filter.kinds == ("product", "variant")
    assert query_filter.fields == ("title", "sku")
    assert query_filter.terms == ("wid", "blue")
    assert query_filter.limit == 10
    assert projection == ["_id", "_type", "title", "sku"]


@pytest.mark.asyncio
@pytest.mark.parametrize(("text", "kinds"), [("   ", ["product"]), ("wid", [])])
async def test_search_short_circuits_without_terms_or_kinds(text, kinds) -> None:
    store = _store()
    executor = QueryExecutor(store)

    assert await executor.search(text, kinds) == []
    store.query.assert_not_awaited()


@pytest.mark.asyncio
async def test_search_dedupes_and_caps_results() -> None:
    records = [
        {"_id": "a", "title": "A"},
        {"_id": "a", "title": "A again"},
        {"title": "anonymous"},
        {"_id": "b", "title": "B"},
        {"_id": "c", "title": "C"},
    ]
    executor = QueryExecutor(_store(records))

    results = await executor.search("x", ["product"], limit=2)

    assert [r.id for r in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_search_limit_is_clamped() -> None:
    store = _store()
    executor = QueryExecutor(store)

    await executor.search("x", ["product"], limit=MAX_RESULT_LIMIT * 10)

    assert store.query.await_args.args[0].limit == MAX_RESULT_LIMIT


@pytest.mark.asyncio
async def test_search_failure_returns_query_failure() -> None:
    executor = QueryExecutor(_store(side_effect=_status_error(500)))

    outcome = await executor.search("wid", ["product"])

    assert isinstance(outcome, QueryFailure)
    assert "HTTP 500" in outcome.message
    assert outcome.detail


@pytest.mark.asyncio
async def test_search_against_memory_store(memory_store) -> None:
    executor = QueryExecutor(memory_store)

    results = await executor.search("wid", ["product"])

    assert [r.id for r in results] == ["p2", "p3", "p4"]
    assert results[0].title == "Widget"
    assert results[0].extra == {}


@pytest.mark.asyncio
async def test_search_with_dotted_search_field_returns_query_failure() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"result": []})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    store = SanityDocumentStore(StoreConfig(project_id="abc123"), client=client)
    executor = QueryExecutor(store, search_fields=["author.name"])

    outcome = await executor.search("ada", ["book"])

    assert isinstance(outcome, QueryFailure)
    assert "author.name" in outcome.detail
    assert "store configuration" in outcome.message
    assert requests == []
