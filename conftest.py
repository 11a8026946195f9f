"""Shared test fixtures for refarray tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from refarray.models import QueryFailure, SearchResult
from refarray.services.interfaces import FieldPatch, SetPatch
from refarray.services.store_service import MemoryDocumentStore

# ── Helpers ──────────────────────────────────────────────────────────────────


def field_value(*ids: str) -> list[dict[str, Any]]:
    """Host field value referencing ``ids`` in order."""
    return [{"_type": "reference", "_key": f"k-{ref_id}", "_ref": ref_id} for ref_id in ids]


def patch_ids(patch: FieldPatch) -> list[str]:
    """Ids carried by a committed patch ([] for unset)."""
    if isinstance(patch, SetPatch):
        return [item["_ref"] for item in patch.value]
    return []


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


class FakeBinding:
    """In-memory host field; records every committed patch."""

    def __init__(
        self,
        value: list[dict[str, Any]] | None = None,
        kinds: Iterable[str] = ("product",),
        *,
        fail_with: BaseException | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self._value = value
        self._kinds = frozenset(kinds)
        self.fail_with = fail_with
        self.gate = gate
        self.patches: list[FieldPatch] = []

    @property
    def value(self) -> list[dict[str, Any]] | None:
        return self._value

    @property
    def accepted_kinds(self) -> frozenset[str]:
        return self._kinds

    @property
    def ids(self) -> list[str]:
        return [item["_ref"] for item in self._value or []]

    def commit(self, patch: FieldPatch):
        if self.gate is None:
            self._apply(patch)
            return None
        return self._commit_later(patch)

    async def _commit_later(self, patch: FieldPatch) -> None:
        assert self.gate is not None
        await self.gate.wait()
        self._apply(patch)

    def _apply(self, patch: FieldPatch) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.patches.append(patch)
        self._value = list(patch.value) if isinstance(patch, SetPatch) else None


class ScriptedExecutor:
    """QueryExecutor double: canned responses, optional per-text gates."""

    def __init__(self, responses: dict[str, list[SearchResult] | QueryFailure] | None = None):
        self.responses = responses or {}
        self.gates: dict[str, asyncio.Event] = {}
        self.calls: list[str] = []

    async def search(self, text, allowed_kinds, limit=None):
        self.calls.append(text)
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        return self.responses.get(text, [])


# ── Factories ────────────────────────────────────────────────────────────────


@pytest.fixture
def make_result():
    """Factory fixture for SearchResult instances."""

    def _make(result_id: str, title: str | None = None, kind: str = "product") -> SearchResult:
        return SearchResult(id=result_id, title=title or result_id.upper(), kind=kind)

    return _make


@pytest.fixture
def make_binding():
    """Factory fixture for FakeBinding instances referencing ``ids``."""

    def _make(*ids: str, **kwargs: Any) -> FakeBinding:
        return FakeBinding(field_value(*ids) if ids else None, **kwargs)

    return _make


@pytest.fixture
def catalog_documents() -> list[dict[str, Any]]:
    """A small product catalog used across store and controller tests."""
    return [
        {"_id": "p1", "_type": "product", "title": "Gadget", "price": 20},
        {"_id": "p2", "_type": "product", "title": "Widget", "price": 10},
        {"_id": "p3", "_type": "product", "title": "Widgetron", "price": 30},
        {"_id": "p4", "_type": "product", "title": "Wide Angle Lens", "price": None},
        {"_id": "c1", "_type": "category", "title": "Widgets"},
        {"_id": "host", "_type": "page", "title": "Landing", "items": field_value("p1")},
    ]


@pytest.fixture
def memory_store(catalog_documents) -> MemoryDocumentStore:
    return MemoryDocumentStore(catalog_documents)
