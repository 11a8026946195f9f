"""Sort analysis over the documents a reference set points at.

The sort direction is never stored: whether the set is "already ascending" is
derived from the current documents every time, and the next sort simply flips
to the other direction.

Comparator contract:

    value kind        ordering
    ────────────────  ─────────────────────────────────────────
    missing / None    always last, in either direction
    bool/int/float    native numeric order
    str               case-folded locale collation, raw collation tie-break
    anything else     native order, falling back to repr()
    mixed kinds       numbers < strings < others
"""

from __future__ import annotations

import functools
import locale
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from refarray.models import (
    RESERVED_FIELD_PREFIX,
    ResolutionFailure,
    SortDirection,
    SortState,
)
from refarray.reference_set import ReferenceSet
from refarray.services.interfaces import DocumentStore
from refarray.services.query_service import describe_failure
from refarray.services.store_service import StoreError

logger = logging.getLogger(__name__)

Document = dict[str, Any]

_RANK_NUMBER = 0
_RANK_STRING = 1
_RANK_OTHER = 2


def _kind_rank(value: Any) -> int:
    if isinstance(value, (bool, int, float)):
        return _RANK_NUMBER
    if isinstance(value, str):
        return _RANK_STRING
    return _RANK_OTHER


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def _collate(a: str, b: str) -> int:
    try:
        return _sign(locale.strcoll(a, b))
    except ValueError:
        # strcoll rejects embedded NUL characters
        return (a > b) - (a < b)


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison of two field values; None sorts last."""
    if a is None or b is None:
        if a is None and b is None:
            return 0
        return 1 if a is None else -1

    rank_a, rank_b = _kind_rank(a), _kind_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1

    if rank_a == _RANK_STRING:
        result = _collate(a.casefold(), b.casefold())
        return result if result != 0 else _collate(a, b)

    try:
        if a < b:
            return -1
        if a > b:
            return 1
        return 0
    except TypeError:
        ra, rb = repr(a), repr(b)
        return (ra > rb) - (ra < rb)


def compare(a: Document, b: Document, field: str) -> int:
    """Compare two documents by ``field``."""
    return compare_values(a.get(field), b.get(field))


def document_id(doc: Document) -> str:
    value = doc.get("_id")
    return value if isinstance(value, str) else ""


def sort_documents(
    docs: Sequence[Document], field: str, *, descending: bool = False
) -> list[Document]:
    """Stable sort by ``field``; documents without the field always trail.

    ``sorted`` keeps equal elements in input order even with ``reverse=True``,
    so ties never move.
    """
    present = [d for d in docs if d.get(field) is not None]
    missing = [d for d in docs if d.get(field) is None]
    key = functools.cmp_to_key(lambda a, b: compare(a, b, field))
    return sorted(present, key=key, reverse=descending) + missing


def target_order(docs: Sequence[Document], field: str, direction: SortDirection) -> list[str]:
    """Ids of ``docs`` in the order a sort by ``field``/``direction`` produces."""
    ordered = sort_documents(docs, field, descending=direction == "desc")
    return [document_id(d) for d in ordered]


def is_ascending_sorted(docs: Sequence[Document], field: str) -> bool:
    if len(docs) <= 1:
        return True
    return target_order(docs, field, "asc") == [document_id(d) for d in docs]


def toggle_direction(docs: Sequence[Document], field: str) -> SortDirection:
    """Already ascending sorts descending; anything else sorts ascending."""
    return "desc" if is_ascending_sorted(docs, field) else "asc"


def field_catalog(docs: Sequence[Document]) -> list[str]:
    """Sortable field names: the first document's public keys, sorted."""
    if not docs:
        return []
    return sorted(k for k in docs[0] if not k.startswith(RESERVED_FIELD_PREFIX))


class SortAnalyzer:
    """Dereference a reference set and track sort-mode state for it."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        sortable_fields: Sequence[str] | None = None,
    ) -> None:
        self._store = store
        self._configured_fields = list(sortable_fields) if sortable_fields else None
        self.active = False
        self.docs: list[Document] = []
        self.fields: list[str] = []
        self.state: SortState | None = None
        self.failure: ResolutionFailure | None = None
        self._preferred_field: str | None = None

    @property
    def available(self) -> bool:
        return self.active and self.failure is None and self.state is not None

    async def fetch_expanded(
        self, references: ReferenceSet
    ) -> tuple[list[Document], ResolutionFailure | None]:
        """Resolve every reference to its document, in reference order.

        Dangling references are absent from the result. On failure the
        document list is empty and the failure is returned alongside it.
        """
        ids = references.ids
        if not ids:
            return [], None
        try:
            docs = await self._store.dereference(ids)
        except (httpx.HTTPError, OSError, TimeoutError, StoreError) as exc:
            logger.warning("Could not dereference %d references: %s", len(ids), exc, exc_info=True)
            message = describe_failure(exc, action="load referenced documents for sorting")
            return [], ResolutionFailure(message=message, detail=str(exc))
        by_id = {document_id(d): d for d in docs if document_id(d)}
        return [by_id[i] for i in ids if i in by_id], None

    def catalog(self, docs: Sequence[Document]) -> list[str]:
        if not docs:
            return []
        if self._configured_fields is not None:
            return list(self._configured_fields)
        return field_catalog(docs)

    async def enter(self, references: ReferenceSet, field: str | None = None) -> SortState | None:
        """Enter (or refresh) sort mode; None means sorting is unavailable."""
        self.active = True
        docs, failure = await self.fetch_expanded(references)
        self.failure = failure
        self.docs = docs
        self.fields = self.catalog(docs)
        if failure is not None or not self.fields:
            self.state = None
            return None
        preferred = field or self._preferred_field
        chosen = preferred if preferred in self.fields else self.fields[0]
        return self._evaluate(chosen)

    def select_field(self, field: str) -> SortState | None:
        if field not in self.fields:
            logger.debug("Ignoring unknown sort field %r", field)
            return self.state
        return self._evaluate(field)

    def adopt(self, docs: Sequence[Document]) -> SortState | None:
        """Replace cached documents (e.g. after a sort commit) and re-evaluate."""
        self.docs = list(docs)
        if self.state is None:
            return None
        return self._evaluate(self.state.field)

    def _evaluate(self, field: str) -> SortState:
        self._preferred_field = field
        self.state = SortState(field=field, known_ascending=is_ascending_sorted(self.docs, field))
        return self.state

    def invalidate(self) -> None:
        """Forget documents and state derived from an outdated reference set."""
        self.docs = []
        self.state = None

    def exit(self) -> None:
        self.active = False
        self.failure = None
        self.invalidate()


__all__ = [
    "SortAnalyzer",
    "compare",
    "compare_values",
    "document_id",
    "field_catalog",
    "is_ascending_sorted",
    "sort_documents",
    "target_order",
    "toggle_direction",
]
