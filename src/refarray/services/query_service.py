"""Bounded prefix search against the document store."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any

import httpx

from refarray.action_messages import build_actionable_error
from refarray.models import (
    DEFAULT_RESULT_LIMIT,
    DEFAULT_SEARCH_FIELDS,
    MAX_RESULT_LIMIT,
    QueryFailure,
    QueryFilter,
    SearchResult,
)
from refarray.services.store_service import StoreError

if TYPE_CHECKING:
    from refarray.services.interfaces import DocumentStore

logger = logging.getLogger(__name__)


def coerce_result_limit(value: Any) -> int:
    """Clamp a result limit to 1..MAX_RESULT_LIMIT, defaulting bad input."""
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_RESULT_LIMIT
    return max(1, min(value, MAX_RESULT_LIMIT))


def split_terms(text: str) -> tuple[str, ...]:
    return tuple(text.split())


def describe_failure(exc: BaseException, *, action: str = "search documents") -> str:
    """Build notice copy for a failed store call."""
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        if status_code in (401, 403):
            return build_actionable_error(
                action,
                why=f"the store refused access (HTTP {status_code})",
                next_step="check the API token and dataset permissions",
            )
        if status_code == 429:
            return build_actionable_error(
                action,
                why="the store rate limit was reached (HTTP 429)",
                next_step="wait a few seconds and try again",
            )
        return build_actionable_error(
            action,
            why=f"the store answered with HTTP {status_code}",
            next_step="retry in a minute",
        )
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return build_actionable_error(
            action,
            why="the store did not answer in time",
            next_step="check connectivity and try again",
        )
    if isinstance(exc, StoreError):
        return build_actionable_error(
            action,
            why=str(exc),
            next_step="check the store configuration",
        )
    return build_actionable_error(
        action,
        why="a network or I/O error occurred",
        next_step="check connectivity and try again",
    )


def to_search_result(record: dict[str, Any], title_fields: Sequence[str]) -> SearchResult | None:
    """Convert one store record to a SearchResult; None when it has no id."""
    doc_id = record.get("_id")
    if not isinstance(doc_id, str) or not doc_id:
        return None
    title = ""
    for field in ("title", *title_fields):
        value = record.get(field)
        if isinstance(value, str) and value:
            title = value
            break
    extra = {k: v for k, v in record.items() if k not in ("_id", "_type", "title")}
    kind = record.get("_type")
    return SearchResult(
        id=doc_id,
        title=title or doc_id,
        kind=kind if isinstance(kind, str) else "",
        extra=extra,
    )


class QueryExecutor:
    """Stateless search wrapper; failures come back as QueryFailure values."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        search_fields: Iterable[str] = DEFAULT_SEARCH_FIELDS,
        default_limit: int = DEFAULT_RESULT_LIMIT,
    ) -> None:
        self._store = store
        self._fields = tuple(search_fields) or DEFAULT_SEARCH_FIELDS
        self._default_limit = coerce_result_limit(default_limit)

    @property
    def search_fields(self) -> tuple[str, ...]:
        return self._fields

    def build_filter(
        self, text: str, allowed_kinds: Iterable[str], limit: int | None = None
    ) -> QueryFilter:
        return QueryFilter(
            kinds=tuple(sorted(set(allowed_kinds))),
            fields=self._fields,
            terms=split_terms(text),
            limit=coerce_result_limit(limit if limit is not None else self._default_limit),
        )

    async def search(
        self,
        text: str,
        allowed_kinds: Iterable[str],
        limit: int | None = None,
    ) -> list[SearchResult] | QueryFailure:
        """Search documents of ``allowed_kinds`` whose fields start with ``text``.

        Blank text or an empty kind set returns ``[]`` without touching the
        store. Cancellation propagates to the caller.
        """
        query_filter = self.build_filter(text, allowed_kinds, limit)
        if not query_filter.terms or not query_filter.kinds:
            return []

        projection = list(dict.fromkeys(("_id", "_type", "title", *self._fields)))
        try:
            records = await self._store.query(query_filter, projection)
        except (httpx.HTTPError, OSError, TimeoutError, StoreError) as exc:
            logger.warning("Reference search failed for %r: %s", text, exc, exc_info=True)
            return QueryFailure(message=describe_failure(exc), detail=str(exc))

        results: list[SearchResult] = []
        seen: set[str] = set()
        for record in records:
            result = to_search_result(record, self._fields)
            if result is None or result.id in seen:
                continue
            seen.add(result.id)
            results.append(result)
            if len(results) >= query_filter.limit:
                break
        logger.debug("Search %r returned %d results", text, len(results))
        return results


__all__ = [
    "QueryExecutor",
    "coerce_result_limit",
    "describe_failure",
    "split_terms",
    "to_search_result",
]
