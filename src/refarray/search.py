"""Debounced search-as-you-type with last-request-wins result handling."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from refarray.models import (
    SEARCH_DEBOUNCE_DELAY,
    QueryFailure,
    SearchResult,
    SearchState,
)
from refarray.reference_set import ReferenceSet
from refarray.services.query_service import QueryExecutor

logger = logging.getLogger(__name__)


class SearchController:
    """Own the debounce timer and the displayed results for one search box.

    Every dispatched query gets a token; a response is applied only when its
    token is still the newest one, so a slow early keystroke can never
    overwrite the results of a later one. Results are filtered against the
    live reference set when they arrive, not when the query was sent.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        *,
        references: Callable[[], ReferenceSet],
        allowed_kinds: Iterable[str],
        debounce_delay: float = SEARCH_DEBOUNCE_DELAY,
        hide_existing: bool = True,
        limit: int | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._executor = executor
        self._references = references
        self._allowed_kinds = frozenset(allowed_kinds)
        self._delay = max(0.0, debounce_delay)
        self.hide_existing = hide_existing
        self._limit = limit
        self._on_change = on_change

        self.text = ""
        self.state = SearchState.IDLE
        self.error: QueryFailure | None = None
        self._results: list[SearchResult] = []
        self._timer: asyncio.TimerHandle | None = None
        self._request_token = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def results(self) -> list[SearchResult]:
        return list(self._results)

    @property
    def result_ids(self) -> list[str]:
        return [r.id for r in self._results]

    @property
    def pending(self) -> bool:
        """True while a timer is armed or the newest query is in flight."""
        return self.state in (SearchState.DEBOUNCING, SearchState.QUERYING)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _cancel_timer(self) -> None:
        # Atomic swap: capture and clear before cancelling
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            if not task.done():
                task.cancel()

    def set_text(self, text: str) -> None:
        """Record new search text and restart the debounce timer."""
        if self._closed:
            return
        self.text = text
        self._cancel_timer()
        if not text.strip():
            self._reset()
            self._notify()
            return
        # A query for the previous text is dead as soon as the text changes.
        self._request_token += 1
        self.state = SearchState.DEBOUNCING
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._delay, self._dispatch)
        self._notify()

    def clear(self) -> None:
        """Clear text and results immediately, abandoning any in-flight query."""
        self.text = ""
        self._cancel_timer()
        self._reset()
        self._notify()

    def _reset(self) -> None:
        self._request_token += 1
        self._cancel_tasks()
        self._results = []
        self.error = None
        self.state = SearchState.IDLE

    def _dispatch(self) -> None:
        """Timer callback: issue the query for the current text."""
        self._timer = None
        if self._closed:
            return
        self._request_token += 1
        token = self._request_token
        self.state = SearchState.QUERYING
        task = asyncio.get_running_loop().create_task(self._run_query(self.text, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._on_task_done)
        self._notify()

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from query tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in search task: %s", exc, exc_info=exc)

    async def _run_query(self, text: str, token: int) -> None:
        outcome = await self._executor.search(text, self._allowed_kinds, self._limit)

        # Ignore responses superseded by newer keystrokes, clears or teardown.
        if token != self._request_token or self._closed:
            logger.debug("Discarded stale search results for %r", text)
            return

        if isinstance(outcome, QueryFailure):
            self._results = []
            self.error = outcome
            self.state = SearchState.FAILED
        else:
            self._results = self._filter(outcome)
            self.error = None
            self.state = SearchState.RESOLVED
        self._notify()

    def _filter(self, results: Iterable[SearchResult]) -> list[SearchResult]:
        if not self.hide_existing:
            return list(results)
        current = self._references()
        return [r for r in results if not current.contains(r.id)]

    def refilter(self) -> None:
        """Re-apply the hide-existing filter against the current reference set."""
        filtered = self._filter(self._results)
        if len(filtered) != len(self._results):
            self._results = filtered
            self._notify()

    def discard(self, result_id: str) -> None:
        """Drop one result from the displayed list."""
        remaining = [r for r in self._results if r.id != result_id]
        if len(remaining) != len(self._results):
            self._results = remaining
            self._notify()

    def dismiss_error(self) -> None:
        if self.error is None:
            return
        self.error = None
        if self.state is SearchState.FAILED:
            self.state = SearchState.IDLE
        self._notify()

    async def flush(self) -> None:
        """Dispatch a pending debounced query now and wait for it."""
        if self._timer is not None:
            self._cancel_timer()
            self._dispatch()
        await self.wait_settled()

    async def wait_settled(self) -> None:
        """Wait until the debounce timer has fired and queries have finished."""
        while self._timer is not None:
            await asyncio.sleep(min(self._delay, 0.05))
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        """Teardown: stop the timer and abandon queries without state updates."""
        self._closed = True
        self._cancel_timer()
        self._request_token += 1
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending, timeout=0.5)
        self._tasks.clear()


__all__ = ["SearchController"]
