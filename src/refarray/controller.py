"""Reference collection controller for one field editing session."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from refarray.models import SortState, WidgetConfig
from refarray.mutations import MutationController
from refarray.reference_set import ReferenceSet
from refarray.search import SearchController
from refarray.services.interfaces import DocumentStore, FieldBinding
from refarray.services.query_service import QueryExecutor
from refarray.sorting import SortAnalyzer
from refarray.view import ControllerView, build_view

logger = logging.getLogger(__name__)


class ReferenceArrayController:
    """Compose search, sort analysis and mutations around one field binding.

    Front ends call the action methods and redraw from :meth:`view` whenever
    ``on_change`` fires.
    """

    def __init__(
        self,
        binding: FieldBinding,
        store: DocumentStore,
        *,
        config: WidgetConfig | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.config = config or WidgetConfig()
        self._binding = binding
        self._on_change = on_change
        self.sort_mode = False

        self.executor = QueryExecutor(
            store,
            search_fields=self.config.search_fields,
            default_limit=self.config.result_limit,
        )
        self.analyzer = SortAnalyzer(store, sortable_fields=self.config.sortable_fields)
        self.mutations = MutationController(
            binding,
            self.analyzer,
            allow_single_add=self.config.allow_single_add,
            allow_bulk_add=self.config.allow_bulk_add,
            weak_references=self.config.weak_references,
        )
        self.search = SearchController(
            self.executor,
            references=lambda: self.mutations.references,
            allowed_kinds=binding.accepted_kinds,
            debounce_delay=self.config.debounce_delay,
            hide_existing=self.config.hide_existing,
            limit=self.config.result_limit,
            on_change=self._changed,
        )
        self.mutations.attach_search(self.search)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()

    @property
    def references(self) -> ReferenceSet:
        return self.mutations.references

    @property
    def danger_mode(self) -> bool:
        return self.mutations.danger_mode

    @property
    def sort_state(self) -> SortState | None:
        return self.analyzer.state

    @property
    def notices(self) -> list[str]:
        failures = (self.search.error, self.analyzer.failure, self.mutations.error)
        return [f.message for f in failures if f is not None]

    # ── Search ──────────────────────────────────────────────────────────

    def set_search_text(self, text: str) -> None:
        self.search.set_text(text)

    def clear_search(self) -> None:
        self.search.clear()

    # ── Mutations ───────────────────────────────────────────────────────

    async def add_result(self, result_id: str) -> bool:
        added = await self.mutations.add_one(result_id)
        await self._after_mutation()
        return added

    async def add_all_results(self) -> int:
        """Add every displayed result, in display order."""
        added = await self.mutations.add_all(self.search.result_ids)
        await self._after_mutation()
        return added

    def toggle_danger_mode(self) -> None:
        if self.mutations.danger_mode:
            self.mutations.disarm_danger_mode()
        else:
            self._leave_sort_mode()
            self.mutations.arm_danger_mode()
        self._changed()

    async def remove_all(self) -> bool:
        removed = await self.mutations.remove_all()
        await self._after_mutation()
        return removed

    async def sync_from_host(self, value: Sequence[Any] | None) -> bool:
        """Adopt a field value the host changed outside this controller.

        In sort mode the analysis is rebuilt for the new references.
        """
        if not self.mutations.sync_from_host(value):
            return False
        self.search.refilter()
        await self._after_mutation()
        return True

    async def _after_mutation(self) -> None:
        if self.sort_mode:
            if len(self.references):
                await self.analyzer.enter(self.references)
            else:
                self._leave_sort_mode()
        if not len(self.references):
            self.mutations.disarm_danger_mode()
        self._changed()

    # ── Sorting ─────────────────────────────────────────────────────────

    async def enter_sort_mode(self) -> SortState | None:
        """Enter sort mode, re-deriving the field catalog from current documents."""
        self.mutations.disarm_danger_mode()
        self.sort_mode = True
        state = await self.analyzer.enter(self.references)
        if state is None and self.analyzer.failure is None:
            logger.debug("No sortable fields for %d references", len(self.references))
        self._changed()
        return state

    def select_sort_field(self, field: str) -> SortState | None:
        state = self.analyzer.select_field(field)
        self._changed()
        return state

    async def toggle_sort(self) -> bool:
        """Sort by the selected field, flipping direction when already ascending."""
        state = self.analyzer.state
        if not self.sort_mode or state is None:
            return False
        docs, failure = await self.mutations.apply_sort(state.field, state.next_direction)
        if failure is not None:
            self.analyzer.failure = failure
            self.analyzer.invalidate()
        elif docs:
            self.analyzer.adopt(docs)
        self._changed()
        return failure is None and self.mutations.error is None

    def _leave_sort_mode(self) -> None:
        self.sort_mode = False
        self.analyzer.exit()

    def exit_mode(self) -> None:
        """Leave sort or danger mode and go back to searching."""
        self._leave_sort_mode()
        self.mutations.disarm_danger_mode()
        self._changed()

    # ── Rendering / lifecycle ───────────────────────────────────────────

    def dismiss_notices(self) -> None:
        self.search.dismiss_error()
        self.analyzer.failure = None
        self.mutations.error = None
        self._changed()

    def view(self, *, ascii_icons: bool = False) -> ControllerView:
        return build_view(
            search_text=self.search.text,
            results=self.search.results,
            reference_ids=self.references.ids,
            danger_mode=self.mutations.danger_mode,
            sort_mode=self.sort_mode,
            sort_fields=self.analyzer.fields,
            sort_state=self.analyzer.state,
            searching=self.search.pending,
            allow_single_add=self.config.allow_single_add,
            allow_bulk_add=self.config.allow_bulk_add,
            notices=self.notices,
            ascii_icons=ascii_icons,
        )

    async def close(self) -> None:
        """Unmount: stop timers and drop in-flight queries."""
        await self.search.close()
        self._leave_sort_mode()


__all__ = ["ReferenceArrayController"]
