"""Terminal widget for editing one reference array field."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from textual import on
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.widgets import Button, Input, Label, ListItem, ListView, Select, Static

from refarray.action_messages import build_added_notification
from refarray.controller import ReferenceArrayController
from refarray.models import SearchResult, WidgetConfig
from refarray.services.interfaces import DocumentStore, FieldBinding
from refarray.view import ControllerView

logger = logging.getLogger(__name__)


class ResultItem(ListItem):
    """A search result row; selecting it adds the reference."""

    def __init__(self, result: SearchResult) -> None:
        super().__init__(Label(result.title, markup=False))
        self.result_id = result.id


class ReferenceItem(ListItem):
    """A row of the current reference list."""

    def __init__(self, ref_id: str) -> None:
        super().__init__(Label(ref_id, markup=False))
        self.ref_id = ref_id


class ReferenceArrayInput(Vertical):
    """Search, bulk add, sort and clear for an ordered reference field."""

    class Committed(Message):
        """The field value changed after a user action."""

        def __init__(self, reference_ids: list[str], summary: str) -> None:
            super().__init__()
            self.reference_ids = reference_ids
            self.summary = summary

    BINDINGS = [
        Binding("ctrl+a", "add_all", "Add all"),
        Binding("escape", "cancel", "Clear / exit mode"),
    ]

    DEFAULT_CSS = """
    ReferenceArrayInput {
        height: auto;
    }

    ReferenceArrayInput #ref-toolbar {
        height: auto;
    }

    ReferenceArrayInput #ref-search,
    ReferenceArrayInput #ref-sort-field {
        width: 1fr;
    }

    ReferenceArrayInput #ref-toolbar Button {
        min-width: 8;
    }

    ReferenceArrayInput #ref-notice {
        height: auto;
        background: $error 20%;
        padding: 0 1;
    }

    ReferenceArrayInput #ref-notice-text {
        width: 1fr;
    }

    ReferenceArrayInput #ref-results {
        height: auto;
        max-height: 20;
        border: solid $panel;
    }

    ReferenceArrayInput #ref-result-count {
        width: 100%;
        content-align: right middle;
        color: $text-muted;
    }

    ReferenceArrayInput #ref-current-title {
        margin-top: 1;
        text-style: bold;
    }

    ReferenceArrayInput #ref-current {
        height: auto;
        max-height: 20;
    }
    """

    def __init__(
        self,
        binding: FieldBinding,
        store: DocumentStore,
        *,
        config: WidgetConfig | None = None,
        ascii_icons: bool = False,
        id: str | None = None,
    ) -> None:
        super().__init__(id=id)
        self.controller = ReferenceArrayController(
            binding, store, config=config, on_change=self._schedule_render
        )
        self._ascii_icons = ascii_icons
        self._render_pending = False
        self._shown_results: tuple[SearchResult, ...] | None = None
        self._shown_refs: tuple[str, ...] | None = None
        self._shown_sort_fields: list[str] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

    def compose(self) -> ComposeResult:
        with Horizontal(id="ref-toolbar"):
            yield Input(placeholder="Find", id="ref-search")
            yield Select[str]([], prompt="Sort by", id="ref-sort-field")
            yield Button("Add", variant="success", id="ref-add-all")
            yield Button("Sort", variant="warning", id="ref-sort-mode")
            yield Button("Lock", variant="error", id="ref-danger")
            yield Button("Remove all", variant="error", id="ref-remove-all")
            yield Button("Sort", variant="warning", id="ref-sort")
            yield Button("x", id="ref-exit-mode")
        with Horizontal(id="ref-notice"):
            yield Static("", id="ref-notice-text", markup=False)
            yield Button("Dismiss", id="ref-notice-dismiss")
        yield ListView(id="ref-results")
        yield Label("", id="ref-result-count")
        yield Label("References", id="ref-current-title")
        yield ListView(id="ref-current")

    async def on_mount(self) -> None:
        await self._render_view()

    async def on_unmount(self) -> None:
        await self.controller.close()
        pending = [task for task in self._background_tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending, timeout=0.5)
        self._background_tasks.clear()

    # ── Task tracking ───────────────────────────────────────────────────

    def _track_task(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        """Create an asyncio task and track it to prevent garbage collection."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        task.add_done_callback(self._on_task_done)
        return task

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        """Log unhandled exceptions from background tasks."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Unhandled exception in background task: %s", exc, exc_info=exc)

    # ── Rendering ───────────────────────────────────────────────────────

    def _schedule_render(self) -> None:
        """Coalesce controller change callbacks into one redraw."""
        if self._render_pending or not self.is_mounted:
            return
        self._render_pending = True
        self.call_later(self._render_view)

    async def _render_view(self) -> None:
        self._render_pending = False
        view = self.controller.view(ascii_icons=self._ascii_icons)
        self._apply_visibility(view)
        await self._sync_results(view)
        await self._sync_references(view)

    def _apply_visibility(self, view: ControllerView) -> None:
        search_input = self.query_one("#ref-search", Input)
        search_input.display = view.show_search_input
        if view.search_text == "" and search_input.value != "":
            search_input.value = ""

        sort_select = self.query_one("#ref-sort-field", Select)
        sort_select.display = view.show_sort_select
        if view.show_sort_select:
            options = [(name, name) for name in view.sort_fields]
            if [o[0] for o in options] != self._shown_sort_fields:
                self._shown_sort_fields = [o[0] for o in options]
                sort_select.set_options(options)
            if view.sort_field is not None and sort_select.value != view.sort_field:
                sort_select.value = view.sort_field

        self.query_one("#ref-add-all", Button).display = view.show_add_all
        self.query_one("#ref-sort-mode", Button).display = view.show_mode_toggles
        self.query_one("#ref-danger", Button).display = view.show_mode_toggles
        self.query_one("#ref-remove-all", Button).display = view.show_remove_all
        sort_button = self.query_one("#ref-sort", Button)
        sort_button.display = view.show_sort_button
        sort_button.label = view.sort_button_label
        self.query_one("#ref-exit-mode", Button).display = view.show_exit_mode

        notice = self.query_one("#ref-notice", Horizontal)
        notice.display = bool(view.notices)
        self.query_one("#ref-notice-text", Static).update("\n\n".join(view.notices))

        count_label = self.query_one("#ref-result-count", Label)
        count_label.display = view.show_results or view.show_empty_results
        count_label.update("Searching..." if view.searching else view.result_count_label)
        self.query_one("#ref-results", ListView).display = view.show_results

    async def _sync_results(self, view: ControllerView) -> None:
        if view.results == self._shown_results:
            return
        self._shown_results = view.results
        results_list = self.query_one("#ref-results", ListView)
        await results_list.clear()
        if view.results:
            await results_list.extend(ResultItem(result) for result in view.results)

    async def _sync_references(self, view: ControllerView) -> None:
        if view.reference_ids == self._shown_refs:
            return
        self._shown_refs = view.reference_ids
        current_list = self.query_one("#ref-current", ListView)
        await current_list.clear()
        if view.reference_ids:
            await current_list.extend(ReferenceItem(ref_id) for ref_id in view.reference_ids)

    # ── Events ──────────────────────────────────────────────────────────

    @on(Input.Changed, "#ref-search")
    def on_search_changed(self, event: Input.Changed) -> None:
        self.controller.set_search_text(event.value)

    @on(Input.Submitted, "#ref-search")
    def on_search_submitted(self, event: Input.Submitted) -> None:
        self.action_add_all()

    @on(ListView.Selected, "#ref-results")
    def on_result_selected(self, event: ListView.Selected) -> None:
        item = event.item
        if isinstance(item, ResultItem) and self.controller.config.allow_single_add:
            self._track_task(self._add_one(item.result_id))

    @on(Select.Changed, "#ref-sort-field")
    def on_sort_field_changed(self, event: Select.Changed) -> None:
        if isinstance(event.value, str):
            self.controller.select_sort_field(event.value)

    @on(Button.Pressed)
    def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "ref-add-all":
            self.action_add_all()
        elif button_id == "ref-sort-mode":
            self._track_task(self._enter_sort_mode())
        elif button_id == "ref-danger":
            self.controller.toggle_danger_mode()
        elif button_id == "ref-remove-all":
            self._track_task(self._remove_all())
        elif button_id == "ref-sort":
            self._track_task(self._toggle_sort())
        elif button_id == "ref-exit-mode":
            self.controller.exit_mode()
        elif button_id == "ref-notice-dismiss":
            self.controller.dismiss_notices()

    # ── Actions ─────────────────────────────────────────────────────────

    def action_add_all(self) -> None:
        if self.controller.config.allow_bulk_add and self.controller.search.results:
            self._track_task(self._add_all())

    def action_cancel(self) -> None:
        if self.controller.sort_mode or self.controller.danger_mode:
            self.controller.exit_mode()
        else:
            self.controller.clear_search()

    def _post_committed(self, summary: str) -> None:
        self.post_message(self.Committed(self.controller.references.ids, summary))

    async def _add_one(self, result_id: str) -> None:
        if await self.controller.add_result(result_id):
            self._post_committed(build_added_notification(1))

    async def _add_all(self) -> None:
        added = await self.controller.add_all_results()
        self._post_committed(build_added_notification(added))

    async def _enter_sort_mode(self) -> None:
        await self.controller.enter_sort_mode()
        if self.controller.sort_mode:
            self.query_one("#ref-sort-field", Select).focus()

    async def _toggle_sort(self) -> None:
        state = self.controller.sort_state
        if await self.controller.toggle_sort() and state is not None:
            self._post_committed(f"Sorted by {state.field}")

    async def _remove_all(self) -> None:
        if await self.controller.remove_all():
            self._post_committed("Removed all references")


__all__ = ["ReferenceArrayInput", "ReferenceItem", "ResultItem"]
