"""Render contract: controller state in, display description out."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from refarray.action_messages import (
    build_remove_all_prompt,
    build_result_count_label,
    build_sort_button_label,
)
from refarray.models import SearchResult, SortState

ViewMode = Literal["search", "sort", "danger"]


@dataclass(frozen=True, slots=True)
class ControllerView:
    """Everything a front end needs to draw the widget, and nothing else."""

    mode: ViewMode
    search_text: str
    columns: int
    show_search_input: bool
    show_sort_select: bool
    show_add_all: bool
    show_results: bool
    show_empty_results: bool
    show_mode_toggles: bool
    show_remove_all: bool
    show_sort_button: bool
    show_exit_mode: bool
    searching: bool
    results: tuple[SearchResult, ...]
    results_clickable: bool
    result_count_label: str
    sort_fields: tuple[str, ...]
    sort_field: str | None
    sort_button_label: str
    remove_all_prompt: str
    reference_ids: tuple[str, ...]
    notices: tuple[str, ...] = field(default_factory=tuple)


def build_view(
    *,
    search_text: str,
    results: Sequence[SearchResult],
    reference_ids: Sequence[str],
    danger_mode: bool,
    sort_mode: bool,
    sort_fields: Sequence[str] = (),
    sort_state: SortState | None = None,
    searching: bool = False,
    allow_single_add: bool = True,
    allow_bulk_add: bool = True,
    notices: Sequence[str] = (),
    ascii_icons: bool = False,
) -> ControllerView:
    """Decide which controls are visible for the given state.

    The mode toggles and the remove/sort buttons only appear while the search
    box is empty and the field holds references; typing always wins over the
    other modes.
    """
    has_text = search_text != ""
    has_results = bool(results)
    has_refs = bool(reference_ids)
    idle_with_refs = not has_text and has_refs

    mode: ViewMode = "danger" if danger_mode else "sort" if sort_mode else "search"
    if idle_with_refs and mode == "search":
        columns = 1
    elif (not has_results and not has_refs) or (has_text and not has_results):
        columns = 1
    else:
        columns = 2

    sort_available = sort_mode and sort_state is not None
    return ControllerView(
        mode=mode,
        search_text=search_text,
        columns=columns,
        show_search_input=not sort_mode,
        show_sort_select=sort_mode,
        show_add_all=has_text and has_results and allow_bulk_add,
        show_results=has_text and has_results,
        show_empty_results=has_text and not has_results and not searching,
        show_mode_toggles=idle_with_refs and mode == "search",
        show_remove_all=idle_with_refs and mode == "danger",
        show_sort_button=idle_with_refs and mode == "sort" and sort_available,
        show_exit_mode=idle_with_refs and mode != "search",
        searching=searching,
        results=tuple(results),
        results_clickable=allow_single_add,
        result_count_label=build_result_count_label(len(results) if has_text else 0),
        sort_fields=tuple(sort_fields) if sort_mode else (),
        sort_field=sort_state.field if sort_available and sort_state else None,
        sort_button_label=build_sort_button_label(
            bool(sort_state and sort_state.known_ascending), ascii_only=ascii_icons
        ),
        remove_all_prompt=build_remove_all_prompt(len(reference_ids)),
        reference_ids=tuple(reference_ids),
        notices=tuple(notices),
    )


__all__ = ["ControllerView", "ViewMode", "build_view"]
