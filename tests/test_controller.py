"""Integration tests for the reference array controller."""

from __future__ import annotations

import pytest
from conftest import field_value

from refarray.controller import ReferenceArrayController
from refarray.models import SearchState, SortState, WidgetConfig
from refarray.mutations import DangerModeRequired
from refarray.services.store_service import MemoryDocumentStore


class UnreachableStore(MemoryDocumentStore):
    async def dereference(self, ids, projection=None):
        raise OSError("connection reset")


def _controller(binding, store, **config) -> ReferenceArrayController:
    config.setdefault("debounce_delay", 0.0)
    return ReferenceArrayController(binding, store, config=WidgetConfig(**config))


async def _search(controller: ReferenceArrayController, text: str) -> None:
    controller.set_search_text(text)
    await controller.search.wait_settled()


@pytest.mark.asyncio
async def test_search_hides_existing_references(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p2"), memory_store)

    await _search(controller, "widg")

    assert controller.search.result_ids == ["p3"]
    assert controller.search.state is SearchState.RESOLVED


@pytest.mark.asyncio
async def test_search_only_returns_accepted_kinds(make_binding, memory_store) -> None:
    controller = _controller(make_binding(kinds=("category",)), memory_store)

    await _search(controller, "widg")

    assert controller.search.result_ids == ["c1"]


@pytest.mark.asyncio
async def test_add_result_commits_and_updates_view(make_binding, memory_store) -> None:
    binding = make_binding("p1")
    controller = _controller(binding, memory_store)
    await _search(controller, "widg")

    assert await controller.add_result("p2") is True

    assert binding.ids == ["p1", "p2"]
    view = controller.view()
    assert [r.id for r in view.results] == ["p3"]
    assert view.reference_ids == ("p1", "p2")


@pytest.mark.asyncio
async def test_add_all_results_single_commit(make_binding, memory_store) -> None:
    binding = make_binding("p1", "p2")
    controller = _controller(binding, memory_store)
    await _search(controller, "wid")
    assert controller.search.result_ids == ["p3", "p4"]

    assert await controller.add_all_results() == 2

    assert len(binding.patches) == 1
    assert binding.ids == ["p1", "p2", "p3", "p4"]
    assert controller.search.text == ""


@pytest.mark.asyncio
async def test_remove_all_requires_arming(make_binding, memory_store) -> None:
    binding = make_binding("p1", "p2")
    controller = _controller(binding, memory_store)

    with pytest.raises(DangerModeRequired):
        await controller.remove_all()

    controller.toggle_danger_mode()
    assert controller.view().show_remove_all
    assert await controller.remove_all() is True

    assert binding.value is None
    assert not controller.danger_mode
    assert not controller.view().show_mode_toggles


@pytest.mark.asyncio
async def test_toggle_danger_mode_twice_disarms(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p1"), memory_store)

    controller.toggle_danger_mode()
    controller.toggle_danger_mode()

    assert not controller.danger_mode
    assert controller.view().mode == "search"


@pytest.mark.asyncio
async def test_sort_toggle_flips_direction_each_press(make_binding, memory_store) -> None:
    binding = make_binding("p1", "p2", "p4")
    controller = _controller(binding, memory_store)

    state = await controller.enter_sort_mode()
    assert state == SortState(field="price", known_ascending=False)
    assert controller.view().sort_button_label == "Sort (↑)"

    assert await controller.toggle_sort() is True
    assert binding.ids == ["p2", "p1", "p4"]
    assert controller.sort_state == SortState(field="price", known_ascending=True)
    assert controller.view().sort_button_label == "Sort (↓)"

    assert await controller.toggle_sort() is True
    assert binding.ids == ["p1", "p2", "p4"]
    assert controller.sort_state == SortState(field="price", known_ascending=False)


@pytest.mark.asyncio
async def test_select_sort_field_rederives_direction(make_binding, memory_store) -> None:
    binding = make_binding("p3", "p1")
    controller = _controller(binding, memory_store)
    await controller.enter_sort_mode()

    state = controller.select_sort_field("title")
    assert state == SortState(field="title", known_ascending=False)

    await controller.toggle_sort()
    assert binding.ids == ["p1", "p3"]


@pytest.mark.asyncio
async def test_toggle_sort_outside_sort_mode_does_nothing(make_binding, memory_store) -> None:
    binding = make_binding("p1", "p2")
    controller = _controller(binding, memory_store)

    assert await controller.toggle_sort() is False
    assert binding.patches == []


@pytest.mark.asyncio
async def test_sort_failure_becomes_notice(make_binding, catalog_documents) -> None:
    controller = _controller(make_binding("p1", "p2"), UnreachableStore(catalog_documents))

    assert await controller.enter_sort_mode() is None

    view = controller.view()
    assert not view.show_sort_button
    assert any("sorting" in notice for notice in view.notices)

    controller.dismiss_notices()
    assert controller.notices == []


@pytest.mark.asyncio
async def test_arming_danger_mode_leaves_sort_mode(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p1", "p2"), memory_store)
    await controller.enter_sort_mode()

    controller.toggle_danger_mode()

    assert not controller.sort_mode
    assert controller.sort_state is None
    assert controller.view().mode == "danger"


@pytest.mark.asyncio
async def test_exit_mode_returns_to_search(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p1", "p2"), memory_store)
    await controller.enter_sort_mode()

    controller.exit_mode()

    view = controller.view()
    assert view.mode == "search"
    assert view.show_mode_toggles


@pytest.mark.asyncio
async def test_mutation_in_sort_mode_refreshes_analysis(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p2"), memory_store)
    await controller.enter_sort_mode()

    await controller.add_result("p1")

    assert [d["_id"] for d in controller.analyzer.docs] == ["p2", "p1"]
    assert controller.sort_state == SortState(field="price", known_ascending=True)


@pytest.mark.asyncio
async def test_sync_from_host_refilters_results(make_binding, memory_store) -> None:
    controller = _controller(make_binding(), memory_store)
    await _search(controller, "widg")
    assert controller.search.result_ids == ["p2", "p3"]

    assert await controller.sync_from_host(field_value("p3")) is True

    assert controller.references.ids == ["p3"]
    assert controller.search.result_ids == ["p2"]


@pytest.mark.asyncio
async def test_host_change_in_sort_mode_keeps_sorting_available(make_binding, memory_store) -> None:
    binding = make_binding("p1", "p2", "p4")
    controller = _controller(binding, memory_store)
    await controller.enter_sort_mode()

    await controller.sync_from_host(field_value("p2", "p1"))

    assert controller.sort_mode
    assert [d["_id"] for d in controller.analyzer.docs] == ["p2", "p1"]
    assert controller.sort_state == SortState(field="price", known_ascending=True)
    assert controller.view().show_sort_button
    assert await controller.toggle_sort() is True
    assert binding.ids == ["p1", "p2"]


@pytest.mark.asyncio
async def test_host_clearing_field_leaves_sort_mode(make_binding, memory_store) -> None:
    controller = _controller(make_binding("p1", "p2"), memory_store)
    await controller.enter_sort_mode()

    await controller.sync_from_host(None)

    assert not controller.sort_mode
    assert controller.sort_state is None
    assert controller.view().mode == "search"


@pytest.mark.asyncio
async def test_on_change_is_called(make_binding, memory_store) -> None:
    calls: list[int] = []
    controller = ReferenceArrayController(
        make_binding("p1"),
        memory_store,
        config=WidgetConfig(debounce_delay=0.0),
        on_change=lambda: calls.append(1),
    )

    controller.toggle_danger_mode()
    await _search(controller, "widg")

    assert len(calls) >= 4


@pytest.mark.asyncio
async def test_close_stops_search(make_binding, memory_store) -> None:
    controller = _controller(make_binding(), memory_store, debounce_delay=10.0)
    controller.set_search_text("widg")

    await controller.close()
    controller.set_search_text("gad")

    assert controller.search.results == []
    assert controller.search.text == "widg"
