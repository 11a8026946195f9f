"""Standalone terminal editor hosting one reference array widget."""

from __future__ import annotations

import logging

from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header

from refarray.models import WidgetConfig
from refarray.services.interfaces import ControllerServices, StoreFieldBinding
from refarray.widgets.reference_array import ReferenceArrayInput

logger = logging.getLogger(__name__)


class ReferenceEditorApp(App[None]):
    """Edit ``document.field`` of a store-backed document."""

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        binding: StoreFieldBinding,
        services: ControllerServices,
        *,
        config: WidgetConfig | None = None,
        ascii_icons: bool = False,
    ) -> None:
        super().__init__()
        self._binding = binding
        self._services = services
        self._config = config or WidgetConfig()
        self._ascii_icons = ascii_icons

    def compose(self) -> ComposeResult:
        yield Header()
        yield ReferenceArrayInput(
            self._binding,
            self._services.store,
            config=self._config,
            ascii_icons=self._ascii_icons,
            id="reference-array",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"{self._binding.document_id} · {self._binding.field_name}"
        self._update_sub_title(len(self._binding.value or []))

    async def on_unmount(self) -> None:
        await self._services.aclose()

    def _update_sub_title(self, count: int) -> None:
        self.sub_title = f"{count} reference{'s' if count != 1 else ''}"

    @on(ReferenceArrayInput.Committed)
    def on_references_committed(self, event: ReferenceArrayInput.Committed) -> None:
        self._update_sub_title(len(event.reference_ids))
        self.notify(event.summary, title="References")


__all__ = ["ReferenceEditorApp"]
