"""Service interfaces + default adapters for controller-level dependency injection."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from refarray.models import QueryFilter, StoreConfig
from refarray.services.store_service import MemoryDocumentStore, SanityDocumentStore

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentStore(Protocol):
    """Interface for the host document database."""

    async def query(
        self, query_filter: QueryFilter, projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        """Return records matching ``query_filter``, projected to ``projection``."""
        ...

    async def dereference(
        self, ids: Sequence[str], projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        """Expand document ids into (projected) documents; unknown ids are omitted."""
        ...

    async def get_document(self, doc_id: str) -> dict[str, Any] | None:
        """Fetch one full document."""
        ...

    async def patch_field(self, doc_id: str, field: str, value: Any | None) -> None:
        """Set one field of a document, or unset it when ``value`` is None."""
        ...


@dataclass(frozen=True, slots=True)
class SetPatch:
    """Replace the field with a new ordered reference list."""

    value: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UnsetPatch:
    """Remove the field from the host document."""


FieldPatch = SetPatch | UnsetPatch


@runtime_checkable
class FieldBinding(Protocol):
    """Interface for the host form field being edited."""

    @property
    def value(self) -> list[dict[str, Any]] | None:
        """Current field value (ordered list of reference dicts)."""
        ...

    @property
    def accepted_kinds(self) -> frozenset[str]:
        """Document kinds this field may reference."""
        ...

    def commit(self, patch: FieldPatch) -> Awaitable[None] | None:
        """Persist ``patch``; may return an awaitable."""
        ...


async def apply_commit(binding: FieldBinding, patch: FieldPatch) -> None:
    """Call ``binding.commit`` and await it when the host returns an awaitable."""
    result = binding.commit(patch)
    if inspect.isawaitable(result):
        await result


class StoreFieldBinding:
    """Field binding backed directly by a document store."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        document_id: str,
        field_name: str,
        accepted_kinds: Sequence[str],
        value: list[dict[str, Any]] | None = None,
    ) -> None:
        self._store = store
        self.document_id = document_id
        self.field_name = field_name
        self._accepted_kinds = frozenset(accepted_kinds)
        self._value = value

    @classmethod
    async def load(
        cls,
        store: DocumentStore,
        *,
        document_id: str,
        field_name: str,
        accepted_kinds: Sequence[str],
    ) -> StoreFieldBinding:
        """Read the field's current value from the store."""
        document = await store.get_document(document_id)
        if document is None:
            raise LookupError(f"Document {document_id!r} was not found")
        raw = document.get(field_name)
        value = raw if isinstance(raw, list) else None
        return cls(
            store,
            document_id=document_id,
            field_name=field_name,
            accepted_kinds=accepted_kinds,
            value=value,
        )

    @property
    def value(self) -> list[dict[str, Any]] | None:
        return self._value

    @property
    def accepted_kinds(self) -> frozenset[str]:
        return self._accepted_kinds

    async def commit(self, patch: FieldPatch) -> None:
        new_value = patch.value if isinstance(patch, SetPatch) else None
        await self._store.patch_field(self.document_id, self.field_name, new_value)
        self._value = new_value
        logger.debug(
            "Committed %s.%s (%d references)",
            self.document_id,
            self.field_name,
            len(new_value or []),
        )


@dataclass(slots=True)
class ControllerServices:
    """Aggregated services consumed by the controller layer."""

    store: DocumentStore
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None


def build_default_services(
    config: StoreConfig,
    *,
    memory_store: MemoryDocumentStore | None = None,
) -> ControllerServices:
    """Use ``memory_store`` when given, else a Sanity store with a shared client."""
    if memory_store is not None:
        return ControllerServices(store=memory_store)
    client = httpx.AsyncClient()
    return ControllerServices(store=SanityDocumentStore(config, client=client), http_client=client)


__all__ = [
    "ControllerServices",
    "DocumentStore",
    "FieldBinding",
    "FieldPatch",
    "SetPatch",
    "StoreFieldBinding",
    "UnsetPatch",
    "apply_commit",
    "build_default_services",
]
