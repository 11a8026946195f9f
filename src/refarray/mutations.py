"""Serialized, deduplicating commits to the persisted reference field."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from refarray.action_messages import build_actionable_error
from refarray.models import CommitFailure, ResolutionFailure, SortDirection
from refarray.reference_set import ReferenceSet
from refarray.search import SearchController
from refarray.services.interfaces import (
    FieldBinding,
    FieldPatch,
    SetPatch,
    UnsetPatch,
    apply_commit,
)
from refarray.services.store_service import StoreError
from refarray.sorting import Document, SortAnalyzer, target_order

logger = logging.getLogger(__name__)


class DangerModeRequired(RuntimeError):
    """remove_all() was called without arming danger mode first."""


class MutationController:
    """Single writer for one reference field.

    Operations queue on one lock and build their new set from the state that
    is current when they acquire it, so a sort and an add can never overwrite
    each other's result.
    """

    def __init__(
        self,
        binding: FieldBinding,
        analyzer: SortAnalyzer,
        *,
        search: SearchController | None = None,
        allow_single_add: bool = True,
        allow_bulk_add: bool = True,
        weak_references: bool = True,
    ) -> None:
        self._binding = binding
        self._analyzer = analyzer
        self._search = search
        self.allow_single_add = allow_single_add
        self.allow_bulk_add = allow_bulk_add
        self.weak_references = weak_references
        self._references = ReferenceSet.from_field_value(binding.value)
        self._lock = asyncio.Lock()
        self.danger_mode = False
        self.error: CommitFailure | None = None
        self.commit_count = 0

    @property
    def references(self) -> ReferenceSet:
        return self._references

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def attach_search(self, search: SearchController) -> None:
        self._search = search

    def sync_from_host(self, value: Sequence[Any] | None) -> bool:
        """Adopt a field value changed outside this controller.

        Ignored while a commit is pending: the field is single-writer for the
        length of a commit.
        """
        if self._lock.locked():
            logger.debug("Ignoring host value change during a pending commit")
            return False
        self._references = ReferenceSet.from_field_value(value)
        self._analyzer.invalidate()
        return True

    async def _commit(self, new_set: ReferenceSet) -> bool:
        patch: FieldPatch = SetPatch(new_set.to_field_value()) if len(new_set) else UnsetPatch()
        try:
            await apply_commit(self._binding, patch)
        except (httpx.HTTPError, OSError, TimeoutError, StoreError) as exc:
            logger.warning("Commit of %d references failed: %s", len(new_set), exc, exc_info=True)
            self.error = CommitFailure(
                message=build_actionable_error(
                    "save the reference list",
                    why=str(exc) or "the store rejected the change",
                    next_step="retry; the field still shows its last saved value",
                ),
                detail=str(exc),
            )
            return False
        self._references = new_set
        self.error = None
        self.commit_count += 1
        return True

    async def add_one(self, result_id: str) -> bool:
        """Add one search result; returns True when a commit happened."""
        if not self.allow_single_add or not result_id:
            return False
        async with self._lock:
            if self._references.contains(result_id):
                return False
            committed = await self._commit(
                self._references.with_added([result_id], weak=self.weak_references)
            )
        if committed and self._search is not None:
            self._search.discard(result_id)
        return committed

    async def add_all(self, result_ids: Sequence[str]) -> int:
        """Add every displayed result in display order with a single commit.

        Returns the number of references added.
        """
        if not self.allow_bulk_add:
            return 0
        async with self._lock:
            current = self._references
            new_set = current.with_added(result_ids, weak=self.weak_references)
            added = len(new_set) - len(current)
            committed = added > 0 and await self._commit(new_set)
        if (committed or added == 0) and self._search is not None:
            self._search.clear()
        return added if committed else 0

    def arm_danger_mode(self) -> None:
        self.danger_mode = True

    def disarm_danger_mode(self) -> None:
        self.danger_mode = False

    async def remove_all(self) -> bool:
        if not self.danger_mode:
            raise DangerModeRequired("Arm danger mode before removing all references")
        async with self._lock:
            if not len(self._references):
                self.danger_mode = False
                return False
            committed = await self._commit(self._references.with_removed_all())
        if committed:
            self.danger_mode = False
            if self._search is not None:
                self._search.refilter()
        return committed

    async def apply_sort(
        self, field: str, direction: SortDirection
    ) -> tuple[list[Document], ResolutionFailure | None]:
        """Reorder the field by ``field`` of the referenced documents.

        Returns the documents in their new order, or the resolution failure
        that prevented the commit. References whose document could not be
        found keep their relative order at the end of the list.
        """
        async with self._lock:
            current = self._references
            docs, failure = await self._analyzer.fetch_expanded(current)
            if failure is not None:
                return [], failure
            if not docs:
                return [], None
            order = target_order(docs, field, direction)
            resolved = set(order)
            order.extend(i for i in current.ids if i not in resolved)
            new_set = current.reordered(order)
            by_id = {d.get("_id"): d for d in docs}
            ordered_docs = [by_id[i] for i in new_set.ids if i in by_id]
            if new_set == current:
                return ordered_docs, None
            if not await self._commit(new_set):
                return [], None
            return ordered_docs, None


__all__ = ["DangerModeRequired", "MutationController"]
