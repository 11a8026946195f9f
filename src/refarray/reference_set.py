"""Immutable ordered collection of references held by one field."""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Iterable, Iterator, Sequence
from typing import Any

from refarray.models import REFERENCE_KEY_LENGTH, REFERENCE_TYPE, Reference

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.digits + string.ascii_lowercase


class InvariantViolation(ValueError):
    """Raised when a reference set would hold the same document twice."""


def new_reference_key() -> str:
    """Generate an opaque base-36 slot key for a new reference."""
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(REFERENCE_KEY_LENGTH))


class ReferenceSet:
    """Ordered references with unique target ids.

    Every operation returns a new set; the instance itself never changes, so a
    set handed to a commit cannot be altered while the commit is pending.
    """

    __slots__ = ("_index", "_references")

    def __init__(self, references: Iterable[Reference] = ()) -> None:
        refs = tuple(references)
        index: dict[str, int] = {}
        for position, ref in enumerate(refs):
            if ref.id in index:
                raise InvariantViolation(f"Duplicate reference to {ref.id!r}")
            index[ref.id] = position
        self._references = refs
        self._index = index

    @classmethod
    def from_field_value(cls, value: Sequence[Any] | None) -> ReferenceSet:
        """Hydrate from the host field value (a list of reference dicts).

        Malformed items are skipped and repeated targets keep their first
        occurrence, so a damaged field still opens.
        """
        if not value:
            return cls()
        refs: list[Reference] = []
        seen: set[str] = set()
        for item in value:
            if not isinstance(item, dict):
                logger.warning("Skipping non-object reference item %r", item)
                continue
            ref_id = item.get("_ref")
            if not isinstance(ref_id, str) or not ref_id:
                logger.warning("Skipping reference item without _ref: %r", item)
                continue
            if ref_id in seen:
                logger.warning("Dropping duplicate reference to %s", ref_id)
                continue
            seen.add(ref_id)
            key = item.get("_key")
            refs.append(
                Reference(
                    id=ref_id,
                    key=key if isinstance(key, str) and key else new_reference_key(),
                    weak=bool(item.get("_weak", False)),
                )
            )
        return cls(refs)

    def to_field_value(self) -> list[dict[str, Any]]:
        """Serialize to the host field representation."""
        value: list[dict[str, Any]] = []
        for ref in self._references:
            item: dict[str, Any] = {"_type": REFERENCE_TYPE, "_key": ref.key, "_ref": ref.id}
            if ref.weak:
                item["_weak"] = True
            value.append(item)
        return value

    @property
    def ids(self) -> list[str]:
        return [ref.id for ref in self._references]

    @property
    def references(self) -> tuple[Reference, ...]:
        return self._references

    def contains(self, ref_id: str) -> bool:
        return ref_id in self._index

    def __contains__(self, ref_id: object) -> bool:
        return ref_id in self._index

    def __len__(self) -> int:
        return len(self._references)

    def __iter__(self) -> Iterator[Reference]:
        return iter(self._references)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReferenceSet):
            return NotImplemented
        return self._references == other._references

    def __hash__(self) -> int:
        return hash(self._references)

    def __repr__(self) -> str:
        return f"ReferenceSet({self.ids!r})"

    def with_added(self, ids: Iterable[str], *, weak: bool = True) -> ReferenceSet:
        """Append a fresh reference for each id not already present.

        Ids already in the set (or repeated within ``ids``) are dropped
        silently; existing order is preserved and new ids keep input order.
        """
        refs = list(self._references)
        seen = set(self._index)
        for ref_id in ids:
            if not ref_id or ref_id in seen:
                continue
            seen.add(ref_id)
            refs.append(Reference(id=ref_id, key=new_reference_key(), weak=weak))
        if len(refs) == len(self._references):
            return self
        return ReferenceSet(refs)

    def with_removed_all(self) -> ReferenceSet:
        return ReferenceSet()

    def reordered(self, id_order: Iterable[str]) -> ReferenceSet:
        """Permute references to follow ``id_order``.

        References whose id is missing from ``id_order`` are dropped and ids
        without a matching reference are skipped.
        """
        refs: list[Reference] = []
        placed: set[str] = set()
        for ref_id in id_order:
            position = self._index.get(ref_id)
            if position is None or ref_id in placed:
                continue
            placed.add(ref_id)
            refs.append(self._references[position])
        return ReferenceSet(refs)


__all__ = [
    "InvariantViolation",
    "ReferenceSet",
    "new_reference_key",
]
