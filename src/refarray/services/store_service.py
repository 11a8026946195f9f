"""Document store adapters: in-memory/JSON and the Sanity HTTP API."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import httpx

from refarray.file_io import write_text_atomic
from refarray.models import QueryFilter, StoreConfig

logger = logging.getLogger(__name__)

_FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_WORD_SPLIT_RE = re.compile(r"[\W_]+", re.UNICODE)

SANITY_USER_AGENT = "refarray/1.0"


class StoreError(Exception):
    """The store answered with something the adapter cannot use."""


def validate_field_name(name: str) -> str:
    """Return ``name`` when it is a plain attribute name, else raise ValueError."""
    if not _FIELD_NAME_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


def _field_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def matches_terms(value: Any, terms: Sequence[str]) -> bool:
    """True when every term is a case-insensitive prefix of some word in ``value``."""
    words = [w for w in _WORD_SPLIT_RE.split(_field_text(value).casefold()) if w]
    if not words:
        return False
    return all(any(word.startswith(term.casefold()) for word in words) for term in terms)


def project(document: dict[str, Any], projection: Sequence[str] | None) -> dict[str, Any]:
    """Copy ``document``, keeping only ``projection`` keys when given."""
    if projection is None:
        return copy.deepcopy(document)
    return {key: copy.deepcopy(document[key]) for key in projection if key in document}


# ============================================================================
# In-memory store
# ============================================================================


class MemoryDocumentStore:
    """Documents held in process, optionally backed by a JSON file.

    The file holds either a list of documents or ``{"documents": [...]}``.
    Every document needs an ``_id``; ``_type`` names its kind.
    """

    def __init__(
        self,
        documents: Iterable[dict[str, Any]] = (),
        *,
        path: Path | None = None,
    ) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._path = path
        for doc in documents:
            doc_id = doc.get("_id")
            if not isinstance(doc_id, str) or not doc_id:
                logger.warning("Skipping document without _id: %r", doc)
                continue
            self._documents[doc_id] = dict(doc)

    @classmethod
    def from_file(cls, path: Path) -> MemoryDocumentStore:
        """Load documents from a JSON file. Raises StoreError on bad content."""
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreError(f"{path} is not valid JSON: {e}") from e
        if isinstance(data, dict):
            data = data.get("documents", [])
        if not isinstance(data, list):
            raise StoreError(f"{path} must contain a list of documents")
        return cls((d for d in data if isinstance(d, dict)), path=path)

    @property
    def documents(self) -> dict[str, dict[str, Any]]:
        return self._documents

    async def query(
        self, query_filter: QueryFilter, projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        kinds = set(query_filter.kinds)
        results: list[dict[str, Any]] = []
        for doc in self._documents.values():
            if doc.get("_type") not in kinds:
                continue
            if not any(matches_terms(doc.get(f), query_filter.terms) for f in query_filter.fields):
                continue
            results.append(project(doc, projection))
            if len(results) >= query_filter.limit:
                break
        return results

    async def dereference(
        self, ids: Sequence[str], projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        return [project(self._documents[i], projection) for i in ids if i in self._documents]

    async def get_document(self, doc_id: str) -> dict[str, Any] | None:
        doc = self._documents.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def patch_field(self, doc_id: str, field: str, value: Any | None) -> None:
        doc = self._documents.get(doc_id)
        if doc is None:
            raise StoreError(f"Document {doc_id!r} does not exist")
        if value is None:
            doc.pop(field, None)
        else:
            doc[field] = copy.deepcopy(value)
        if self._path is not None:
            await asyncio.to_thread(self._save, self._path)

    def _save(self, path: Path) -> None:
        """Write all documents atomically (tempfile + os.replace)."""
        payload = json.dumps(
            {"documents": list(self._documents.values())}, indent=2, ensure_ascii=False
        )
        write_text_atomic(path, payload, prefix=".store-")


# ============================================================================
# Sanity HTTP store
# ============================================================================


def _query_field(name: str) -> str:
    """validate_field_name() for GROQ text; bad names surface as StoreError."""
    try:
        return validate_field_name(name)
    except ValueError as e:
        raise StoreError(f"{e}; only plain field names can be queried") from e


def build_search_query(query_filter: QueryFilter, projection: Sequence[str]) -> str:
    """Build the GROQ search expression; user text travels as ``$terms``."""
    fields = [_query_field(f) for f in query_filter.fields]
    matches = " || ".join(f"{f} match $terms" for f in fields)
    limit = max(1, int(query_filter.limit))
    keys = ", ".join(_query_field(p) for p in projection)
    return f"*[_type in $types && ({matches})][0...{limit}]{{{keys}}}"


def build_dereference_query(projection: Sequence[str] | None) -> str:
    """Build the GROQ expression that expands ``$ids`` into documents."""
    if projection is None:
        return "*[_id in $ids]"
    keys = ", ".join(_query_field(p) for p in projection)
    return f"*[_id in $ids]{{{keys}}}"


def encode_params(params: dict[str, Any]) -> dict[str, str]:
    """Encode GROQ parameters as ``$name=<json>`` query-string pairs."""
    return {f"${name}": json.dumps(value) for name, value in params.items()}


class SanityDocumentStore:
    """Read and patch documents through the Sanity HTTP API."""

    def __init__(self, config: StoreConfig, *, client: httpx.AsyncClient | None = None) -> None:
        if not config.project_id:
            raise ValueError("A Sanity project id is required")
        self._config = config
        self._client = client

    def _url(self, endpoint: str, *, cdn: bool = False) -> str:
        host = "apicdn.sanity.io" if cdn else "api.sanity.io"
        return (
            f"https://{self._config.project_id}.{host}"
            f"/v{self._config.api_version}/data/{endpoint}/{self._config.dataset}"
        )

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": SANITY_USER_AGENT}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        kwargs.setdefault("headers", self._headers())
        kwargs.setdefault("timeout", self._config.timeout_seconds)
        if self._client is not None:
            response = await self._client.request(method, url, **kwargs)
        else:
            async with httpx.AsyncClient() as tmp_client:
                response = await tmp_client.request(method, url, **kwargs)
        response.raise_for_status()
        return response

    async def fetch(self, groq: str, params: dict[str, Any] | None = None) -> Any:
        """Run a GROQ query and return its ``result`` member."""
        query_params = {"query": groq, **encode_params(params or {})}
        response = await self._request(
            "GET", self._url("query", cdn=self._config.use_cdn), params=query_params
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise StoreError(f"Store returned a non-JSON response: {e}") from e
        if not isinstance(payload, dict) or "result" not in payload:
            raise StoreError("Store response has no result member")
        return payload["result"]

    async def query(
        self, query_filter: QueryFilter, projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        keys = list(projection) if projection is not None else ["_id", "_type", "title"]
        groq = build_search_query(query_filter, keys)
        terms = [f"{term}*" for term in query_filter.terms]
        result = await self.fetch(groq, {"types": list(query_filter.kinds), "terms": terms})
        if not isinstance(result, list):
            raise StoreError("Search query did not return a list")
        return [doc for doc in result if isinstance(doc, dict)]

    async def dereference(
        self, ids: Sequence[str], projection: Sequence[str] | None = None
    ) -> list[dict[str, Any]]:
        if not ids:
            return []
        result = await self.fetch(build_dereference_query(projection), {"ids": list(ids)})
        if not isinstance(result, list):
            raise StoreError("Dereference query did not return a list")
        return [doc for doc in result if isinstance(doc, dict)]

    async def get_document(self, doc_id: str) -> dict[str, Any] | None:
        result = await self.fetch("*[_id == $id][0]", {"id": doc_id})
        return result if isinstance(result, dict) else None

    async def patch_field(self, doc_id: str, field: str, value: Any | None) -> None:
        _query_field(field)
        patch: dict[str, Any] = {"id": doc_id}
        if value is None:
            patch["unset"] = [field]
        else:
            patch["set"] = {field: value}
        await self._request("POST", self._url("mutate"), json={"mutations": [{"patch": patch}]})


__all__ = [
    "MemoryDocumentStore",
    "SanityDocumentStore",
    "StoreError",
    "build_dereference_query",
    "build_search_query",
    "encode_params",
    "matches_terms",
    "project",
    "validate_field_name",
]
