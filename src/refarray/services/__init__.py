"""Service layer: document store adapters and the search executor."""

from refarray.services.query_service import QueryExecutor, coerce_result_limit
from refarray.services.store_service import (
    MemoryDocumentStore,
    SanityDocumentStore,
    StoreError,
)

__all__ = [
    "MemoryDocumentStore",
    "QueryExecutor",
    "SanityDocumentStore",
    "StoreError",
    "coerce_result_limit",
]
