"""Search-as-you-type editor for ordered document reference fields."""

from refarray.controller import ReferenceArrayController
from refarray.models import (
    CommitFailure,
    QueryFailure,
    Reference,
    ResolutionFailure,
    SearchResult,
    SearchState,
    SortState,
    StoreConfig,
    UserConfig,
    WidgetConfig,
)
from refarray.mutations import DangerModeRequired, MutationController
from refarray.reference_set import InvariantViolation, ReferenceSet
from refarray.search import SearchController
from refarray.services.query_service import QueryExecutor
from refarray.sorting import SortAnalyzer

__all__ = [
    "CommitFailure",
    "DangerModeRequired",
    "InvariantViolation",
    "MutationController",
    "QueryExecutor",
    "QueryFailure",
    "Reference",
    "ReferenceArrayController",
    "ReferenceSet",
    "ResolutionFailure",
    "SearchController",
    "SearchResult",
    "SearchState",
    "SortAnalyzer",
    "SortState",
    "StoreConfig",
    "UserConfig",
    "WidgetConfig",
]
