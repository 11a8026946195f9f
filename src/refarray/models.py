"""Data models and constants for the reference array editor."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

# Application identity: single source of truth for platformdirs config paths
CONFIG_APP_NAME = "refarray"

# Search defaults
DEFAULT_SEARCH_FIELDS: tuple[str, ...] = ("title",)
DEFAULT_RESULT_LIMIT = 50
MAX_RESULT_LIMIT = 200
SEARCH_DEBOUNCE_DELAY = 0.3
MAX_DEBOUNCE_DELAY = 5.0

# Fields starting with this prefix are store-internal (_id, _type, _rev, ...)
RESERVED_FIELD_PREFIX = "_"

# Host store defaults
DEFAULT_API_VERSION = "2023-01-01"
DEFAULT_DATASET = "production"
STORE_TIMEOUT_SECONDS = 30

REFERENCE_TYPE = "reference"
REFERENCE_KEY_LENGTH = 9

SortDirection = Literal["asc", "desc"]


@dataclass(frozen=True, slots=True)
class Reference:
    """A typed pointer from the host document to another document."""

    id: str
    key: str
    weak: bool = True


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One document returned by a reference search."""

    id: str
    title: str
    kind: str = ""
    extra: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True, slots=True)
class SortState:
    """Current sort-mode selection and whether the set already follows it."""

    field: str
    known_ascending: bool

    @property
    def next_direction(self) -> SortDirection:
        """Direction the next sort will apply (two-state toggle)."""
        return "desc" if self.known_ascending else "asc"


@dataclass(frozen=True, slots=True)
class QueryFilter:
    """Filter expression handed to a document store's query primitive."""

    kinds: tuple[str, ...]
    fields: tuple[str, ...]
    terms: tuple[str, ...]
    limit: int


@dataclass(frozen=True, slots=True)
class QueryFailure:
    """A search that could not reach or read the document store."""

    message: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class ResolutionFailure:
    """Referenced documents could not be dereferenced for sorting."""

    message: str
    detail: str = ""


@dataclass(frozen=True, slots=True)
class CommitFailure:
    """The host rejected or failed to persist a field change."""

    message: str
    detail: str = ""


class SearchState(Enum):
    """Lifecycle of a search-as-you-type request."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    QUERYING = "querying"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(slots=True)
class WidgetConfig:
    """Behavior options for one reference array field."""

    search_fields: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))
    result_limit: int = DEFAULT_RESULT_LIMIT
    debounce_delay: float = SEARCH_DEBOUNCE_DELAY
    hide_existing: bool = True
    allow_single_add: bool = True
    allow_bulk_add: bool = True
    sortable_fields: list[str] | None = None
    weak_references: bool = True


@dataclass(slots=True)
class StoreConfig:
    """Connection settings for the hosted document store."""

    project_id: str = ""
    dataset: str = DEFAULT_DATASET
    api_version: str = DEFAULT_API_VERSION
    token: str = ""
    use_cdn: bool = False
    timeout_seconds: int = STORE_TIMEOUT_SECONDS


@dataclass(slots=True)
class UserConfig:
    """Persisted user configuration."""

    widget: WidgetConfig = field(default_factory=WidgetConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    version: int = 1
