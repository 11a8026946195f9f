"""Configuration persistence: load and save."""

from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from refarray.file_io import write_text_atomic
from refarray.models import (
    CONFIG_APP_NAME,
    DEFAULT_API_VERSION,
    DEFAULT_DATASET,
    DEFAULT_SEARCH_FIELDS,
    MAX_DEBOUNCE_DELAY,
    SEARCH_DEBOUNCE_DELAY,
    STORE_TIMEOUT_SECONDS,
    StoreConfig,
    UserConfig,
    WidgetConfig,
)
from refarray.services.query_service import coerce_result_limit
from refarray.services.store_service import validate_field_name

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Persistence
# ============================================================================
#
# Validation contract: _dict_to_config() guarantees valid output for any input:
#
#   Field                    Rule                          Handler
#   ───────────────────────  ────────────────────────────  ─────────────────────
#   widget.result_limit      1 ≤ x ≤ 200                  coerce_result_limit
#   widget.debounce_delay    0 ≤ x ≤ 5 seconds            _coerce_debounce_delay
#   widget.search_fields     plain names, ≥ 1 entry       _parse_field_names
#   widget.sortable_fields   plain names or null          _parse_field_names
#   store.timeout_seconds    ≥ 1                          _parse_store
#   scalar fields            type-checked via _safe_get()  _dict_to_config
#
CONFIG_FILENAME = "config.json"


def get_config_path() -> Path:
    """Get the path to the configuration file.

    Uses platformdirs for cross-platform config directory:
    - Linux: ~/.config/refarray/config.json
    - macOS: ~/Library/Application Support/refarray/config.json
    - Windows: %APPDATA%/refarray/config.json
    """
    config_dir = Path(user_config_dir(CONFIG_APP_NAME))
    return config_dir / CONFIG_FILENAME


def _safe_get(data: dict[str, Any], key: str, default: Any, expected_type: type) -> Any:
    """Return ``data[key]`` when it has the expected type, else ``default``."""
    value = data.get(key, default)
    if expected_type is int and isinstance(value, bool):
        return default
    if expected_type is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value if isinstance(value, expected_type) else default


def _coerce_debounce_delay(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return SEARCH_DEBOUNCE_DELAY
    return max(0.0, min(float(value), MAX_DEBOUNCE_DELAY))


def _parse_field_names(raw: Any) -> list[str]:
    """Keep string entries that are valid plain field names, deduplicated."""
    if not isinstance(raw, list):
        return []
    names: list[str] = []
    for name in raw:
        if not isinstance(name, str):
            continue
        try:
            validate_field_name(name)
        except ValueError:
            logger.warning("Ignoring invalid field name %r in config", name)
            continue
        if name not in names:
            names.append(name)
    return names


def _config_to_dict(config: UserConfig) -> dict[str, Any]:
    """Serialize UserConfig to a JSON-compatible dictionary."""
    widget = config.widget
    store = config.store
    return {
        "version": config.version,
        "widget": {
            "search_fields": widget.search_fields,
            "result_limit": coerce_result_limit(widget.result_limit),
            "debounce_delay": _coerce_debounce_delay(widget.debounce_delay),
            "hide_existing": widget.hide_existing,
            "allow_single_add": widget.allow_single_add,
            "allow_bulk_add": widget.allow_bulk_add,
            "sortable_fields": widget.sortable_fields,
            "weak_references": widget.weak_references,
        },
        "store": {
            "project_id": store.project_id,
            "dataset": store.dataset,
            "api_version": store.api_version,
            "token": store.token,
            "use_cdn": store.use_cdn,
            "timeout_seconds": store.timeout_seconds,
        },
    }


def _parse_widget(data: dict[str, Any]) -> WidgetConfig:
    raw = data.get("widget", {})
    if not isinstance(raw, dict):
        raw = {}
    search_fields = _parse_field_names(raw.get("search_fields")) or list(DEFAULT_SEARCH_FIELDS)
    sortable_raw = raw.get("sortable_fields")
    sortable_fields = _parse_field_names(sortable_raw) or None
    return WidgetConfig(
        search_fields=search_fields,
        result_limit=coerce_result_limit(raw.get("result_limit")),
        debounce_delay=_coerce_debounce_delay(raw.get("debounce_delay", SEARCH_DEBOUNCE_DELAY)),
        hide_existing=_safe_get(raw, "hide_existing", True, bool),
        allow_single_add=_safe_get(raw, "allow_single_add", True, bool),
        allow_bulk_add=_safe_get(raw, "allow_bulk_add", True, bool),
        sortable_fields=sortable_fields,
        weak_references=_safe_get(raw, "weak_references", True, bool),
    )


def _parse_store(data: dict[str, Any]) -> StoreConfig:
    raw = data.get("store", {})
    if not isinstance(raw, dict):
        raw = {}
    timeout = _safe_get(raw, "timeout_seconds", STORE_TIMEOUT_SECONDS, int)
    return StoreConfig(
        project_id=_safe_get(raw, "project_id", "", str),
        dataset=_safe_get(raw, "dataset", DEFAULT_DATASET, str) or DEFAULT_DATASET,
        api_version=_safe_get(raw, "api_version", DEFAULT_API_VERSION, str) or DEFAULT_API_VERSION,
        token=_safe_get(raw, "token", "", str),
        use_cdn=_safe_get(raw, "use_cdn", False, bool),
        timeout_seconds=max(1, timeout),
    )


def _dict_to_config(data: dict[str, Any]) -> UserConfig:
    """Deserialize a dictionary to UserConfig with type validation."""
    return UserConfig(
        widget=_parse_widget(data),
        store=_parse_store(data),
        version=_safe_get(data, "version", 1, int),
    )


def load_config() -> UserConfig:
    """Load configuration from disk.

    Returns default config if file doesn't exist or is corrupted.
    Logs specific errors to help diagnose config issues.
    """
    config_path = get_config_path()

    if not config_path.exists():
        return UserConfig()

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning("Config file has invalid JSON, using defaults: %s", e)
        return UserConfig()
    except OSError as e:
        logger.warning("Could not read config file, using defaults: %s", e)
        return UserConfig()

    if not isinstance(data, dict):
        logger.warning("Config file root is not an object, using defaults")
        return UserConfig()
    return _dict_to_config(data)


def save_config(config: UserConfig) -> bool:
    """Save configuration to disk atomically.

    Uses write-to-tempfile + os.replace() to prevent partial writes
    on crash/interrupt from corrupting the config file.

    Creates the config directory if it doesn't exist.
    Returns True on success, False on failure.
    """
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = _config_to_dict(config)
        json_str = json.dumps(data, indent=2, ensure_ascii=False)
        write_text_atomic(config_path, json_str, prefix=".config-")
        return True
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return False


__all__ = [
    "CONFIG_APP_NAME",
    "CONFIG_FILENAME",
    "get_config_path",
    "load_config",
    "save_config",
]
