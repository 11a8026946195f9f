"""CLI/bootstrap helpers for the reference array editor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.handlers
import sys
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

import httpx
from platformdirs import user_config_dir

from refarray.action_messages import build_actionable_error
from refarray.config import CONFIG_APP_NAME, load_config, save_config
from refarray.models import MAX_RESULT_LIMIT, UserConfig
from refarray.services.interfaces import (
    ControllerServices,
    DocumentStore,
    StoreFieldBinding,
    build_default_services,
)
from refarray.services.query_service import coerce_result_limit
from refarray.services.store_service import (
    MemoryDocumentStore,
    SanityDocumentStore,
    StoreError,
    validate_field_name,
)

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure logging. When debug=True, logs to file at DEBUG level."""
    if not debug:
        # Default: suppress all logging (TUI captures stderr)
        logging.disable(logging.CRITICAL)
        return

    log_dir = Path(user_config_dir(CONFIG_APP_NAME))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "debug.log"

    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.DEBUG)


def _validate_interactive_tty() -> bool:
    """Return True when stdin/stdout are interactive terminals."""
    return bool(sys.stdin.isatty() and sys.stdout.isatty())


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search, add, sort and clear the references of one document field"
    )
    source = parser.add_argument_group("document store")
    source.add_argument(
        "--data",
        type=Path,
        default=None,
        help="JSON file of documents to use as a local store",
    )
    source.add_argument("--project-id", default=None, help="Sanity project id")
    source.add_argument("--dataset", default=None, help="Sanity dataset (default: production)")
    source.add_argument("--token", default=None, help="Sanity API token")
    source.add_argument("--api-version", default=None, help="Sanity API version date")
    source.add_argument(
        "--use-cdn", action="store_true", help="Read search results through the API CDN"
    )

    field = parser.add_argument_group("field")
    field.add_argument("--document", required=True, help="Id of the document to edit")
    field.add_argument("--field", required=True, help="Name of the reference array field")
    field.add_argument(
        "--kind",
        action="append",
        default=[],
        help="Document kind the field may reference (repeatable)",
    )

    widget = parser.add_argument_group("behavior")
    widget.add_argument(
        "--search-field",
        action="append",
        default=None,
        help="Field to prefix-match search text against (repeatable; default: title)",
    )
    widget.add_argument(
        "--limit",
        type=int,
        default=None,
        help=f"Maximum search results (1-{MAX_RESULT_LIMIT}; default: config value)",
    )
    widget.add_argument(
        "--debounce-ms",
        type=int,
        default=None,
        help="Delay after the last keystroke before searching (default: 300)",
    )
    widget.add_argument(
        "--show-existing",
        action="store_true",
        help="Keep already-referenced documents in search results",
    )
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="Persist store and behavior options to the config file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging to file (~/.config/refarray/debug.log)",
    )
    parser.add_argument(
        "--ascii",
        action="store_true",
        help="Use ASCII-only direction arrows for limited terminals",
    )
    return parser


def _apply_overrides(config: UserConfig, args: argparse.Namespace) -> UserConfig:
    """Layer CLI flags over the loaded config."""
    store = config.store
    store = replace(
        store,
        project_id=args.project_id or store.project_id,
        dataset=args.dataset or store.dataset,
        token=args.token or store.token,
        api_version=args.api_version or store.api_version,
        use_cdn=args.use_cdn or store.use_cdn,
    )
    widget = config.widget
    widget = replace(
        widget,
        search_fields=args.search_field or widget.search_fields,
        result_limit=(
            coerce_result_limit(args.limit) if args.limit is not None else widget.result_limit
        ),
        debounce_delay=(
            max(0, args.debounce_ms) / 1000 if args.debounce_ms is not None else widget.debounce_delay
        ),
        hide_existing=widget.hide_existing and not args.show_existing,
    )
    return UserConfig(widget=widget, store=store, version=config.version)


def _build_services(
    args: argparse.Namespace, config: UserConfig
) -> tuple[ControllerServices, DocumentStore] | int:
    """Return (app services, loader store) or an exit code."""
    if args.data is not None:
        try:
            memory_store = MemoryDocumentStore.from_file(args.data)
        except (OSError, StoreError) as e:
            print(f"Error: Failed to read {args.data}: {e}", file=sys.stderr)
            return 1
        return build_default_services(config.store, memory_store=memory_store), memory_store

    if not config.store.project_id:
        print(
            build_actionable_error(
                "open a document store",
                why="neither --data nor a Sanity project id was given",
                next_step="pass --data documents.json or --project-id ID",
            ),
            file=sys.stderr,
        )
        return 1
    # The loader runs on its own event loop, so it must not share the app's client.
    return build_default_services(config.store), SanityDocumentStore(config.store)


def _load_binding(
    store: DocumentStore, args: argparse.Namespace
) -> StoreFieldBinding | int:
    try:
        return asyncio.run(
            StoreFieldBinding.load(
                store,
                document_id=args.document,
                field_name=args.field,
                accepted_kinds=args.kind,
            )
        )
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (httpx.HTTPError, OSError, StoreError) as e:
        print(
            build_actionable_error(
                f"load document {args.document}",
                why=str(e) or "the store could not be reached",
                next_step="check the store settings and retry",
            ),
            file=sys.stderr,
        )
        return 1


def main(
    argv: list[str] | None = None,
    *,
    load_config_fn: Callable[[], UserConfig] = load_config,
    save_config_fn: Callable[[UserConfig], bool] = save_config,
    configure_logging_fn: Callable[[bool], None] = _configure_logging,
    validate_interactive_tty_fn: Callable[[], bool] = _validate_interactive_tty,
    app_factory: Callable[..., Any] | None = None,
) -> int:
    """Main entry point. Returns exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging_fn(args.debug)
    logger.debug("refarray starting, cwd=%s", Path.cwd())

    try:
        validate_field_name(args.field)
        for name in args.search_field or []:
            validate_field_name(name)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not args.kind:
        print(
            build_actionable_error(
                "search for references",
                why="no document kinds were given",
                next_step="pass --kind once per kind the field may reference",
            ),
            file=sys.stderr,
        )
        return 1

    config = _apply_overrides(load_config_fn(), args)
    if args.save_config and not save_config_fn(config):
        print("Warning: could not save config", file=sys.stderr)

    built = _build_services(args, config)
    if isinstance(built, int):
        return built
    services, loader_store = built

    binding = _load_binding(loader_store, args)
    if isinstance(binding, int):
        return binding
    # Commits go through the app's store (shared client, same event loop).
    binding = StoreFieldBinding(
        services.store,
        document_id=binding.document_id,
        field_name=binding.field_name,
        accepted_kinds=sorted(binding.accepted_kinds),
        value=binding.value,
    )

    if not validate_interactive_tty_fn():
        print(
            "Error: refarray requires an interactive TTY for the full UI.",
            file=sys.stderr,
        )
        return 2

    if app_factory is None:
        from refarray.app import ReferenceEditorApp as _ReferenceEditorApp

        app_factory = _ReferenceEditorApp

    app = app_factory(binding, services, config=config.widget, ascii_icons=args.ascii)
    app.run()
    return 0


__all__ = [
    "_apply_overrides",
    "_build_services",
    "_configure_logging",
    "_load_binding",
    "_validate_interactive_tty",
    "main",
]
