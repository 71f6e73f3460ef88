from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from prelude.app import mark_manual, prune_provenance, update_context, watch_context
from prelude.config import (
    ConfigurationError,
    WatchConfig,
    configure_logging,
    get_context_config,
    get_watch_config,
)
from prelude.domain.documents import DocumentKind
from prelude.domain.reconciliation import ChangeType, ReconcileMode

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from prelude.domain.reconciliation import ReconciliationResult

log = logging.getLogger(__name__)

_CHANGE_MARKERS = {
    ChangeType.ADDED: "+",
    ChangeType.REMOVED: "-",
    ChangeType.MODIFIED: "~",
    ChangeType.PRESERVED: "=",
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keep .context documents in sync")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    update = subparsers.add_parser("update", help="Reconcile context documents once")
    _add_root(update)
    mode = update.add_mutually_exclusive_group()
    mode.add_argument(
        "--force",
        action="store_true",
        help="Overwrite documents with inferred values, discarding manual edits",
    )
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing anything",
    )
    update.add_argument(
        "--kind",
        dest="kinds",
        action="append",
        type=DocumentKind,
        choices=list(DocumentKind),
        help="Only reconcile this document kind (repeatable)",
    )

    watch = subparsers.add_parser("watch", help="Reconcile whenever project files change")
    _add_root(watch)
    watch.add_argument(
        "--debounce-ms",
        type=int,
        help="Quiet window before a pass starts (defaults to PRELUDE_DEBOUNCE_MS or 1000)",
    )

    mark = subparsers.add_parser("mark", help="Mark a field as manually maintained")
    _add_root(mark)
    mark.add_argument("kind", type=DocumentKind, choices=list(DocumentKind))
    mark.add_argument(
        "path",
        help="Dotted field path, e.g. description or frameworks.Remix",
    )

    prune = subparsers.add_parser(
        "prune", help="Drop provenance records for fields missing from a document"
    )
    _add_root(prune)
    prune.add_argument("kind", type=DocumentKind, choices=list(DocumentKind))

    return parser.parse_args(list(argv))


def _add_root(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        type=Path,
        help="Project root (defaults to PRELUDE_ROOT or the current directory)",
    )


def _select_mode(args: argparse.Namespace) -> ReconcileMode:
    if args.force:
        return ReconcileMode.FORCE
    if args.dry_run:
        return ReconcileMode.DRY_RUN
    return ReconcileMode.NORMAL


def _watch_config(args: argparse.Namespace, context_dir_name: str) -> WatchConfig:
    base = get_watch_config(extra_ignore=(f"{context_dir_name}/*",))
    if args.debounce_ms is None:
        return base
    if args.debounce_ms < 0:
        raise ValueError("--debounce-ms must be non-negative")
    return WatchConfig(
        debounce_seconds=args.debounce_ms / 1000, patterns=base.patterns, ignore=base.ignore
    )


def present_result(result: ReconciliationResult) -> None:
    """Log the change report of one pass."""

    if result.provenance_recovered:
        log.warning("Provenance store was corrupt and has been reinitialised")
    if not result.changes:
        log.info("No changes")
    for change in result.changes:
        log.info(
            "%s %s %s: %s",
            _CHANGE_MARKERS[change.type],
            change.file,
            change.field,
            change.reason,
        )
    for outcome in result.failed:
        log.error(
            "%s failed during %s: %s", outcome.kind.filename, outcome.failed_stage, outcome.error
        )
    if result.provenance_error is not None:
        log.error("Provenance store not saved: %s", result.provenance_error)
    if result.mode is ReconcileMode.DRY_RUN:
        log.info("Dry run: nothing was written")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    parsed_args: argparse.Namespace
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(verbose=parsed_args.verbose)
        config = get_context_config(parsed_args.root)
        watch_config = (
            _watch_config(parsed_args, config.context_dir_name)
            if parsed_args.command == "watch"
            else None
        )
    except (ValueError, ConfigurationError):
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "update":
            result = update_context(
                mode=_select_mode(parsed_args), config=config, kinds=parsed_args.kinds
            )
            present_result(result)
            if result.failed:
                sys.exit(1)
        elif parsed_args.command == "watch":
            watcher = watch_context(config=config, watch_config=watch_config)
            try:
                watcher.wait()
            finally:
                watcher.stop()
        elif parsed_args.command == "mark":
            state = mark_manual(parsed_args.kind, parsed_args.path, config=config)
            log.info("Recorded %s as %s", parsed_args.path, state.provenance.value)
        elif parsed_args.command == "prune":
            removed = prune_provenance(parsed_args.kind, config=config)
            for path in removed:
                log.info("- %s", path)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except ValueError:
        log.exception("Invalid request")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error during reconciliation")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console-script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
