from __future__ import annotations

import argparse
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from cardsync.app import reconcile_catalog, snapshot_catalog, update_search_index
from cardsync.config import configure_logging
from cardsync.domain.reconciliation import ReconcileOptions

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Synchronise the card catalog")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser(
        "reconcile",
        help="Update local cards from the reference catalog",
    )
    reconcile.add_argument(
        "--limit",
        type=int,
        help="Maximum number of local cards to process",
    )
    reconcile.add_argument(
        "--force",
        action="store_true",
        help="Ignore stored fingerprints and re-resolve every matched card",
    )
    reconcile.add_argument(
        "--group-id",
        type=str,
        help="Only process cards of this edition group",
    )
    reconcile.add_argument(
        "--from-snapshot",
        action="store_true",
        help="Read the catalog from the stored snapshot instead of fetching it",
    )
    reconcile.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the updates that would be written without writing them",
    )
    reconcile.add_argument(
        "--max-concurrent-batches",
        type=int,
        help="Ceiling on concurrent batch commits (defaults to config)",
    )
    reconcile.add_argument(
        "--batch-size",
        type=int,
        help="Maximum operations per write batch (defaults to config)",
    )

    subparsers.add_parser(
        "catalog-snapshot",
        help="Fetch the reference catalog and store it locally",
    )

    search = subparsers.add_parser("search-index", help="Refresh card search terms")
    search.add_argument(
        "--limit",
        type=int,
        help="Maximum number of cards to process",
    )
    search.add_argument(
        "--force",
        action="store_true",
        help="Rewrite search terms even when their hash is unchanged",
    )

    return parser.parse_args(list(argv))


def _validate(args: argparse.Namespace) -> None:
    for name in ("limit", "max_concurrent_batches", "batch_size"):
        value = getattr(args, name, None)
        if value is not None and value < 1:
            flag = "--" + name.replace("_", "-")
            raise ValueError(f"{flag} must be a positive integer, got {value}")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    try:
        _validate(parsed_args)
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "reconcile":
            result = reconcile_catalog(
                ReconcileOptions(
                    force=parsed_args.force,
                    dry_run=parsed_args.dry_run,
                    limit=parsed_args.limit,
                    group_id=parsed_args.group_id,
                    from_snapshot=parsed_args.from_snapshot,
                ),
                max_concurrent_batches=parsed_args.max_concurrent_batches,
                max_operations_per_batch=parsed_args.batch_size,
            )
            succeeded = result.success
        elif parsed_args.command == "catalog-snapshot":
            snapshot = snapshot_catalog()
            log.info(
                "Catalog snapshot finished: stored=%s, fetched=%s",
                snapshot.stored,
                snapshot.fetched,
            )
            succeeded = True
        elif parsed_args.command == "search-index":
            indexed = update_search_index(force=parsed_args.force, limit=parsed_args.limit)
            log.info(
                "Search index finished: processed=%s, updated=%s, duration=%.1fs",
                indexed.total_processed,
                indexed.total_updated,
                indexed.duration_seconds,
            )
            succeeded = indexed.success
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(1)

    if not succeeded:
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
