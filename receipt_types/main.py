"""Entry point for the receipt-types Textual app."""

from __future__ import annotations

import argparse
import asyncio
import logging

from receipt_types.config import DB_PATH, LOG_LEVEL, LOG_PATH
from receipt_types.data import DEFAULT_GROUPS, UNGROUPED_DEFAULTS
from receipt_types.logging_setup import configure_logging
from receipt_types.persistence import SqliteBackend
from receipt_types.taxonomy_app import ReceiptTypesApp

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="receipt-types",
        description="Organize receipt types into ordered groups.",
    )
    parser.add_argument("--db", default=DB_PATH, help="SQLite database path (default: %(default)s)")
    parser.add_argument("--log-file", default=LOG_PATH, help="Log file path (default: %(default)s)")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Log level (default: %(default)s)")
    parser.add_argument(
        "--reset-defaults",
        action="store_true",
        help="Replace every group and receipt type with the default catalog before starting",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Run the Textual application."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, args.log_level)

    backend = SqliteBackend(args.db)
    backend.bootstrap_schema()
    if args.reset_defaults:
        asyncio.run(backend.reset_to_defaults(DEFAULT_GROUPS, UNGROUPED_DEFAULTS))

    logger.info("starting db=%s", backend.db_path)
    ReceiptTypesApp(backend).run()


if __name__ == "__main__":
    main()
