"""
Command-line entry point.

    invoicer run [--sheet-id ID]        one pass over the source sheet
    invoicer normalize FILE [FILE ...]  normalize markdown files and print JSON
    invoicer files [--status STATUS]    list tracked source files
"""

import argparse
import json
import sys
from pathlib import Path

from .core.config import settings
from .core.logging import setup_logging
from .models.run import RunContext
from .services.errors import InvoicerError
from .services.normalizer import InvoiceNormalizer
from .services.orchestrator import InvoiceRunner
from .services.storage import SQLiteProcessedFileTracker
from .services.storage.tracker_base import STATUSES


def _run(args) -> int:
    ctx = RunContext.from_settings(settings, sheet_id=args.sheet_id)
    result = InvoiceRunner.from_settings(settings).run_once(ctx)
    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


def _normalize(args) -> int:
    markdowns = [Path(path).read_text(encoding="utf-8") for path in args.files]
    normalizer = InvoiceNormalizer.from_settings(settings)
    outputs = normalizer.normalize_batch(markdowns)
    print(json.dumps(outputs, indent=2, ensure_ascii=False))
    return 0


def _files(args) -> int:
    tracker = SQLiteProcessedFileTracker(settings.processed_files_db)
    entries = tracker.query_by_status(args.status) if args.status else tracker.list_all()
    print(json.dumps(entries, indent=2, ensure_ascii=False))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="invoicer",
        description="Extract invoices from Drive links into Google Sheets",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help=f"Log level (default: {settings.log_level})"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Process every link in the source sheet once")
    run_parser.add_argument(
        "--sheet-id",
        default=None,
        help="Spreadsheet used as both source and target (default: SOURCE_SHEET_ID/TARGET_SHEET_ID)"
    )
    run_parser.set_defaults(handler=_run)

    normalize_parser = sub.add_parser("normalize", help="Normalize parsed invoice markdown files")
    normalize_parser.add_argument("files", nargs="+", help="Markdown files, one invoice each")
    normalize_parser.set_defaults(handler=_normalize)

    files_parser = sub.add_parser("files", help="List source files recorded by the processed-file tracker")
    files_parser.add_argument("--status", choices=STATUSES, default=None, help="Only files with this status")
    files_parser.set_defaults(handler=_files)

    args = parser.parse_args(argv)
    logger = setup_logging(args.log_level)

    try:
        return args.handler(args)
    except (InvoicerError, ValueError, OSError) as e:
        logger.error("Command failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
