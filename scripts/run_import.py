#!/usr/bin/env python
"""Run a spreadsheet import from the command line.

Exit codes: 0 completed, 1 configuration/reader error, 2 fatal error,
3 cancelled (Ctrl+C).
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from config.mapping_loader import load_mapping
from config.settings import ImportSettings
from database.session import dispose_all_engines
from processing.cancellation import CancellationToken
from processing.errors import (
    ImportConfigurationError,
    ImportFatalError,
    ReaderError,
    SinkError,
)
from processing.run_result import ImportProgress, RunStatus
from services.import_service import ImportService
from utils.env import is_dev_mode
from utils.logging_utils import setup_logging

EXIT_COMPLETED = 0
EXIT_CONFIGURATION = 1
EXIT_FATAL = 2
EXIT_CANCELLED = 3

logger = logging.getLogger("run_import")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a spreadsheet into a database table.")
    parser.add_argument("--mapping", required=True, type=Path, help="Mapping configuration (JSON).")
    parser.add_argument("--file", required=True, type=Path, help="Spreadsheet to import (.xlsx, .xlsm, .xls, .csv).")
    parser.add_argument("--database", required=True, help="Target database URL or SQLite file path.")
    parser.add_argument("--log-database", default=None, help="Import log store URL or SQLite file path.")
    parser.add_argument("--sheet", default=None, help="Worksheet name (default: first sheet).")
    parser.add_argument("--batch-size", type=int, default=None, help="Commit every N rows.")
    parser.add_argument("--lookahead", type=int, default=None, help="Rows read ahead for foreign key prefetch.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level (also on in dev mode).")
    return parser


def _print_progress(snapshot: ImportProgress) -> None:
    print(
        f"  {snapshot.rows_processed} rows "
        f"({snapshot.successful_records} ok, {snapshot.failed_records} failed) {snapshot.message}"
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose or is_dev_mode() else logging.INFO)

    overrides = {}
    if args.batch_size is not None:
        overrides["commit_batch_size"] = args.batch_size
    if args.lookahead is not None:
        overrides["lookahead_rows"] = args.lookahead

    try:
        settings = ImportSettings.from_env(**overrides)
        configuration = load_mapping(args.mapping)
    except ImportConfigurationError as e:
        print(f"Configuration error: {e}")
        return EXIT_CONFIGURATION

    cancellation = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancellation.cancel())
    service = ImportService(args.database, log_database=args.log_database, settings=settings)
    try:
        result = service.import_file(
            configuration,
            args.file,
            sheet_name=args.sheet,
            progress_callback=_print_progress,
            cancellation=cancellation,
        )
    except (ImportConfigurationError, ReaderError) as e:
        print(f"Cannot start import: {e}")
        return EXIT_CONFIGURATION
    except ImportFatalError as e:
        print(f"Import failed: {e}")
        return EXIT_FATAL
    except SinkError as e:
        # the run itself finished; only recording it failed
        logger.error("Import log not recorded: %s", e)
        print(f"Import finished but could not be logged: {e}")
        return EXIT_FATAL
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        service.close()
        dispose_all_engines()

    print(
        f"{result.status.value}: {result.total_records} rows, "
        f"{result.successful_records} imported, {result.failed_records} failed"
    )
    for error in result.errors:
        print(f"  {error.describe()}")

    if result.status is RunStatus.CANCELLED:
        return EXIT_CANCELLED
    return EXIT_COMPLETED


if __name__ == "__main__":
    raise SystemExit(main())
