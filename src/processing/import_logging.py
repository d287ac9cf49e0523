"""Structured logging helpers for the import pipeline."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

from .run_result import ImportRunResult


def _run_context(result: ImportRunResult) -> dict:
    return {
        "run_id": result.run_id,
        "configuration": result.configuration_name,
        "table": result.table_name,
        "file": result.file_name,
    }


def log_import_start(*, logger: logging.Logger, result: ImportRunResult, headers: Sequence[str]) -> None:
    logger.info(
        "Structured import started",
        extra={
            "event": "import.start",
            **_run_context(result),
            "columns": list(headers),
        },
    )


def log_row_failure(
    *,
    logger: logging.Logger,
    result: ImportRunResult,
    row_index: int,
    stage: str,
    errors: Iterable[str],
) -> None:
    logger.debug(
        "Row rejected",
        extra={
            "event": "import.row_failed",
            "run_id": result.run_id,
            "row": row_index,
            "stage": stage,
            "errors": list(errors),
        },
    )


def log_phase_timings(
    *,
    logger: logging.Logger,
    result: ImportRunResult,
    phase_timings: Iterable[Mapping[str, object]],
) -> None:
    for entry in phase_timings:
        logger.debug(
            "Phase timing",
            extra={
                "event": "import.phase",
                **_run_context(result),
                **entry,
            },
        )


def log_import_complete(*, logger: logging.Logger, result: ImportRunResult, resolver_stats: Mapping[str, int]) -> None:
    logger.info(
        "Structured import finished",
        extra={
            "event": "import.complete",
            **_run_context(result),
            "records": {
                "total": result.total_records,
                "successful": result.successful_records,
                "failed": result.failed_records,
            },
            "lookups": dict(resolver_stats),
            "duration_s": result.duration_seconds,
        },
    )


def log_import_cancelled(*, logger: logging.Logger, result: ImportRunResult) -> None:
    logger.warning(
        "Import cancelled, transaction rolled back",
        extra={
            "event": "import.cancelled",
            **_run_context(result),
            "rows_processed": result.total_records,
            "rolled_back": result.rolled_back_records,
        },
    )


def log_import_failure(*, logger: logging.Logger, result: ImportRunResult, error: BaseException) -> None:
    logger.error(
        "Import failed",
        exc_info=error,
        extra={
            "event": "import.failure",
            **_run_context(result),
            "rows_processed": result.total_records,
            "error": str(error),
        },
    )
