"""Import log sink backed by the SQLAlchemy log store."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from database.repositories import ImportLogRepository
from database.session import SessionFactory, session_scope
from processing.errors import SinkError
from processing.run_result import ImportRunResult

logger = logging.getLogger(__name__)


class SqlImportLogSink:
    """Persists finalized runs to ``import_logs``/``import_log_errors``.

    Logs are keyed by ``run_id``: recording the same run again rewrites the
    existing log instead of adding a second one, so callers may retry after
    a ``SinkError``.
    """

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    def record(self, result: ImportRunResult) -> None:
        if not result.finalized:
            raise SinkError(f"Run {result.run_id} is not finalized", result)

        try:
            with session_scope(self._session_factory) as session:
                ImportLogRepository(session).upsert(
                    result.run_id,
                    row_errors=[
                        (error.row_index, "; ".join(error.messages)) for error in result.errors
                    ],
                    configuration_name=result.configuration_name,
                    table_name=result.table_name,
                    file_name=result.file_name,
                    status=result.status.value,
                    start_time=result.start_time,
                    end_time=result.end_time,
                    total_records=result.total_records,
                    successful_records=result.successful_records,
                    failed_records=result.failed_records,
                    rolled_back_records=result.rolled_back_records,
                    failure_message=result.failure_message,
                    error_details=result.error_details(),
                )
        except SQLAlchemyError as exc:
            raise SinkError(f"Could not record import run {result.run_id}: {exc}", result) from exc

        logger.debug("Recorded import run %s (%s)", result.run_id, result.status.value)
