"""Import service: wires reader, executor and log sink for application callers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from sqlalchemy import Engine

from config.settings import ImportSettings
from database.base import create_target_engine
from database.session import SessionFactory, log_session_factory
from processing.cancellation import CancellationToken
from processing.executor import ImportExecutor, ProgressCallback
from processing.log_sink import ImportLogSink
from processing.mapping import MappingConfiguration
from processing.run_result import ImportRunResult

from .import_log_sink import SqlImportLogSink

logger = logging.getLogger(__name__)


class ImportService:
    """Service for importing spreadsheet files into a target database.

    Args:
        target: Engine or URL/path of the target database.
        sink: Log sink; defaults to the SQL log store at ``log_database``.
        log_database: URL/path of the log store when no sink is given.
        settings: Run settings; defaults to ``ImportSettings.from_env()``.
        log_sessions: Session factory for the log store, overriding ``log_database``.
    """

    def __init__(
        self,
        target: Union[Engine, str, Path],
        *,
        sink: Optional[ImportLogSink] = None,
        log_database: Union[str, Path, None] = None,
        settings: Optional[ImportSettings] = None,
        log_sessions: Optional[SessionFactory] = None,
    ):
        self._owns_engine = not isinstance(target, Engine)
        self.engine = create_target_engine(target) if self._owns_engine else target
        if sink is None:
            sink = SqlImportLogSink(log_sessions or log_session_factory(log_database))
        self.sink = sink
        self.settings = settings or ImportSettings.from_env()

    def executor(self) -> ImportExecutor:
        return ImportExecutor(self.engine, sink=self.sink, settings=self.settings)

    def import_file(
        self,
        configuration: MappingConfiguration,
        file_path: Union[str, Path],
        *,
        sheet_name: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ImportRunResult:
        """Import ``file_path`` with ``configuration`` and record the run.

        Raises whatever the executor raises; see ``ImportExecutor.run``.
        """
        logger.info("Importing %s with configuration '%s'", Path(file_path).name, configuration.name)
        return self.executor().run_file(
            configuration,
            file_path,
            sheet_name=sheet_name,
            progress_callback=progress_callback,
            cancellation=cancellation,
        )

    def close(self) -> None:
        """Dispose the target engine if this service created it."""
        if self._owns_engine:
            self.engine.dispose()
