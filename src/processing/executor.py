"""Import executor: drives a sheet through validation, resolution and insert.

One run owns one connection and one transaction (or one transaction per
``commit_batch_size`` rows). Each row is inserted under its own SAVEPOINT, so
a rejected row never leaves a partial record and never poisons the rows
around it. Row-level failures are recorded on the result and the run moves
on; infrastructure failures roll back the open transaction and propagate as
``ImportFatalError``.

Usage:
    executor = ImportExecutor(engine, sink=SqlImportLogSink(factory))
    with open_sheet(path) as sheet:
        result = executor.run(configuration, sheet, progress_callback=on_progress)
"""

from __future__ import annotations

import logging
from functools import partial
from itertools import islice
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.engine import Connection, Engine, RootTransaction
from sqlalchemy.exc import SQLAlchemyError

from config.settings import DEFAULT_SETTINGS, ImportSettings
from utils.error_handling import TimingContext, database_error_text, format_error_message
from utils.timing import PhaseTimer

from .cancellation import CancellationToken
from .errors import ForeignKeyNotFoundError, ImportConfigurationError, ImportFatalError, SinkError
from .fk_resolver import ForeignKeyResolver, LookupBackend, SqlLookupBackend
from .import_logging import (
    log_import_cancelled,
    log_import_complete,
    log_import_failure,
    log_import_start,
    log_phase_timings,
    log_row_failure,
)
from .log_sink import ImportLogSink
from .mapping import FieldMapping, ForeignKeyRule, MappingConfiguration
from .run_result import ImportProgress, ImportRunResult, RowOutcome, RunStatus
from .spreadsheet_reader import SheetHandle, open_sheet
from .target import TargetTable, is_row_local_error, reference_problems
from .validator import RowValidationResult, RowValidator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ImportProgress], None]
BackendFactory = Callable[[Connection], LookupBackend]


class ImportExecutor:
    """Runs imports against a target database engine."""

    def __init__(
        self,
        engine: Engine,
        *,
        sink: Optional[ImportLogSink] = None,
        settings: Optional[ImportSettings] = None,
        backend_factory: BackendFactory = SqlLookupBackend,
        schema: Optional[str] = None,
    ) -> None:
        self._engine = engine
        self._sink = sink
        self.settings = settings or DEFAULT_SETTINGS
        # reference tables live in the same schema as the target table
        self._backend_factory = partial(backend_factory, schema=schema) if schema else backend_factory
        self._schema = schema

    def run_file(
        self,
        configuration: MappingConfiguration,
        path: Union[str, Path],
        *,
        sheet_name: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ImportRunResult:
        """Open ``path`` and run the import over it."""
        with open_sheet(path, sheet_name=sheet_name, csv_chunk_size=self.settings.csv_chunk_size) as sheet:
            return self.run(
                configuration,
                sheet,
                progress_callback=progress_callback,
                cancellation=cancellation,
            )

    def run(
        self,
        configuration: MappingConfiguration,
        sheet: SheetHandle,
        *,
        progress_callback: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ImportRunResult:
        """Import every row of ``sheet`` into the configured table.

        Returns:
            The finalized result (COMPLETED or CANCELLED).

        Raises:
            ImportConfigurationError: Mapping unusable for this sheet or schema.
            ImportFatalError: Infrastructure failure; the open transaction was rolled back.
            SinkError: The result could not be recorded (``error.result`` holds it).
        """
        result = ImportRunResult(
            configuration_name=configuration.name,
            table_name=configuration.table_name,
            file_name=sheet.file_name,
            max_error_messages=self.settings.max_error_messages,
        )
        headers = sheet.headers
        self._check_mapping(configuration, headers)

        try:
            connection = self._engine.connect()
        except SQLAlchemyError as exc:
            raise self._fail(result, exc) from exc

        try:
            try:
                with TimingContext("import.preflight"):
                    target = self._preflight(connection, configuration)
            except SQLAlchemyError as exc:
                raise self._fail(result, exc) from exc

            run = _RunState(
                executor=self,
                connection=connection,
                configuration=configuration,
                target=target,
                result=result,
                validator=RowValidator(configuration, headers),
                resolver=ForeignKeyResolver(self._backend_factory(connection)),
                progress_callback=progress_callback,
                cancellation=cancellation,
            )
            result.mark_running()
            log_import_start(logger=logger, result=result, headers=headers)
            for column in run.validator.unmapped_optional_columns:
                logger.warning("Optional source column '%s' not in sheet; field will be empty", column)

            try:
                status = run.execute(sheet)
            except Exception as exc:
                run.rollback()
                raise self._fail(result, exc, run.pending) from exc
        finally:
            connection.close()

        return self._finish(run, status)

    def _check_mapping(self, configuration: MappingConfiguration, headers: List[str]) -> None:
        problems = configuration.structural_errors()
        missing = configuration.required_fields_without_mapping(headers)
        if missing:
            problems.append(
                "Required fields have no source column in the sheet: " + ", ".join(sorted(missing))
            )
        if problems:
            raise ImportConfigurationError(f"Import configuration '{configuration.name}' is invalid", problems)

    def _preflight(self, connection: Connection, configuration: MappingConfiguration) -> TargetTable:
        try:
            target = TargetTable.reflect(connection, configuration.table_name, schema=self._schema)
            problems = target.schema_problems(configuration) + reference_problems(
                connection, configuration, self._schema
            )
        finally:
            # end the implicit transaction opened by reflection
            connection.rollback()
        if problems:
            raise ImportConfigurationError(
                f"Import configuration '{configuration.name}' does not match the database", problems
            )
        return target

    def _finish(self, run: "_RunState", status: RunStatus) -> ImportRunResult:
        result = run.result
        if status is RunStatus.CANCELLED:
            result.finalize(RunStatus.CANCELLED)
            log_import_cancelled(logger=logger, result=result)
            run.report_progress("Import cancelled")
        else:
            result.finalize(RunStatus.COMPLETED)
            log_phase_timings(logger=logger, result=result, phase_timings=run.timer.as_list())
            log_import_complete(logger=logger, result=result, resolver_stats=run.resolver.cache_info())
            run.report_progress("Import completed")

        self._record(result)
        return result

    def _fail(self, result: ImportRunResult, error: BaseException, pending: int = 0) -> ImportFatalError:
        """Finalize ``result`` as FAILED, record it and build the error to raise."""
        result.discard_uncommitted(pending)
        message = format_error_message(error)
        result.finalize(RunStatus.FAILED, failure_message=message)
        log_import_failure(logger=logger, result=result, error=error)
        try:
            self._record(result)
        except SinkError as sink_error:
            logger.error("Could not record failed run %s: %s", result.run_id, sink_error)
        return ImportFatalError(f"Import '{result.configuration_name}' failed: {message}", result)

    def _record(self, result: ImportRunResult) -> None:
        if self._sink is None:
            return
        try:
            self._sink.record(result)
        except SinkError as exc:
            if exc.result is None:
                exc.result = result
            raise


class _RunState:
    """Mutable state of one executing run; discarded when the run ends."""

    def __init__(
        self,
        *,
        executor: ImportExecutor,
        connection: Connection,
        configuration: MappingConfiguration,
        target: TargetTable,
        result: ImportRunResult,
        validator: RowValidator,
        resolver: ForeignKeyResolver,
        progress_callback: Optional[ProgressCallback],
        cancellation: Optional[CancellationToken],
    ) -> None:
        self.settings = executor.settings
        self.connection = connection
        self.configuration = configuration
        self.target = target
        self.result = result
        self.validator = validator
        self.resolver = resolver
        self.progress_callback = progress_callback
        self.cancellation = cancellation
        self.timer = PhaseTimer({"run_id": result.run_id})
        self.transaction: Optional[RootTransaction] = None
        # successful rows not yet covered by a commit
        self.pending = 0
        self._fk_mappings: List[FieldMapping] = configuration.foreign_key_mappings()

    def execute(self, sheet: SheetHandle) -> RunStatus:
        window_size = max(1, self.settings.lookahead_rows)
        source = enumerate(sheet.rows(), start=1)
        self.transaction = self.connection.begin()

        while True:
            window: List[Tuple[int, Any]] = list(islice(source, window_size))
            if not window:
                break
            if self._cancel_requested():
                return self._cancel()

            with self.timer.measure("validate"):
                checked = [(row_index, self.validator.validate(row)) for row_index, row in window]
            if self.settings.lookahead_rows and self._fk_mappings:
                with self.timer.measure("prefetch"):
                    self._prefetch(checked)

            for row_index, validation in checked:
                if self._cancel_requested():
                    return self._cancel()
                self._process_row(row_index, validation)
                self._after_row()

        with self.timer.measure("commit"):
            self.transaction.commit()
        self.pending = 0
        return RunStatus.COMPLETED

    def _process_row(self, row_index: int, validation: RowValidationResult) -> None:
        if not validation.is_valid:
            self._reject(row_index, "validation", validation.errors)
            return

        with self.timer.measure("resolve"):
            record, resolution_errors = self._resolve(validation.values)
        if resolution_errors:
            self._reject(row_index, "resolution", resolution_errors)
            return

        try:
            with self.timer.measure("insert"):
                self.target.insert(record)
        except SQLAlchemyError as exc:
            if not is_row_local_error(exc):
                raise
            self._reject(row_index, "insert", [database_error_text(exc)])
            return

        self.result.record(RowOutcome.ok(row_index))
        self.pending += 1

    def _resolve(self, values: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
        record = dict(values)
        errors: List[str] = []
        for mapping in self._fk_mappings:
            try:
                record[mapping.target_field] = self.resolver.resolve(
                    mapping.foreign_key,
                    values.get(mapping.target_field),
                    required=mapping.is_required,
                    target_field=mapping.target_field,
                )
            except ForeignKeyNotFoundError as exc:
                errors.append(f"foreign key resolution failed: {exc}")
        # empty optional fields are left out so column defaults apply
        return {field: value for field, value in record.items() if value is not None}, errors

    def _prefetch(self, checked: List[Tuple[int, RowValidationResult]]) -> None:
        values_by_rule: Dict[ForeignKeyRule, List[Any]] = {}
        for _, validation in checked:
            if not validation.is_valid:
                continue
            for mapping in self._fk_mappings:
                values_by_rule.setdefault(mapping.foreign_key, []).append(
                    validation.values.get(mapping.target_field)
                )
        for rule, values in values_by_rule.items():
            self.resolver.prefetch(rule, values)

    def _reject(self, row_index: int, stage: str, errors) -> None:
        outcome = RowOutcome.failed(row_index, errors)
        self.result.record(outcome)
        log_row_failure(logger=logger, result=self.result, row_index=row_index, stage=stage, errors=outcome.errors)

    def _after_row(self) -> None:
        processed = self.result.total_records
        batch_size = self.settings.commit_batch_size
        if batch_size and processed % batch_size == 0:
            with self.timer.measure("commit"):
                self.transaction.commit()
            self.pending = 0
            logger.debug("Committed batch ending at row %d", processed)
            self.transaction = self.connection.begin()

        if processed % self.settings.progress_interval == 0:
            self.report_progress(f"Processed {processed} rows")

    def _cancel_requested(self) -> bool:
        return self.cancellation is not None and self.cancellation.is_cancelled

    def _cancel(self) -> RunStatus:
        self.transaction.rollback()
        self.result.discard_uncommitted(self.pending)
        self.pending = 0
        return RunStatus.CANCELLED

    def rollback(self) -> None:
        """Best-effort rollback after a fatal error; the original error wins."""
        if self.transaction is None or not self.transaction.is_active:
            return
        try:
            self.transaction.rollback()
        except SQLAlchemyError as exc:
            logger.warning("Rollback after fatal error failed: %s", exc)

    def report_progress(self, message: str) -> None:
        if self.progress_callback is not None:
            self.progress_callback(self.result.progress(message))
