"""Run-level bookkeeping: status, per-row outcomes and the final result."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class RunStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RowOutcome:
    row_index: int
    success: bool
    errors: Tuple[str, ...] = ()

    @classmethod
    def ok(cls, row_index: int) -> "RowOutcome":
        return cls(row_index=row_index, success=True)

    @classmethod
    def failed(cls, row_index: int, errors) -> "RowOutcome":
        return cls(row_index=row_index, success=False, errors=tuple(errors))


@dataclass(frozen=True)
class RowError:
    """Error descriptor kept on the run result for a failed row."""

    row_index: int
    messages: Tuple[str, ...]

    def describe(self) -> str:
        return f"Row {self.row_index}: {'; '.join(self.messages)}"


@dataclass(frozen=True)
class ImportProgress:
    """Snapshot handed to progress callbacks; safe to pass across threads."""

    rows_processed: int
    successful_records: int
    failed_records: int
    message: str = ""


@dataclass
class ImportRunResult:
    """Aggregate outcome of one import run.

    Only the executor mutates a result, through the ``record_*``/``mark_*``
    methods. ``finalize`` freezes it before it is handed to the log sink.
    """

    configuration_name: str
    table_name: str
    file_name: str = ""
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    total_records: int = 0
    successful_records: int = 0
    failed_records: int = 0
    rolled_back_records: int = 0
    errors: List[RowError] = field(default_factory=list)
    status: RunStatus = RunStatus.PENDING
    failure_message: Optional[str] = None
    max_error_messages: Optional[int] = field(default=None, repr=False, compare=False)
    suppressed_errors: int = 0
    _finalized: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time).total_seconds()

    def _check_mutable(self) -> None:
        if self._finalized:
            raise RuntimeError(f"Import run {self.run_id} is finalized and can no longer change")

    def mark_running(self) -> None:
        self._check_mutable()
        if self.status is not RunStatus.PENDING:
            raise RuntimeError(f"Cannot start run in state {self.status.value}")
        self.status = RunStatus.RUNNING
        self.start_time = utcnow()

    def record(self, outcome: RowOutcome) -> None:
        """Fold one row outcome into the totals."""
        self._check_mutable()
        self.total_records += 1
        if outcome.success:
            self.successful_records += 1
            return

        self.failed_records += 1
        if self.max_error_messages is not None and len(self.errors) >= self.max_error_messages:
            self.suppressed_errors += 1
            return
        self.errors.append(RowError(outcome.row_index, outcome.errors))

    def discard_uncommitted(self, rows: int) -> None:
        """Move ``rows`` counted successes to ``rolled_back_records``.

        Called when the open transaction is rolled back (fatal error or
        cancellation) so ``successful_records`` only counts committed rows.
        """
        self._check_mutable()
        moved = min(rows, self.successful_records)
        self.successful_records -= moved
        self.rolled_back_records += moved

    def finalize(self, status: RunStatus, failure_message: Optional[str] = None) -> "ImportRunResult":
        self._check_mutable()
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status
        self.failure_message = failure_message
        self.end_time = utcnow()
        self._finalized = True
        return self

    def progress(self, message: str = "") -> ImportProgress:
        return ImportProgress(
            rows_processed=self.total_records,
            successful_records=self.successful_records,
            failed_records=self.failed_records,
            message=message,
        )

    def error_details(self) -> str:
        lines = [error.describe() for error in self.errors]
        if self.suppressed_errors:
            lines.append(f"... {self.suppressed_errors} more failed row(s) not listed")
        if self.failure_message:
            lines.append(f"Import failed: {self.failure_message}")
        return "\n".join(lines)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "configuration": self.configuration_name,
            "table": self.table_name,
            "file": self.file_name,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_records": self.total_records,
            "successful_records": self.successful_records,
            "failed_records": self.failed_records,
            "rolled_back_records": self.rolled_back_records,
            "errors": [{"row": e.row_index, "messages": list(e.messages)} for e in self.errors],
            "suppressed_errors": self.suppressed_errors,
            "failure_message": self.failure_message,
        }
