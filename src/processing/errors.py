"""Exception hierarchy for the import engine.

Configuration and reader errors stop a run before it starts. Row-local errors
are caught by the executor and folded into the run result; they never escape
``ImportExecutor.run``. Fatal errors propagate after the run transaction has
been rolled back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Optional

if TYPE_CHECKING:
    from .mapping import ForeignKeyRule
    from .run_result import ImportRunResult


class ImportEngineError(Exception):
    """Base class for every error raised by the import engine."""


class ImportConfigurationError(ImportEngineError):
    """Mapping or target schema is unusable; the run never starts."""

    def __init__(self, message: str, problems: Optional[Iterable[str]] = None) -> None:
        self.problems = list(problems or [])
        if self.problems:
            message = f"{message}: {'; '.join(self.problems)}"
        super().__init__(message)


class ReaderError(ImportEngineError):
    """Spreadsheet source could not be opened or read."""

    def __init__(self, path: Any, message: str) -> None:
        self.path = path
        super().__init__(message)


class SheetNotFoundError(ReaderError):
    pass


class UnsupportedFormatError(ReaderError):
    pass


class CorruptSheetError(ReaderError):
    pass


class RowLocalError(ImportEngineError):
    """Failure attributable to a single input row."""


class ForeignKeyNotFoundError(RowLocalError):
    """No referenced row matches the lookup value."""

    def __init__(self, rule: "ForeignKeyRule", raw_value: Any, target_field: Optional[str] = None) -> None:
        self.rule = rule
        self.raw_value = raw_value
        self.target_field = target_field
        field_part = f" for {target_field}" if target_field else ""
        super().__init__(
            f"no {rule.referenced_table}.{rule.key_field} where "
            f"{rule.lookup_field} = {raw_value!r}{field_part}"
        )


class ResolverBackendError(ImportEngineError):
    """Lookup query could not be executed; fatal to the run."""


class ImportFatalError(ImportEngineError):
    """Transactional or infrastructure failure; the run was rolled back."""

    def __init__(self, message: str, result: Optional["ImportRunResult"] = None) -> None:
        self.result = result
        super().__init__(message)


class SinkError(ImportEngineError):
    """The import log store rejected the run result.

    ``result`` holds the finalized run so the caller can retry ``record``.
    """

    def __init__(self, message: str, result: Optional["ImportRunResult"] = None) -> None:
        self.result = result
        super().__init__(message)
