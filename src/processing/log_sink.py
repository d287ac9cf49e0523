"""Import log sink interface.

The executor hands every finalized run to a sink exactly once. Sinks raise
``SinkError`` when the store is unavailable; retrying is the caller's call,
so ``record`` must tolerate receiving the same run twice.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol

from .errors import SinkError
from .run_result import ImportRunResult


class ImportLogSink(Protocol):
    def record(self, result: ImportRunResult) -> None:
        """Persist a finalized run result. Raises ``SinkError``."""


class InMemoryImportLogSink:
    """Keeps results in memory keyed by run id."""

    def __init__(self) -> None:
        self._results: Dict[str, ImportRunResult] = {}
        self._lock = threading.Lock()

    def record(self, result: ImportRunResult) -> None:
        if not result.finalized:
            raise SinkError(f"Run {result.run_id} is not finalized", result)
        with self._lock:
            self._results[result.run_id] = result

    @property
    def results(self) -> List[ImportRunResult]:
        with self._lock:
            return list(self._results.values())

    def get(self, run_id: str) -> Optional[ImportRunResult]:
        with self._lock:
            return self._results.get(run_id)
