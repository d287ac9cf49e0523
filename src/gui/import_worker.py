"""Background worker that runs an import off the UI thread."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QThread, pyqtSignal

from processing.cancellation import CancellationToken
from processing.errors import ImportEngineError
from processing.mapping import MappingConfiguration
from processing.run_result import ImportProgress, RunStatus
from utils.error_handling import handle_worker_error

logger = logging.getLogger(__name__)


class ImportWorker(QThread):
    """Worker thread for one spreadsheet import run.

    ``service`` is anything with ``import_file(configuration, file_path, ...)``
    (normally ``services.import_service.ImportService``).
    """

    progress = pyqtSignal(object)  # ImportProgress
    finished = pyqtSignal(object)  # ImportRunResult (COMPLETED)
    cancelled = pyqtSignal(object)  # ImportRunResult (CANCELLED)
    error = pyqtSignal(str)  # error message

    def __init__(
        self,
        service,
        configuration: MappingConfiguration,
        file_path: Path,
        sheet_name: Optional[str] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.service = service
        self.configuration = configuration
        self.file_path = Path(file_path)
        self.sheet_name = sheet_name
        self._cancellation = CancellationToken()

    def cancel(self) -> None:
        """Request cancellation; the run stops before its next row."""
        self._cancellation.cancel()

    @property
    def cancel_requested(self) -> bool:
        return self._cancellation.is_cancelled

    def _on_progress(self, snapshot: ImportProgress) -> None:
        self.progress.emit(snapshot)

    def run(self):
        """Run import in background thread."""
        try:
            result = self.service.import_file(
                self.configuration,
                self.file_path,
                sheet_name=self.sheet_name,
                progress_callback=self._on_progress,
                cancellation=self._cancellation,
            )
        except ImportEngineError as e:
            self.error.emit(handle_worker_error(e, "Import failed", self.file_path))
            return
        except Exception as e:
            self.error.emit(handle_worker_error(e, "Unexpected import error", self.file_path))
            return

        if result.status is RunStatus.CANCELLED:
            self.cancelled.emit(result)
        else:
            self.finished.emit(result)
