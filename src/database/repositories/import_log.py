"""Import log repository for ImportLog operations."""

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import selectinload

from ..models import ImportLog, ImportLogError
from ..base_repository import BaseRepository


class ImportLogRepository(BaseRepository[ImportLog]):
    """Repository for ImportLog operations."""

    model = ImportLog

    def get_by_run_id(self, run_id: str) -> Optional[ImportLog]:
        return (
            self.session.query(ImportLog)
            .options(selectinload(ImportLog.row_errors))
            .filter(ImportLog.run_id == run_id)
            .first()
        )

    def upsert(
        self,
        run_id: str,
        row_errors: Iterable[Tuple[int, str]] = (),
        **fields,
    ) -> ImportLog:
        """Create the log for ``run_id`` or overwrite the existing one in place."""
        log = self.get_by_run_id(run_id)
        if log is None:
            log = ImportLog(run_id=run_id)
            self.session.add(log)
        for name, value in fields.items():
            setattr(log, name, value)
        log.row_errors = [
            ImportLogError(row_index=row_index, message=message) for row_index, message in row_errors
        ]
        self.session.flush()
        return log

    def get_logs(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> List[ImportLog]:
        """Runs started inside ``[from_date, to_date]``, newest first."""
        query = self.session.query(ImportLog)
        if from_date is not None:
            query = query.filter(ImportLog.start_time >= from_date)
        if to_date is not None:
            query = query.filter(ImportLog.start_time <= to_date)
        if status:
            query = query.filter(ImportLog.status == status)
        return query.order_by(ImportLog.start_time.desc(), ImportLog.id.desc()).all()

    def get_by_configuration(self, configuration_name: str) -> List[ImportLog]:
        return (
            self.session.query(ImportLog)
            .filter(ImportLog.configuration_name == configuration_name)
            .order_by(ImportLog.start_time.desc(), ImportLog.id.desc())
            .all()
        )

    def delete_by_run_id(self, run_id: str) -> bool:
        log = self.get_by_run_id(run_id)
        if log:
            super().delete(log)
            return True
        return False
