"""SQLAlchemy models for the import log store."""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from .base import LogBase


class ImportLog(LogBase):
    """One finished import run."""

    __tablename__ = "import_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(32), nullable=False, unique=True)
    configuration_name = Column(String(100), nullable=False)
    table_name = Column(String(100), nullable=False)
    file_name = Column(String(255), nullable=False, default="")
    status = Column(String(20), nullable=False)  # 'Completed', 'Failed' or 'Cancelled'
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    total_records = Column(Integer, nullable=False, default=0)
    successful_records = Column(Integer, nullable=False, default=0)
    failed_records = Column(Integer, nullable=False, default=0)
    rolled_back_records = Column(Integer, nullable=False, default=0)
    failure_message = Column(Text, nullable=True)
    error_details = Column(Text, nullable=False, default="")

    # Relationships
    row_errors = relationship(
        "ImportLogError",
        back_populates="import_log",
        cascade="all, delete-orphan",
        order_by="ImportLogError.row_index",
    )

    __table_args__ = (
        Index("ix_import_log_start", "start_time"),
        Index("ix_import_log_configuration", "configuration_name"),
    )

    def __repr__(self):
        return f"<ImportLog(run_id='{self.run_id}', status='{self.status}', total={self.total_records})>"


class ImportLogError(LogBase):
    """Error descriptor for one failed row of a run."""

    __tablename__ = "import_log_errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    import_log_id = Column(Integer, ForeignKey("import_logs.id", ondelete="CASCADE"), nullable=False)
    row_index = Column(Integer, nullable=False)
    message = Column(Text, nullable=False)

    import_log = relationship("ImportLog", back_populates="row_errors")

    __table_args__ = (Index("ix_import_log_error_log", "import_log_id", "row_index"),)

    def __repr__(self):
        return f"<ImportLogError(row={self.row_index}, message='{self.message[:40]}')>"
