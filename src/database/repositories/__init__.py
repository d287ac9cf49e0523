"""Repository package - provides clean interface to database operations."""

from .import_log import ImportLogRepository

__all__ = [
    "ImportLogRepository",
]
