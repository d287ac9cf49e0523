"""Target table access for the import executor.

Wraps a reflected SQLAlchemy ``Table`` on the run's connection. Each row is
inserted under its own SAVEPOINT so a rejected row rolls back alone while the
enclosing run transaction stays usable.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import Integer, MetaData, Table, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import (
    DBAPIError,
    InterfaceError,
    InternalError,
    OperationalError,
    SQLAlchemyError,
    StatementError,
)

from utils.error_handling import timed

from .errors import ImportConfigurationError
from .mapping import MappingConfiguration

logger = logging.getLogger(__name__)

# DBAPI errors that mean the connection or server is unusable rather than the row being bad.
_INFRASTRUCTURE_ERRORS = (OperationalError, InterfaceError, InternalError)


def is_row_local_error(error: SQLAlchemyError) -> bool:
    """True when a failed insert should be charged to the row, not the run."""
    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return False
        return not isinstance(error, _INFRASTRUCTURE_ERRORS)
    # bind parameter processing failed before reaching the driver
    return isinstance(error, StatementError)


class TargetTable:
    """Reflected target table bound to the run's connection."""

    def __init__(self, connection: Connection, table: Table) -> None:
        self._connection = connection
        self.table = table

    @classmethod
    def reflect(cls, connection: Connection, table_name: str, schema: Optional[str] = None) -> "TargetTable":
        if not inspect(connection).has_table(table_name, schema=schema):
            raise ImportConfigurationError(f"Target table '{table_name}' does not exist")
        table = Table(table_name, MetaData(schema=schema), autoload_with=connection)
        return cls(connection, table)

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.table.columns]

    def schema_problems(self, configuration: MappingConfiguration) -> List[str]:
        """Mismatches between the mapping and the reflected table."""
        problems: List[str] = []
        columns = set(self.column_names)

        unknown = [field for field in configuration.target_fields if field not in columns]
        if unknown:
            problems.append(
                f"Target fields not found in table '{self.name}': {', '.join(unknown)}"
            )

        mapped = set(configuration.target_fields)
        unmapped_required = [
            column.name
            for column in self.table.columns
            if self._needs_value(column) and column.name not in mapped
        ]
        if unmapped_required:
            problems.append(
                f"Required columns of '{self.name}' have no mapping: {', '.join(unmapped_required)}"
            )
        return problems

    @staticmethod
    def _needs_value(column) -> bool:
        if column.nullable or column.default is not None or column.server_default is not None:
            return False
        if column.primary_key and isinstance(column.type, Integer):
            return False
        return True

    def insert(self, record: Mapping[str, Any]) -> None:
        """Insert one record under a savepoint.

        A failing statement rolls back to the savepoint and re-raises, leaving
        the outer transaction intact.
        """
        with self._connection.begin_nested():
            self._connection.execute(self.table.insert(), [dict(record)])


@timed
def reference_problems(
    connection: Connection,
    configuration: MappingConfiguration,
    schema: Optional[str] = None,
) -> List[str]:
    """Foreign key rules pointing at tables or columns that do not exist."""
    inspector = inspect(connection)
    problems: List[str] = []
    columns_by_table: Dict[str, Optional[set]] = {}

    for mapping in configuration.foreign_key_mappings():
        rule = mapping.foreign_key
        if rule.referenced_table not in columns_by_table:
            if inspector.has_table(rule.referenced_table, schema=schema):
                columns_by_table[rule.referenced_table] = {
                    column["name"]
                    for column in inspector.get_columns(rule.referenced_table, schema=schema)
                }
            else:
                columns_by_table[rule.referenced_table] = None

        columns = columns_by_table[rule.referenced_table]
        if columns is None:
            problems.append(
                f"{mapping.target_field}: referenced table '{rule.referenced_table}' does not exist"
            )
            continue
        for column_name in (rule.lookup_field, rule.key_field):
            if column_name not in columns:
                problems.append(
                    f"{mapping.target_field}: column '{column_name}' not found in '{rule.referenced_table}'"
                )
    return problems
