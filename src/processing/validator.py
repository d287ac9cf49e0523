"""Local, per-row validation against a mapping configuration.

Validation is a pure check: it looks up each mapped cell, enforces
required-ness and coerces present values by data type. It never queries the
database; foreign key resolution happens later in the executor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .data_types import CoercionError, coerce, is_empty
from .mapping import FieldMapping, MappingConfiguration


def required_message(target_field: str) -> str:
    return f"{target_field} is required but missing"


def invalid_type_message(mapping: FieldMapping) -> str:
    return f"{mapping.target_field} has invalid type, expected {mapping.data_type.value}"


@dataclass(frozen=True)
class RowValidationResult:
    """Field errors for one row plus the coerced values keyed by target field.

    For foreign key mappings the value is the coerced lookup value, not the
    resolved key.
    """

    errors: Tuple[str, ...] = ()
    values: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class RowValidator:
    """Validates rows of one sheet against one mapping configuration.

    Column positions are resolved once from the sheet headers.
    """

    def __init__(self, configuration: MappingConfiguration, headers: Sequence[str]) -> None:
        self.configuration = configuration
        self.headers = list(headers)
        positions = {name: index for index, name in reversed(list(enumerate(self.headers)))}
        self._plan: List[Tuple[FieldMapping, Optional[int]]] = [
            (mapping, positions.get(mapping.source_column))
            for mapping in configuration.field_mappings
        ]

    @property
    def unmapped_optional_columns(self) -> List[str]:
        """Source columns of optional mappings missing from the sheet."""
        return [mapping.source_column for mapping, position in self._plan if position is None]

    def validate(self, row: Sequence[Any]) -> RowValidationResult:
        errors: List[str] = []
        values: Dict[str, Any] = {}

        for mapping, position in self._plan:
            raw = row[position] if position is not None and position < len(row) else None

            if is_empty(raw):
                if mapping.is_required:
                    errors.append(required_message(mapping.target_field))
                values[mapping.target_field] = None
                continue

            try:
                values[mapping.target_field] = coerce(raw, mapping.data_type)
            except CoercionError:
                errors.append(invalid_type_message(mapping))

        return RowValidationResult(errors=tuple(errors), values=values)


def validate_row(
    row: Sequence[Any],
    configuration: MappingConfiguration,
    headers: Sequence[str],
) -> RowValidationResult:
    """One-off validation; prefer ``RowValidator`` when validating many rows."""
    return RowValidator(configuration, headers).validate(row)
