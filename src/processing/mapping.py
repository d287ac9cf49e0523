"""Declarative mapping from spreadsheet columns to target-table fields.

A ``MappingConfiguration`` owns its ``FieldMapping`` entries by value. Foreign
key rules are plain values shared by reference; the configuration also keeps
them by identifier so callers can go from a rule id to the rule without the
rule pointing back at its mappings.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .data_types import DataType


@dataclass(frozen=True)
class ForeignKeyRule:
    """Replace a cell value with ``key_field`` of the row in
    ``referenced_table`` whose ``lookup_field`` equals it."""

    referenced_table: str
    lookup_field: str
    key_field: str
    rule_id: Optional[str] = field(default=None, compare=False)

    def describe(self) -> str:
        return f"{self.referenced_table}.{self.lookup_field} -> {self.key_field}"


@dataclass(frozen=True)
class FieldMapping:
    source_column: str
    target_field: str
    is_required: bool = False
    data_type: DataType = DataType.TEXT
    foreign_key: Optional[ForeignKeyRule] = None

    def __post_init__(self) -> None:
        # Accept legacy string tags ("int", "datetime", ...) at construction.
        if not isinstance(self.data_type, DataType):
            object.__setattr__(self, "data_type", DataType.parse(self.data_type))

    @property
    def has_foreign_key(self) -> bool:
        return self.foreign_key is not None


@dataclass(frozen=True)
class MappingConfiguration:
    """Target table plus the ordered field mappings feeding it."""

    name: str
    table_name: str
    field_mappings: Tuple[FieldMapping, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.field_mappings, tuple):
            object.__setattr__(self, "field_mappings", tuple(self.field_mappings))

    def field_mapping_for(self, source_column: str) -> Optional[FieldMapping]:
        for mapping in self.field_mappings:
            if mapping.source_column == source_column:
                return mapping
        return None

    def required_fields_without_mapping(self, available_columns: Iterable[str]) -> Set[str]:
        """Target fields of required mappings whose source column is absent."""
        available = set(available_columns)
        return {
            mapping.target_field
            for mapping in self.field_mappings
            if mapping.is_required and mapping.source_column not in available
        }

    def foreign_key_mappings(self) -> List[FieldMapping]:
        return [m for m in self.field_mappings if m.foreign_key is not None]

    def foreign_key_rules(self) -> Dict[str, ForeignKeyRule]:
        """Distinct rules keyed by id (rules without an id key by description)."""
        rules: Dict[str, ForeignKeyRule] = {}
        for mapping in self.foreign_key_mappings():
            rule = mapping.foreign_key
            rules.setdefault(rule.rule_id or rule.describe(), rule)
        return rules

    def foreign_key_rule(self, rule_id: str) -> Optional[ForeignKeyRule]:
        return self.foreign_key_rules().get(rule_id)

    def mappings_using(self, rule_id: str) -> List[FieldMapping]:
        """Reverse lookup: field mappings resolved through ``rule_id``."""
        rule = self.foreign_key_rule(rule_id)
        if rule is None:
            return []
        return [m for m in self.foreign_key_mappings() if m.foreign_key == rule]

    @property
    def target_fields(self) -> List[str]:
        return [m.target_field for m in self.field_mappings]

    def structural_errors(self) -> List[str]:
        """Problems that make the configuration unusable regardless of input."""
        errors: List[str] = []

        if not self.name or not self.name.strip():
            errors.append("Import configuration name is required")
        if not self.table_name or not self.table_name.strip():
            errors.append("Target table name is required")

        if not self.field_mappings:
            errors.append("At least one field mapping is required")
            return errors

        if not any(m.is_required for m in self.field_mappings):
            errors.append("At least one required field mapping must be defined")

        for label, attr in (("source column", "source_column"), ("target field", "target_field")):
            counts = Counter(getattr(m, attr) for m in self.field_mappings)
            duplicates = sorted(name for name, count in counts.items() if count > 1)
            if duplicates:
                errors.append(f"Duplicate {label} mappings found: {', '.join(duplicates)}")

        for position, mapping in enumerate(self.field_mappings, start=1):
            if not mapping.source_column or not mapping.source_column.strip():
                errors.append(f"Field mapping {position}: source column name is required")
            if not mapping.target_field or not mapping.target_field.strip():
                errors.append(f"Field mapping {position}: target field name is required")
            rule = mapping.foreign_key
            if rule is not None and not all(
                part and part.strip() for part in (rule.referenced_table, rule.lookup_field, rule.key_field)
            ):
                errors.append(
                    f"Field mapping {position}: foreign key rule needs referenced table, "
                    "lookup field and key field"
                )

        return errors
