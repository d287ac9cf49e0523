"""Load mapping configurations from JSON documents.

Document layout::

    {
      "name": "Customers",
      "table": "Customers",
      "foreign_keys": {
        "country": {"table": "Countries", "lookup": "Name", "key": "Id"}
      },
      "fields": [
        {"column": "Name", "field": "Name", "required": true},
        {"column": "Country", "field": "CountryId", "required": true,
         "type": "text", "foreign_key": "country"}
      ]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from processing.errors import ImportConfigurationError
from processing.mapping import FieldMapping, ForeignKeyRule, MappingConfiguration

logger = logging.getLogger(__name__)


def load_mapping(path: Union[str, Path]) -> MappingConfiguration:
    """Read and parse a mapping document from ``path``."""
    path = Path(path)
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ImportConfigurationError(f"Mapping file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ImportConfigurationError(f"Mapping file {path.name} is not valid JSON", [str(exc)]) from exc

    configuration = mapping_from_dict(document)
    logger.debug("Loaded mapping '%s' from %s", configuration.name, path)
    return configuration


def mapping_from_dict(document: Any) -> MappingConfiguration:
    """Build a configuration from a parsed document.

    Raises:
        ImportConfigurationError: Malformed document; ``problems`` lists every issue found.
    """
    if not isinstance(document, Mapping):
        raise ImportConfigurationError("Mapping document must be a JSON object")

    problems: List[str] = []
    rules = _parse_rules(document.get("foreign_keys") or {}, problems)

    fields = document.get("fields")
    if not isinstance(fields, list):
        problems.append("'fields' must be a list")
        fields = []

    mappings: List[FieldMapping] = []
    for position, entry in enumerate(fields, start=1):
        if not isinstance(entry, Mapping):
            problems.append(f"Field {position} must be an object")
            continue

        rule = None
        rule_id = entry.get("foreign_key")
        if rule_id is not None:
            rule = rules.get(str(rule_id))
            if rule is None:
                problems.append(f"Field {position} references unknown foreign key '{rule_id}'")
                continue

        try:
            mappings.append(
                FieldMapping(
                    source_column=str(entry.get("column") or ""),
                    target_field=str(entry.get("field") or ""),
                    is_required=bool(entry.get("required", False)),
                    data_type=entry.get("type") or "text",
                    foreign_key=rule,
                )
            )
        except ValueError as exc:
            problems.append(f"Field {position}: {exc}")

    if problems:
        raise ImportConfigurationError("Invalid mapping document", problems)

    return MappingConfiguration(
        name=str(document.get("name") or ""),
        table_name=str(document.get("table") or ""),
        field_mappings=tuple(mappings),
    )


def _parse_rules(raw: Any, problems: List[str]) -> Dict[str, ForeignKeyRule]:
    if not isinstance(raw, Mapping):
        problems.append("'foreign_keys' must be an object keyed by rule id")
        return {}

    rules: Dict[str, ForeignKeyRule] = {}
    for rule_id, entry in raw.items():
        if not isinstance(entry, Mapping):
            problems.append(f"Foreign key '{rule_id}' must be an object")
            continue
        rules[str(rule_id)] = ForeignKeyRule(
            referenced_table=str(entry.get("table") or ""),
            lookup_field=str(entry.get("lookup") or ""),
            key_field=str(entry.get("key") or ""),
            rule_id=str(rule_id),
        )
    return rules


def mapping_to_dict(configuration: MappingConfiguration) -> Dict[str, Any]:
    """Inverse of ``mapping_from_dict``."""
    rules = configuration.foreign_key_rules()
    ids = {rule: rule_id for rule_id, rule in rules.items()}
    return {
        "name": configuration.name,
        "table": configuration.table_name,
        "foreign_keys": {
            rule_id: {"table": rule.referenced_table, "lookup": rule.lookup_field, "key": rule.key_field}
            for rule_id, rule in rules.items()
        },
        "fields": [
            {
                "column": m.source_column,
                "field": m.target_field,
                "required": m.is_required,
                "type": m.data_type.value,
                **({"foreign_key": ids[m.foreign_key]} if m.foreign_key is not None else {}),
            }
            for m in configuration.field_mappings
        ],
    }
