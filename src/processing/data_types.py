"""Field data types and their cell coercions.

Each ``DataType`` tag has exactly one coercion function. Coercions receive a
non-empty cell value and either return the value the target column should
receive or raise ``CoercionError``.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Optional

import pandas as pd


class DataType(str, Enum):
    TEXT = "text"
    INTEGER = "integer"
    DECIMAL = "decimal"
    DATE = "date"
    BOOLEAN = "boolean"

    @classmethod
    def parse(cls, value: "Optional[str | DataType]") -> "DataType":
        """Normalize a tag (including legacy aliases) to a DataType."""
        if isinstance(value, DataType):
            return value
        if not value or not str(value).strip():
            raise ValueError("Data type is required")
        key = str(value).strip().lower()
        try:
            return _ALIASES[key]
        except KeyError:
            supported = ", ".join(t.value for t in cls)
            raise ValueError(f"Unsupported data type '{value}'. Supported types: {supported}") from None


_ALIASES: Dict[str, DataType] = {
    "text": DataType.TEXT,
    "string": DataType.TEXT,
    "str": DataType.TEXT,
    "varchar": DataType.TEXT,
    "integer": DataType.INTEGER,
    "int": DataType.INTEGER,
    "bigint": DataType.INTEGER,
    "long": DataType.INTEGER,
    "decimal": DataType.DECIMAL,
    "numeric": DataType.DECIMAL,
    "float": DataType.DECIMAL,
    "real": DataType.DECIMAL,
    "double": DataType.DECIMAL,
    "date": DataType.DATE,
    "datetime": DataType.DATE,
    "boolean": DataType.BOOLEAN,
    "bool": DataType.BOOLEAN,
    "bit": DataType.BOOLEAN,
}

_TRUE_WORDS = {"true", "yes", "y", "1"}
_FALSE_WORDS = {"false", "no", "n", "0"}
_DATE_SHAPE = re.compile(r"\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}")


class CoercionError(ValueError):
    """Cell value cannot be represented as the requested data type."""


def is_empty(value: Any) -> bool:
    """True for None, blank strings, NaN and NaT."""
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, float):
        return math.isnan(value)
    return False


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


def _to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise CoercionError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        raise CoercionError(f"{value!r} is not integral")
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return int(value)
        raise CoercionError(f"{value!r} is not integral")
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise CoercionError(f"{value!r} is not an integer") from None
    raise CoercionError(f"{type(value).__name__} is not an integer")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise CoercionError("boolean is not a number")
    if isinstance(value, (int, Decimal)):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value)) if math.isfinite(value) else Decimal("NaN")
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise CoercionError(f"{value!r} is not a number") from None
    else:
        raise CoercionError(f"{type(value).__name__} is not a number")

    if not result.is_finite():
        raise CoercionError(f"{value!r} is not a finite number")
    return result


def _to_date(value: Any) -> datetime:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, str):
        text = value.strip()
        if not _DATE_SHAPE.search(text):
            raise CoercionError(f"{value!r} is not a date")
        try:
            parsed = pd.to_datetime(text)
        except (ValueError, TypeError, OverflowError):
            raise CoercionError(f"{value!r} is not a date") from None
        if parsed is pd.NaT:
            raise CoercionError(f"{value!r} is not a date")
        return parsed.to_pydatetime()
    raise CoercionError(f"{type(value).__name__} is not a date")


def _to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value == 1:
            return True
        if value == 0:
            return False
        raise CoercionError(f"{value!r} is not a boolean")
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise CoercionError(f"{value!r} is not a boolean")


_COERCIONS: Dict[DataType, Callable[[Any], Any]] = {
    DataType.TEXT: _to_text,
    DataType.INTEGER: _to_integer,
    DataType.DECIMAL: _to_decimal,
    DataType.DATE: _to_date,
    DataType.BOOLEAN: _to_boolean,
}


def coerce(value: Any, data_type: DataType) -> Any:
    """Coerce a non-empty cell value to ``data_type``."""
    return _COERCIONS[data_type](value)


__all__ = ["CoercionError", "DataType", "coerce", "is_empty"]
