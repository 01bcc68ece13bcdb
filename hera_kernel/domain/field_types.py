"""
Field types for dynamic attributes.

Each dynamic attribute declares one of five field types; the value is
checked and coerced here before anything is written, and lands in exactly
one ``value_*`` column.

    text     str
    number   int, Decimal, finite float, or a numeric string (not bool)
    boolean  bool
    date     date, datetime, or an ISO-8601 string (stored as a date)
    json     dict or list
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from hera_kernel.exceptions import InvalidPayloadError, TypeMismatchError

TEXT = "text"
NUMBER = "number"
BOOLEAN = "boolean"
DATE = "date"
JSON = "json"

VALUE_COLUMNS: dict[str, str] = {
    TEXT: "value_text",
    NUMBER: "value_number",
    BOOLEAN: "value_boolean",
    DATE: "value_date",
    JSON: "value_json",
}


@dataclass(frozen=True)
class CoercedValue:
    field_type: str
    column: str
    value: Any

    def column_values(self) -> dict[str, Any]:
        """All five value columns, with only the matching one populated."""
        values = {column: None for column in VALUE_COLUMNS.values()}
        values[self.column] = self.value
        return values


def normalize_field_type(field_type: Any) -> str:
    if isinstance(field_type, str) and field_type.strip().lower() in VALUE_COLUMNS:
        return field_type.strip().lower()
    raise InvalidPayloadError(
        f"field_type must be one of {sorted(VALUE_COLUMNS)}, got '{field_type}'",
        field="field_type",
    )


def _to_number(field_name: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeMismatchError(field_name, "number", value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise TypeMismatchError(field_name, "number", value) from None
    else:
        raise TypeMismatchError(field_name, "number", value)
    if not result.is_finite():
        raise TypeMismatchError(field_name, "number", value)
    return result


def _to_date(field_name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            raise TypeMismatchError(field_name, "date", value) from None
    raise TypeMismatchError(field_name, "date", value)


def coerce_value(field_name: str, field_type: Any, value: Any) -> CoercedValue:
    """
    Check ``value`` against ``field_type`` and convert it for storage.

    Raises:
        InvalidPayloadError: unknown field_type.
        TypeMismatchError: value does not fit the field_type.
    """
    kind = normalize_field_type(field_type)

    if kind == TEXT:
        if not isinstance(value, str):
            raise TypeMismatchError(field_name, kind, value)
        coerced: Any = value
    elif kind == NUMBER:
        coerced = _to_number(field_name, value)
    elif kind == BOOLEAN:
        if not isinstance(value, bool):
            raise TypeMismatchError(field_name, kind, value)
        coerced = value
    elif kind == DATE:
        coerced = _to_date(field_name, value)
    else:
        if not isinstance(value, (dict, list)):
            raise TypeMismatchError(field_name, kind, value)
        coerced = value

    return CoercedValue(field_type=kind, column=VALUE_COLUMNS[kind], value=coerced)
