"""Unit tests for dynamic field type checking and coercion."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from hera_kernel.domain.field_types import (
    VALUE_COLUMNS,
    coerce_value,
    normalize_field_type,
)
from hera_kernel.exceptions import InvalidPayloadError, TypeMismatchError


class TestNormalizeFieldType:
    @pytest.mark.parametrize("raw", ["text", "TEXT", " Number ", "json"])
    def test_known(self, raw):
        assert normalize_field_type(raw) in VALUE_COLUMNS

    @pytest.mark.parametrize("raw", [None, "", "string", 3])
    def test_unknown(self, raw):
        with pytest.raises(InvalidPayloadError):
            normalize_field_type(raw)


class TestCoerceValue:
    def test_text(self):
        coerced = coerce_value("notes", "text", "prefers mornings")
        assert coerced.column == "value_text"
        assert coerced.value == "prefers mornings"

    @pytest.mark.parametrize("raw, expected", [
        (5, Decimal("5")),
        ("12.50", Decimal("12.50")),
        (Decimal("0.1"), Decimal("0.1")),
        (0.1, Decimal("0.1")),
    ])
    def test_number(self, raw, expected):
        coerced = coerce_value("loyalty_points", "number", raw)
        assert coerced.column == "value_number"
        assert coerced.value == expected

    @pytest.mark.parametrize("raw", ["abc", True, None, "NaN", float("inf"), [1]])
    def test_number_mismatch(self, raw):
        with pytest.raises(TypeMismatchError) as exc_info:
            coerce_value("loyalty_points", "number", raw)
        err = exc_info.value
        assert err.code == "TYPE_MISMATCH"
        assert err.field_name == "loyalty_points"
        assert err.field_type == "number"

    def test_boolean(self):
        assert coerce_value("vip", "boolean", True).value is True

    @pytest.mark.parametrize("raw", ["true", 1, None])
    def test_boolean_mismatch(self, raw):
        with pytest.raises(TypeMismatchError):
            coerce_value("vip", "boolean", raw)

    @pytest.mark.parametrize("raw", [
        "2024-03-15",
        "2024-03-15T10:30:00Z",
        date(2024, 3, 15),
        datetime(2024, 3, 15, 23, 0, tzinfo=timezone.utc),
    ])
    def test_date(self, raw):
        coerced = coerce_value("birthday", "date", raw)
        assert coerced.column == "value_date"
        assert coerced.value == date(2024, 3, 15)

    @pytest.mark.parametrize("raw", ["15/03/2024", 20240315, None])
    def test_date_mismatch(self, raw):
        with pytest.raises(TypeMismatchError):
            coerce_value("birthday", "date", raw)

    @pytest.mark.parametrize("raw", [{"tier": "gold"}, ["a", "b"], []])
    def test_json(self, raw):
        assert coerce_value("prefs", "json", raw).value == raw

    @pytest.mark.parametrize("raw", ["{}", 3, None])
    def test_json_mismatch(self, raw):
        with pytest.raises(TypeMismatchError):
            coerce_value("prefs", "json", raw)

    def test_text_rejects_number(self):
        with pytest.raises(TypeMismatchError) as exc_info:
            coerce_value("notes", "text", 42)
        assert exc_info.value.value_type == "int"

    def test_exactly_one_column_populated(self):
        columns = coerce_value("loyalty_points", "number", 7).column_values()
        assert set(columns) == set(VALUE_COLUMNS.values())
        populated = {k: v for k, v in columns.items() if v is not None}
        assert populated == {"value_number": Decimal("7")}
