"""
ISP Operations Platform
Filter condition compiler for the data explorer.

Turns declarative filter clauses ``{field, operator, value}`` into SQLAlchemy
boolean expressions against a registered table.

Operators form a closed set (FilterOperator); any other string is rejected
while the clause is parsed, before SQL is built.

Field resolution:
    status                      -> direct column
    organizationId              -> camelCase alias of organization_id
    airtable_fields.City        -> JSON column, sub-key extracted as text

JSON sub-fields are always compared as text. A numeric sub-field compared
with greater_than etc. therefore orders lexicographically ("10" < "9").
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from sqlalchemy import String, cast

from ispops.core.exceptions import (
    FieldNotFoundError,
    InvalidFilterError,
    UnsupportedOperatorError,
)

logger = logging.getLogger(__name__)

_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?")
_SCALAR_TYPES = (str, int, float, bool)


class FilterOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IS_NULL = "is_null"
    NOT_NULL = "not_null"

    @classmethod
    def parse(cls, raw) -> "FilterOperator":
        """Case-sensitive lookup by wire name."""
        if not isinstance(raw, str):
            raise UnsupportedOperatorError(raw)
        try:
            return cls(raw)
        except ValueError:
            raise UnsupportedOperatorError(raw) from None

    @property
    def ignores_value(self) -> bool:
        return self in (FilterOperator.IS_NULL, FilterOperator.NOT_NULL)

    @property
    def is_pattern(self) -> bool:
        return self in _PATTERN_OPERATORS


_PATTERN_OPERATORS = frozenset({
    FilterOperator.CONTAINS,
    FilterOperator.NOT_CONTAINS,
    FilterOperator.STARTS_WITH,
    FilterOperator.ENDS_WITH,
})

_ORDERING_OPERATORS = frozenset({
    FilterOperator.GREATER_THAN,
    FilterOperator.LESS_THAN,
    FilterOperator.GREATER_THAN_OR_EQUAL,
    FilterOperator.LESS_THAN_OR_EQUAL,
})


@dataclass(frozen=True)
class FilterClause:
    field: str
    operator: FilterOperator
    value: Any = None

    @classmethod
    def from_dict(cls, data) -> "FilterClause":
        """Parse one wire-format clause; raises ValidationError subclasses."""
        if not isinstance(data, dict):
            raise InvalidFilterError("Each filter must be an object with field and operator")
        field = data.get("field")
        if not isinstance(field, str) or not field.strip():
            raise InvalidFilterError("Filter field is required", details={"filter": data})
        operator = FilterOperator.parse(data.get("operator"))
        return cls(field=field.strip(), operator=operator, value=data.get("value"))

    @property
    def path(self) -> tuple[str, ...]:
        return tuple(self.field.split("."))


_BUILDERS = {
    FilterOperator.EQUALS: lambda expr, v: expr == v,
    FilterOperator.NOT_EQUALS: lambda expr, v: expr != v,
    FilterOperator.CONTAINS: lambda expr, v: expr.contains(v, autoescape=True),
    FilterOperator.NOT_CONTAINS: lambda expr, v: ~expr.contains(v, autoescape=True),
    FilterOperator.STARTS_WITH: lambda expr, v: expr.startswith(v, autoescape=True),
    FilterOperator.ENDS_WITH: lambda expr, v: expr.endswith(v, autoescape=True),
    FilterOperator.GREATER_THAN: lambda expr, v: expr > v,
    FilterOperator.LESS_THAN: lambda expr, v: expr < v,
    FilterOperator.GREATER_THAN_OR_EQUAL: lambda expr, v: expr >= v,
    FilterOperator.LESS_THAN_OR_EQUAL: lambda expr, v: expr <= v,
    FilterOperator.IS_NULL: lambda expr, v: expr.is_(None),
    FilterOperator.NOT_NULL: lambda expr, v: expr.is_not(None),
}


def _type_error(column, value, expected: str) -> InvalidFilterError:
    return InvalidFilterError(
        f"Value {value!r} for field {column.key!r} must be {expected}",
        details={"field": column.key, "value": value},
    )


def coerce_value(column, value):
    """Convert a wire value into the column's Python type.

    Boolean, numeric, date and timestamp columns only accept values that
    parse as that type. Other columns get the value unchanged.

    Raises:
        InvalidFilterError: value does not parse as the column's type.
    """
    if value is None:
        return None
    try:
        py_type = column.type.python_type
    except NotImplementedError:
        return value

    if py_type is bool:
        if isinstance(value, bool):
            return value
        if value == "true":
            return True
        if value == "false":
            return False
        raise _type_error(column, value, "true or false")

    if py_type in (int, float, Decimal):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if not isinstance(value, str) or not _NUMERIC.match(value):
            raise _type_error(column, value, "a number")
        if py_type is int and "." not in value:
            return int(value)
        try:
            return Decimal(value) if py_type is Decimal else float(value)
        except InvalidOperation:
            raise _type_error(column, value, "a number") from None

    if py_type in (datetime, date):
        if not isinstance(value, str) or not _ISO_DATE.match(value):
            raise _type_error(column, value, "an ISO 8601 date")
        try:
            if py_type is date:
                return date.fromisoformat(value[:10])
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise _type_error(column, value, "an ISO 8601 date") from None

    return value


def _json_text(column, path: tuple[str, ...]):
    """Sub-key of a JSON column extracted as text."""
    index = path[0] if len(path) == 1 else path
    return cast(column[index].as_string(), String)


def compile_condition(descriptor, clause: FilterClause):
    """Compile one clause against a SchemaDescriptor.

    Raises:
        FieldNotFoundError: root segment is not a column of the table.
        InvalidFilterError: dotted path on a non-JSON column, missing value, or a
            value that is not a scalar of the column's type.
    """
    root, *sub_path = clause.path
    column = descriptor.column(root)
    if column is None:
        raise FieldNotFoundError(clause.field, descriptor.name)

    operator = clause.operator
    value = clause.value
    if operator.ignores_value:
        value = None
    elif value is not None and not isinstance(value, _SCALAR_TYPES):
        raise InvalidFilterError(
            f"Field {clause.field!r}: value must be a string, number or boolean",
            details={"field": clause.field},
        )

    if sub_path:
        if not descriptor.is_json_column(column) or not all(sub_path):
            raise InvalidFilterError(
                f"Field {clause.field!r}: dotted access requires a JSON column",
                details={"field": clause.field},
            )
        expr = _json_text(column, tuple(sub_path))
        if value is not None:
            value = str(value)
    elif operator.is_pattern:
        expr = column if isinstance(column.type, String) else cast(column, String)
    else:
        expr = column
        value = coerce_value(column, value)

    if value is None and (operator.is_pattern or operator in _ORDERING_OPERATORS):
        raise InvalidFilterError(
            f"Operator {operator.value!r} requires a value",
            details={"field": clause.field},
        )
    if operator.is_pattern:
        value = str(value)

    return _BUILDERS[operator](expr, value)


def compile_filters(descriptor, raw_filters) -> list:
    """Parse and compile every clause; the first failure aborts the whole list."""
    if raw_filters is None:
        return []
    if not isinstance(raw_filters, list):
        raise InvalidFilterError("queryConfig.filters must be a list")
    clauses = [FilterClause.from_dict(item) for item in raw_filters]
    conditions = [compile_condition(descriptor, clause) for clause in clauses]
    logger.debug("Compiled %d filter(s) for %s", len(conditions), descriptor.name)
    return conditions
