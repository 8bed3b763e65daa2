"""Operand coercion and comparison for atomic constraints.

Values are unwrapped from JSON-LD value objects, coerced by their XSD data
type, and compared only within one value domain: numbers as `Decimal`,
timestamps as timezone-aware `datetime`, calendar dates as `date`. Anything
that cannot be placed in a shared domain raises `IncomparableOperands`, which
the evaluator reports as Indeterminate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

XSD_NAMESPACE = "http://www.w3.org/2001/XMLSchema#"
XSD_PREFIX = "xsd:"

_INTEGER_TYPES = frozenset(
    {
        "integer",
        "int",
        "long",
        "short",
        "byte",
        "nonNegativeInteger",
        "nonPositiveInteger",
        "positiveInteger",
        "negativeInteger",
        "unsignedInt",
        "unsignedLong",
        "unsignedShort",
        "unsignedByte",
    }
)
_DECIMAL_TYPES = frozenset({"decimal", "double", "float"})
_DATETIME_TYPES = frozenset({"dateTime", "dateTimeStamp"})
_DATE_TYPES = frozenset({"date"})
_BOOLEAN_TYPES = frozenset({"boolean"})
_STRING_TYPES = frozenset({"string", "anyURI", "token", "normalizedString", "language"})

_TRUE_LITERALS = frozenset({"true", "1"})
_FALSE_LITERALS = frozenset({"false", "0"})


class IncomparableOperands(ValueError):
    pass


@dataclass(frozen=True)
class Operand:
    value: Any
    data_type: str | None = None
    unit: str | None = None


def xsd_local_name(data_type: str | None) -> str | None:
    if data_type is None:
        return None
    for prefix in (XSD_NAMESPACE, XSD_PREFIX):
        if data_type.startswith(prefix):
            return data_type[len(prefix) :]
    return data_type


def unwrap_operand(raw: Any, *, data_type: str | None = None, unit: str | None = None) -> Operand:
    if isinstance(raw, Operand):
        return raw
    if isinstance(raw, dict):
        if "@value" in raw:
            return Operand(
                value=raw["@value"],
                data_type=raw.get("@type") or data_type,
                unit=raw.get("unit") or unit,
            )
        if set(raw) == {"@id"}:
            return Operand(value=raw["@id"], data_type=data_type, unit=unit)
    return Operand(value=raw, data_type=data_type, unit=unit)


def parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise IncomparableOperands(f"not an xsd:dateTime: {value!r}") from exc
    else:
        raise IncomparableOperands(f"not an xsd:dateTime: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise IncomparableOperands(f"not an xsd:date: {value!r}") from exc
    raise IncomparableOperands(f"not an xsd:date: {value!r}")


def _parse_decimal(value: Any, *, integral: bool) -> Decimal:
    if isinstance(value, bool):
        raise IncomparableOperands(f"boolean is not numeric: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        parsed = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise IncomparableOperands(f"not numeric: {value!r}") from exc
    if not parsed.is_finite():
        raise IncomparableOperands(f"not a finite number: {value!r}")
    if integral and parsed != parsed.to_integral_value():
        raise IncomparableOperands(f"not an integer: {value!r}")
    return parsed


def _parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_LITERALS:
            return True
        if text in _FALSE_LITERALS:
            return False
    raise IncomparableOperands(f"not an xsd:boolean: {value!r}")


def _infer(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        return _parse_decimal(value, integral=False)
    if isinstance(value, datetime):
        return parse_datetime(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(coerce(unwrap_operand(item)) for item in value)
    return value


def coerce(operand: Operand) -> Any:
    local_type = xsd_local_name(operand.data_type)
    value = operand.value
    if local_type is None:
        return _infer(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(
            coerce(unwrap_operand(item, data_type=operand.data_type)) for item in value
        )
    if local_type in _INTEGER_TYPES:
        return _parse_decimal(value, integral=True)
    if local_type in _DECIMAL_TYPES:
        return _parse_decimal(value, integral=False)
    if local_type in _DATETIME_TYPES:
        return parse_datetime(value)
    if local_type in _DATE_TYPES:
        return _parse_date(value)
    if local_type in _BOOLEAN_TYPES:
        return _parse_boolean(value)
    if local_type in _STRING_TYPES:
        return str(value)
    # Profile data types are compared as given.
    return _infer(value)


def _domain(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, Decimal):
        return "number"
    if isinstance(value, datetime):
        return "dateTime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, str):
        return "string"
    if isinstance(value, tuple):
        return "list"
    return "other"


def _align(left: Any, right: Any) -> tuple[Any, Any]:
    """Lift an untyped string onto the other side's domain where it parses."""
    left_domain, right_domain = _domain(left), _domain(right)
    if left_domain == right_domain or "string" not in (left_domain, right_domain):
        return left, right
    other_domain = right_domain if left_domain == "string" else left_domain
    parser = {
        "number": lambda text: _parse_decimal(text, integral=False),
        "dateTime": parse_datetime,
        "date": _parse_date,
        "boolean": _parse_boolean,
    }.get(other_domain)
    if parser is None:
        return left, right
    try:
        if left_domain == "string":
            return parser(left), right
        return left, parser(right)
    except IncomparableOperands:
        return left, right


def resolve_pair(
    left: Any,
    right: Any,
    *,
    data_type: str | None,
    unit: str | None,
) -> tuple[Any, Any]:
    """Coerce a context value and a right operand into one comparable pair."""
    right_operand = unwrap_operand(right, data_type=data_type, unit=unit)
    left_operand = unwrap_operand(left)
    if left_operand.unit and right_operand.unit and left_operand.unit != right_operand.unit:
        raise IncomparableOperands(
            f"unit mismatch: {left_operand.unit!r} vs {right_operand.unit!r}"
        )
    left_value = coerce(
        Operand(
            value=left_operand.value,
            data_type=left_operand.data_type or right_operand.data_type,
        )
    )
    right_value = coerce(right_operand)
    return _align(left_value, right_value)


def values_equal(left: Any, right: Any) -> bool:
    left, right = _align(left, right)
    if _domain(left) != _domain(right):
        return False
    return left == right


def compare_ordering(operator: str, left: Any, right: Any) -> bool:
    left_domain, right_domain = _domain(left), _domain(right)
    if left_domain != right_domain or left_domain not in {"number", "dateTime", "date"}:
        raise IncomparableOperands(
            f"{operator} needs numeric or temporal operands, got {left_domain} and {right_domain}"
        )
    if operator == "gt":
        return left > right
    if operator == "gteq":
        return left >= right
    if operator == "lt":
        return left < right
    if operator == "lteq":
        return left <= right
    raise IncomparableOperands(f"not an ordering operator: {operator}")


def _members(value: Any) -> tuple[Any, ...]:
    return value if isinstance(value, tuple) else (value,)


def _contains(collection: tuple[Any, ...], item: Any) -> bool:
    return any(values_equal(item, member) for member in collection)


def compare_set(operator: str, left: Any, right: Any) -> bool:
    left_items = _members(left)
    right_items = _members(right)
    if operator == "isAnyOf":
        return any(_contains(right_items, item) for item in left_items)
    if operator == "isAllOf":
        return all(_contains(left_items, item) for item in right_items)
    if operator == "isNoneOf":
        return not any(_contains(right_items, item) for item in left_items)
    raise IncomparableOperands(f"not a set operator: {operator}")
