"""Conversion between Python values and DynamoDB attribute values."""

from __future__ import annotations

import dataclasses
import math
import time
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"


def _format_number(value: int | float | Decimal) -> str:
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueError(f"cannot marshal non-finite number {value!r}")
        return format(value, "f")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"cannot marshal non-finite number {value!r}")
    if number.is_integer():
        return str(int(number))
    return format(Decimal(repr(number)), "f")


def _parse_number(text: str) -> int | float:
    try:
        return int(text)
    except ValueError:
        return float(text)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def marshal_value(value: Any) -> dict[str, Any]:
    """Return the DynamoDB attribute value that represents ``value``."""
    if isinstance(value, Enum):
        return marshal_value(value.value)
    if value is None:
        return {"NULL": True}
    if isinstance(value, bool):
        return {"BOOL": value}
    if isinstance(value, str):
        return {"S": str(value)}
    if isinstance(value, (bytes, bytearray)):
        return {"B": bytes(value)}
    if _is_number(value):
        return {"N": _format_number(value)}
    if isinstance(value, Mapping):
        return {"M": {str(key): marshal_value(item) for key, item in value.items()}}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {"M": marshal_item(value)}
    if isinstance(value, (set, frozenset)):
        if not value:
            raise TypeError("cannot marshal an empty set")
        if all(isinstance(item, str) for item in value):
            return {"SS": sorted(value)}
        if all(isinstance(item, (bytes, bytearray)) for item in value):
            return {"BS": sorted(bytes(item) for item in value)}
        if all(_is_number(item) for item in value):
            return {"NS": [_format_number(item) for item in value]}
        raise TypeError("sets must hold only strings, only numbers or only bytes")
    if isinstance(value, (list, tuple)):
        return {"L": [marshal_value(item) for item in value]}
    raise TypeError(f"cannot marshal value of type {type(value).__name__}")


def unmarshal_value(attribute: Mapping[str, Any]) -> Any:
    """Return the Python value held by a DynamoDB attribute value."""
    if not isinstance(attribute, Mapping) or len(attribute) != 1:
        raise ValueError(f"invalid attribute value: {attribute!r}")
    ((kind, raw),) = attribute.items()
    if kind == "S":
        return str(raw)
    if kind == "N":
        return _parse_number(raw)
    if kind == "BOOL":
        return bool(raw)
    if kind == "NULL":
        return None
    if kind == "B":
        return bytes(raw)
    if kind == "L":
        return [unmarshal_value(item) for item in raw]
    if kind == "M":
        return unmarshal_item(raw)
    if kind == "SS":
        return {str(item) for item in raw}
    if kind == "NS":
        return {_parse_number(item) for item in raw}
    if kind == "BS":
        return {bytes(item) for item in raw}
    raise ValueError(f"unknown attribute type {kind!r}")


def marshal_item(item: Any) -> dict[str, dict[str, Any]]:
    """Return the attribute map for a mapping or a dataclass instance."""
    if dataclasses.is_dataclass(item) and not isinstance(item, type):
        pairs = ((f.name, getattr(item, f.name)) for f in dataclasses.fields(item))
    elif isinstance(item, Mapping):
        pairs = item.items()
    else:
        raise TypeError(f"cannot marshal item of type {type(item).__name__}")
    return {str(key): marshal_value(value) for key, value in pairs}


def unmarshal_item(attributes: Mapping[str, Mapping[str, Any]]) -> dict[str, Any]:
    """Return a plain dictionary from a DynamoDB attribute map."""
    return {str(key): unmarshal_value(value) for key, value in attributes.items()}


def is_conditional_check_failed(error: BaseException) -> bool:
    """Tell whether the error, or one it was raised from, is a failed condition check."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if any(cls.__name__ == CONDITIONAL_CHECK_FAILED for cls in type(current).__mro__):
            return True
        response = getattr(current, "response", None)
        if isinstance(response, Mapping):
            details = response.get("Error")
            if isinstance(details, Mapping) and details.get("Code") == CONDITIONAL_CHECK_FAILED:
                return True
        current = current.__cause__ or current.__context__
    return False


def current_time_millis() -> int:
    """Return the current time in milliseconds, at whole-second resolution."""
    return int(time.time()) * 1000