"""Conversion of driver values into JSON scalars.

Every value maps to ``None``, ``bool``, ``int``, a finite ``float`` or ``str``.
Values without a lossless native JSON form degrade to a string instead of
failing the row.
"""

from __future__ import annotations

import base64
import datetime as dt
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence, Union

JsonScalar = Union[None, bool, int, float, str]


def _format_timedelta(value: dt.timedelta) -> str:
    # MySQL TIME columns arrive as timedelta and may exceed 24 hours.
    sign = "-" if value < dt.timedelta(0) else ""
    value = abs(value)
    hours, remainder = divmod(value.days * 86400 + value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    text = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if value.microseconds:
        text += f".{value.microseconds:06d}"
    return text


def _coerce_decimal(value: Decimal) -> JsonScalar:
    if not value.is_finite():
        return str(value)
    if value == value.to_integral_value():
        try:
            return int(value)
        except (OverflowError, InvalidOperation, ValueError):
            return str(value)
    as_float = float(value)
    if math.isfinite(as_float) and Decimal(repr(as_float)) == value:
        return as_float
    return str(value)


def _coerce_bytes(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(value).decode("ascii")


def _fallback(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<{type(value).__name__}>"


def coerce_value(value: Any) -> JsonScalar:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, Decimal):
        return _coerce_decimal(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _coerce_bytes(bytes(value))
    # datetime is a subclass of date, both share isoformat().
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        try:
            return value.isoformat()
        except Exception:
            return _fallback(value)
    if isinstance(value, dt.timedelta):
        return _format_timedelta(value)
    if isinstance(value, (set, frozenset)):
        return ",".join(sorted(_fallback(item) for item in value))
    return _fallback(value)


def coerce_row(columns: Sequence[str], values: Sequence[Any]) -> dict[str, JsonScalar]:
    """Map one result row to ``{column name: JSON scalar}``, keeping column order."""
    return {
        _coerce_column_name(name): coerce_value(value)
        for name, value in zip(columns, values)
    }


def _coerce_column_name(name: Any) -> str:
    if isinstance(name, (bytes, bytearray)):
        return _coerce_bytes(bytes(name))
    return str(name)
