"""Type-directed coercion of raw cell input into canonical cell values."""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Union

from .canonical_json import number_text

CellValue = Union[str, int, float, bool, None]

DATA_TYPES = ("string", "number", "boolean", "datetime")

TRUE_STRINGS = frozenset({"true", "1", "yes", "y"})
FALSE_STRINGS = frozenset({"false", "0", "no", "n"})

# Largest magnitude at which every integer is exactly representable as a double.
_MAX_SAFE_INT = 2**53

_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class _Missing:
    def __repr__(self) -> str:  # pragma: no cover - simple formatting
        return "MISSING"


MISSING: Any = _Missing()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _canonical_number(value: int | float) -> int | float | None:
    try:
        num = float(value)
    except OverflowError:
        return None
    if not math.isfinite(num):
        return None
    if num.is_integer() and abs(num) <= _MAX_SAFE_INT:
        return int(num)
    return num


def _parse_number(text: str) -> int | float | None:
    text = text.strip()
    if not text or not _NUMBER_RE.match(text):
        return None
    try:
        return _canonical_number(float(text))
    except ValueError:
        return None


def format_number(value: int | float) -> str | None:
    """Render a number the way it is stored in string cells (``10``, ``1.5``, ``1e-7``)."""
    num = _canonical_number(value)
    if num is None:
        return None
    return number_text(num)


def _datetime_iso(value: date) -> str | None:
    try:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
            return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return value.isoformat()
    except (OverflowError, ValueError):
        return None


def _to_boolean(raw: Any) -> CellValue:
    if isinstance(raw, bool):
        return raw
    if _is_number(raw):
        return raw != 0
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
    return None


def _to_number(raw: Any) -> CellValue:
    if _is_number(raw):
        return _canonical_number(raw)
    if isinstance(raw, str):
        return _parse_number(raw)
    return None


def _to_datetime(raw: Any) -> CellValue:
    if isinstance(raw, str):
        return raw if raw else None
    if isinstance(raw, date):
        return _datetime_iso(raw)
    return None


def _to_string(raw: Any) -> CellValue:
    # "" is a value, not an unset cell
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if _is_number(raw):
        return format_number(raw)
    return None


_COERCERS = {
    "boolean": _to_boolean,
    "number": _to_number,
    "datetime": _to_datetime,
    "string": _to_string,
}


def normalize_cell(data_type: str, raw: Any = MISSING) -> CellValue:
    """Coerce ``raw`` to the canonical value for a column of ``data_type``.

    Total and pure: unparsable input, unknown data types and absent values all
    come back as ``None``. Applying it twice gives the same result as once.

    Number strings must be plain decimal with an optional exponent. Unlike
    JavaScript's ``Number()``, hex/octal/binary literals (``"0x10"``) and
    ``"Infinity"`` are not accepted and become ``None``.
    """
    if raw is MISSING or raw is None:
        return None
    coerce = _COERCERS.get(data_type)
    if coerce is None:
        return None
    return coerce(raw)


def is_valid_data_type(data_type: Any) -> bool:
    return isinstance(data_type, str) and data_type in DATA_TYPES
