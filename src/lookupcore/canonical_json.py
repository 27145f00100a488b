"""Canonical JSON text used as the row hash preimage."""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import Any

_SCALARS = (str, int, bool, type(None))


class CanonicalJsonTypeError(TypeError):
    """Raised when a value has no canonical JSON form."""


def _check(obj: Any) -> None:
    pending = [("$", obj)]
    while pending:
        path, value = pending.pop()
        if isinstance(value, _SCALARS):
            continue
        if isinstance(value, float):
            if not math.isfinite(value):
                raise ValueError(f"Non-finite float at {path}: {value!r}")
            continue
        if isinstance(value, dict):
            for key, item in value.items():
                if not isinstance(key, str):
                    raise CanonicalJsonTypeError(f"Unsupported key type at {path}: {type(key).__name__}")
                pending.append((f"{path}.{key}", item))
            continue
        if isinstance(value, list):
            pending.extend((f"{path}[{idx}]", item) for idx, item in enumerate(value))
            continue
        raise CanonicalJsonTypeError(f"Unsupported type at {path}: {type(value).__name__}")


def number_text(value: int | float) -> str:
    """Render a finite number as ECMAScript ``Number.prototype.toString`` does.

    Shortest round-trip digits; plain notation for magnitudes in ``[1e-6, 1e21)``,
    otherwise ``d.ddde+N`` / ``d.ddde-N`` with no zero padding.
    """
    if isinstance(value, bool):
        raise CanonicalJsonTypeError("bool is not a number")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        raise ValueError(f"Non-finite float: {value!r}")
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    stripped = digits.rstrip("0")
    exponent += len(digits) - len(stripped)
    digits = stripped
    k = len(digits)
    n = k + exponent  # decimal point position relative to the first digit
    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits
    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def _encode(value: Any) -> str:
    if isinstance(value, dict):
        items = (json.dumps(key, ensure_ascii=False) + ":" + _encode(value[key]) for key in sorted(value))
        return "{" + ",".join(items) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_encode(item) for item in value) + "]"
    if isinstance(value, float):
        return number_text(value)
    return json.dumps(value, ensure_ascii=False)


def canonical_dumps(obj: Any) -> str:
    """Serialize ``obj`` with sorted keys, no whitespace and non-ASCII kept as is.

    The output matches ``JSON.stringify`` over key-sorted input byte for byte,
    floats included, so row hashes agree with other writers of the same table.
    """
    _check(obj)
    return _encode(obj)
