"""Best-effort typing of string query parameters.

Tool callers can only send query values as strings. Before the call engine
serializes them, obvious booleans and numbers are converted so that
`{"limit": "10"}` reaches the engine as the integer ``10``.

The heuristic is lossy: a caller who really wants the text ``"42"`` gets the
number ``42`` instead. Numbers are written back with `number_text`, which
renders them the way JavaScript ``String()`` does, so the upstream sees the
canonical form rather than the literal: ``"1e10"`` goes out as
``10000000000``, ``" 5"`` as ``5`` and ``"1e21"`` as ``1e+21``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from decimal import Decimal
from typing import TypeAlias

QueryValue: TypeAlias = str | int | float | bool

_DECIMAL_LITERAL = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)
_INTEGER_LITERAL = re.compile(r"^[+-]?\d+$", re.ASCII)
_PREFIXED_LITERAL = re.compile(r"^0(?:[xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)$")
# Longer integer literals go through float, as they would in JavaScript.
_MAX_EXACT_DIGITS = 20
# Integers beyond this lose precision as IEEE doubles.
_MAX_SAFE_INTEGER = 2**53


def normalize_query_value(value: str) -> QueryValue:
    """Coerce one query value; first matching rule wins."""
    if value == "true":
        return True
    if value == "false":
        return False
    number = parse_number(value)
    if number is not None:
        return number
    return value


def normalize_query(query: Mapping[str, str] | None) -> dict[str, QueryValue] | None:
    """Apply `normalize_query_value` to every entry of `query`."""
    if query is None:
        return None
    return {key: normalize_query_value(value) for key, value in query.items()}


def parse_number(value: str) -> int | float | None:
    """Parse a numeric literal the way a JavaScript ``Number()`` cast would.

    Returns `None` for blank strings and anything that is not a finite number.
    """
    text = value.strip()
    if not text:
        return None
    if _PREFIXED_LITERAL.match(text):
        return int(text, 0)
    if not _DECIMAL_LITERAL.match(text):
        return None
    if _INTEGER_LITERAL.match(text) and len(text) <= _MAX_EXACT_DIGITS:
        return int(text)
    number = float(text)
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def number_text(number: int | float) -> str:
    """Render `number` the way JavaScript ``Number.prototype.toString`` does.

    Positional notation is used for magnitudes in ``[1e-7, 1e21)`` and
    exponent notation (``1e+21``, ``1.5e-7``) outside it, always with the
    shortest digits that round-trip.
    """
    if isinstance(number, int) and abs(number) <= _MAX_SAFE_INTEGER:
        return str(number)
    value = float(number)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    if value < 0:
        return "-" + number_text(-value)

    _, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = "".join(str(digit) for digit in digit_tuple)
    point = len(digits) + exponent
    digits = digits.rstrip("0") or "0"
    count = len(digits)

    if count <= point <= 21:
        return digits + "0" * (point - count)
    if 0 < point <= 21:
        return f"{digits[:point]}.{digits[point:]}"
    if -6 < point <= 0:
        return "0." + "0" * -point + digits
    power = point - 1
    sign = "+" if power >= 0 else "-"
    mantissa = digits if count == 1 else f"{digits[0]}.{digits[1:]}"
    return f"{mantissa}e{sign}{abs(power)}"
