from __future__ import annotations

import pytest

from api_tester.core.query_normalizer import (
    normalize_query,
    normalize_query_value,
    number_text,
    parse_number,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("true", True),
        ("false", False),
        ("42", 42),
        ("-3", -3),
        (" 5", 5),
        ("1.5", 1.5),
        (".5", 0.5),
        ("5.", 5),
        ("1e10", 10_000_000_000),
        ("2.5e-3", 0.0025),
        ("0x1F", 31),
        ("0b101", 5),
    ],
)
def test_normalize_query_value_types_obvious_literals(raw: str, expected: object) -> None:
    result = normalize_query_value(raw)
    assert result == expected
    assert type(result) is type(expected)


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "NaN", "Infinity", "-Infinity", "TRUE", "False", "1_000", "1e400", "abc", "12px"],
)
def test_normalize_query_value_keeps_other_strings(raw: str) -> None:
    assert normalize_query_value(raw) == raw


def test_numeric_strings_cannot_stay_text() -> None:
    # Known limitation: there is no way to send "42" as a string.
    assert normalize_query_value("42") == 42


def test_normalize_query_maps_every_entry() -> None:
    assert normalize_query({"limit": "10", "debug": "true", "q": "cats"}) == {
        "limit": 10,
        "debug": True,
        "q": "cats",
    }
    assert normalize_query(None) is None


def test_parse_number_rejects_non_ascii_digits() -> None:
    assert parse_number("١٢") is None


@pytest.mark.parametrize(
    ("number", "expected"),
    [
        (0, "0"),
        (-0.0, "0"),
        (42, "42"),
        (0.5, "0.5"),
        (1e-5, "0.00001"),
        (1e-7, "1e-7"),
        (1.5e-7, "1.5e-7"),
        (1e21, "1e+21"),
        (-1e21, "-1e+21"),
        (1e20, "100000000000000000000"),
        (123456789012345683968, "123456789012345680000"),
        (2**53 + 1, "9007199254740992"),
        (float("inf"), "Infinity"),
    ],
)
def test_number_text_matches_javascript_string(number: int | float, expected: str) -> None:
    assert number_text(number) == expected
