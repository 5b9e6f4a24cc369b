from datetime import date, datetime

import pytest

from kp_importer.cells import (
    cell,
    cell_text,
    clean,
    denorm_float,
    denorm_int,
    denormalize_number,
    is_yes,
    parse_date,
    parse_excel_date,
    row_width,
    to_float,
)


def test_clean_collapses_whitespace_and_treats_blank_as_absent():
    assert clean("  Apotek \t  Sehat\xa0 Jaya ") == "Apotek Sehat Jaya"
    assert clean("   ") is None
    assert clean(None) is None


def test_clean_renders_typed_cells():
    assert clean(1001.0) == "1001"
    assert clean(12.5) == "12.5"
    assert clean(datetime(2025, 1, 15, 8, 30)) == "2025-01-15"
    assert clean(date(2025, 1, 15)) == "2025-01-15"


def test_cell_returns_none_past_row_end():
    row = ("a", " b ")
    assert cell(row, 5) is None
    assert cell_text(row, 1) == "b"


def test_row_width_ignores_padding():
    assert row_width(("a", None, "c", None, "  ")) == 3
    assert row_width((None, None)) == 0


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2025-01-15", "2025-01-15"),
        ("15/01/2025", "2025-01-15"),
        ("5/1/2025", "2025-01-05"),
        ("15-01-2025", "2025-01-15"),
        ("15 Jan 2025", "2025-01-15"),
        ("2025/01/15", "2025-01-15"),
        ("15.01.2025", "2025-01-15"),
        ("5-Jan-2025", "2025-01-05"),
        ("15/01/99", "1999-01-15"),
        ("15/01/25", "2025-01-15"),
        (45672, "2025-01-15"),
        ("45672", "2025-01-15"),
        (datetime(2025, 1, 15, 10, 0), "2025-01-15"),
    ],
)
def test_parse_date_accepts_known_layouts(value, expected):
    assert parse_date(value) == expected


def test_parse_date_returns_none_for_garbage():
    assert parse_date("not a date") is None
    assert parse_date(None) is None
    assert parse_date("") is None


def test_parse_excel_date_keeps_unknown_text():
    assert parse_excel_date("15/01/2025") == "2025-01-15"
    assert parse_excel_date("2025-01-15") == "2025-01-15"
    assert parse_excel_date(45672) == "2025-01-15"
    assert parse_excel_date("Januari 2025") == "Januari 2025"
    assert parse_excel_date(None) == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1.234,56", 1234.56),
        ("1,234.56", 1234.56),
        ("12,5", 12.5),
        (" 1 000 ", 1000.0),
        (250, 250.0),
        ("abc", 0.0),
        (None, 0.0),
    ],
)
def test_denorm_float(value, expected):
    assert denorm_float(value) == pytest.approx(expected)


@pytest.mark.parametrize(
    "value, expected",
    [("1,234", 1234), ("1.234", 1234), (12.9, 12), ("7", 7), ("x", 0), (None, 0)],
)
def test_denorm_int(value, expected):
    assert denorm_int(value) == expected


def test_denormalize_number_strips_commas_only():
    assert denormalize_number("1,250,000.50") == "1250000.50"
    assert denormalize_number(None) == "0"
    assert to_float("1,250.5") == pytest.approx(1250.5)
    assert to_float("n/a") == 0.0


@pytest.mark.parametrize("value", ["nan", "inf", "-Infinity"])
def test_non_finite_text_parses_as_zero(value):
    assert to_float(value) == 0.0
    assert denorm_float(value) == 0.0
    assert denorm_int(value) == 0


def test_is_yes_is_case_insensitive():
    assert is_yes("Ya")
    assert is_yes(" YA ")
    assert not is_yes("Tidak")
    assert not is_yes(None)
