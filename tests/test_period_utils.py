from datetime import datetime, timezone

import pytest

from smartretail.core.exceptions import InvalidPeriodError
from smartretail.services.tax_declaration.period_utils import (
    custom_period_key,
    format_period_label,
    normalize_period_key,
    resolve_period,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_month_is_half_open():
    period = resolve_period("month", "2024-02")
    assert period.start == utc(2024, 2, 1)
    assert period.end == utc(2024, 3, 1)
    assert period.contains(utc(2024, 2, 29, 23, 59, 59))
    assert not period.contains(utc(2024, 3, 1))


def test_december_rolls_into_next_year():
    period = resolve_period("month", "2024-12")
    assert period.end == utc(2025, 1, 1)


def test_quarter_spans_three_months():
    period = resolve_period("quarter", "2024-Q4")
    assert period.start == utc(2024, 10, 1)
    assert period.end == utc(2025, 1, 1)


def test_quarter_key_is_case_insensitive():
    assert resolve_period("quarter", "2024-q2").period_key == "2024-Q2"


def test_year_period():
    period = resolve_period("year", "2023")
    assert (period.start, period.end) == (utc(2023, 1, 1), utc(2024, 1, 1))


def test_custom_range_is_inclusive_of_last_month():
    period = resolve_period("custom", range_from="2024-01", range_to="2024-03")
    assert period.period_key == "2024-01_2024-03"
    assert period.start == utc(2024, 1, 1)
    assert period.end == utc(2024, 4, 1)


def test_custom_key_without_bounds():
    period = resolve_period("custom", "2024-11_2025-02")
    assert period.start == utc(2024, 11, 1)
    assert period.end == utc(2025, 3, 1)


@pytest.mark.parametrize(
    "raw",
    ["2024-01 den 2024-03", "2024-01 đến 2024-03", "2024-01 to 2024-03", "2024-01..2024-03"],
)
def test_custom_key_separators_are_normalized(raw):
    assert normalize_period_key("custom", raw) == "2024-01_2024-03"
    assert resolve_period("custom", raw).period_key == "2024-01_2024-03"


def test_single_month_custom_range():
    period = resolve_period("custom", range_from="2024-05", range_to="2024-05")
    assert period.end == utc(2024, 6, 1)


def test_adhoc_is_one_day():
    period = resolve_period("adhoc", "2024-02-29")
    assert period.start == utc(2024, 2, 29)
    assert period.end == utc(2024, 3, 1)


@pytest.mark.parametrize(
    "period_type,key",
    [
        ("month", "2024-13"),
        ("month", "2024-1"),
        ("month", "03-2024"),
        ("quarter", "2024-Q5"),
        ("quarter", "2024-Q0"),
        ("year", "24"),
        ("adhoc", "2023-02-29"),
        ("adhoc", "2024-02"),
        ("custom", "2024-01"),
        ("weekly", "2024-01"),
        ("month", ""),
        ("month", None),
    ],
)
def test_malformed_keys_are_rejected(period_type, key):
    with pytest.raises(InvalidPeriodError) as exc:
        resolve_period(period_type, key)
    assert exc.value.code == "TAX301"
    assert exc.value.status_code == 400


def test_reversed_custom_range_is_rejected():
    with pytest.raises(InvalidPeriodError):
        resolve_period("custom", range_from="2024-05", range_to="2024-01")


def test_custom_range_requires_both_bounds():
    with pytest.raises(InvalidPeriodError):
        resolve_period("custom", range_from="2024-05")


def test_custom_key_must_match_bounds():
    with pytest.raises(InvalidPeriodError):
        resolve_period("custom", "2024-01_2024-02", range_from="2024-01", range_to="2024-03")


def test_custom_period_key_pads_components():
    assert custom_period_key("2024-01", "2024-12") == "2024-01_2024-12"


def test_period_labels():
    assert format_period_label("month", "2024-03") == "Month 03/2024"
    assert format_period_label("quarter", "2024-Q1") == "Quarter 1/2024 (months 1-3)"
    assert format_period_label("year", "2024") == "Year 2024"
    assert format_period_label("custom", "2024-01_2024-03") == "Months 01/2024 - 03/2024"
    assert format_period_label("adhoc", "2024-03-15") == "Day 15/03/2024"
