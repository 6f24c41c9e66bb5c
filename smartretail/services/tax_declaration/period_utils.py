"""Filing period resolution.

Turns a period type and key into a half-open UTC interval ``[start, end)``:

- month:   ``YYYY-MM``
- quarter: ``YYYY-Qn`` (n in 1..4)
- year:    ``YYYY``
- custom:  ``YYYY-MM_YYYY-MM``, inclusive month range (or explicit bounds)
- adhoc:   ``YYYY-MM-DD``, a single day
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from smartretail.core.exceptions import InvalidPeriodError

PERIOD_TYPES = ("month", "quarter", "year", "custom", "adhoc")
# The exclusive end of the last period must still be representable
MAX_YEAR = 9998

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
_QUARTER_RE = re.compile(r"^(\d{4})-Q([1-4])$")
_YEAR_RE = re.compile(r"^(\d{4})$")
_DAY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
# Separators seen in custom keys: canonical "_", plus "den"/"đến"/"to"/".."
_CUSTOM_SPLIT_RE = re.compile(r"\s*(?:_|\.\.|\bto\b|\bden\b|đến)\s*", re.IGNORECASE)


@dataclass(frozen=True)
class PeriodRange:
    period_type: str
    period_key: str
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def _month_start(year: int, month: int) -> datetime:
    return datetime(year, month, 1, tzinfo=timezone.utc)


def _next_month_start(year: int, month: int) -> datetime:
    if month == 12:
        return _month_start(year + 1, 1)
    return _month_start(year, month + 1)


def _parse_month(value: str, period_type: str, period_key: str | None) -> tuple[int, int]:
    match = _MONTH_RE.match(value.strip())
    if not match:
        raise InvalidPeriodError(period_type, period_key or value, "Expected YYYY-MM")
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12 or not 1 <= year <= MAX_YEAR:
        raise InvalidPeriodError(period_type, period_key or value, f"Month out of range: {value}")
    return year, month


def custom_period_key(range_from: str, range_to: str) -> str:
    """Canonical key for an inclusive month range, validating both bounds."""
    start = _parse_month(range_from, "custom", None)
    end = _parse_month(range_to, "custom", None)
    if start > end:
        raise InvalidPeriodError(
            "custom", f"{range_from}_{range_to}", "range_from must not be after range_to"
        )
    return f"{start[0]:04d}-{start[1]:02d}_{end[0]:04d}-{end[1]:02d}"


def normalize_period_key(period_type: str, period_key: str | None) -> str:
    """Canonicalize a user supplied key without validating dates."""
    if period_key is None or not str(period_key).strip():
        raise InvalidPeriodError(period_type, None, "period_key is required")
    key = str(period_key).strip()
    if period_type == "quarter":
        return key.upper()
    if period_type == "custom":
        parts = [p for p in _CUSTOM_SPLIT_RE.split(key) if p]
        if len(parts) != 2:
            raise InvalidPeriodError(period_type, key, "Expected YYYY-MM_YYYY-MM")
        return f"{parts[0]}_{parts[1]}"
    return key


def resolve_period(
    period_type: str,
    period_key: str | None = None,
    range_from: str | None = None,
    range_to: str | None = None,
) -> PeriodRange:
    """Resolve a period into its UTC interval.

    Args:
        period_type: One of ``PERIOD_TYPES``
        period_key: Key in the grammar of ``period_type``; for ``custom`` it may
            be omitted when ``range_from`` and ``range_to`` are given
        range_from: First month (``YYYY-MM``) of a custom range
        range_to: Last month (``YYYY-MM``) of a custom range, inclusive

    Returns:
        PeriodRange with the canonical key, inclusive ``start`` and exclusive ``end``

    Raises:
        InvalidPeriodError: unknown type, malformed key, impossible date,
            missing custom bound, or a reversed custom range
    """
    if period_type not in PERIOD_TYPES:
        raise InvalidPeriodError(
            period_type, period_key, f"period_type must be one of {', '.join(PERIOD_TYPES)}"
        )

    if period_type == "custom":
        if range_from or range_to:
            if not (range_from and range_to):
                raise InvalidPeriodError(period_type, period_key, "Both range_from and range_to are required")
            key = custom_period_key(range_from, range_to)
            if period_key and normalize_period_key(period_type, period_key) != key:
                raise InvalidPeriodError(period_type, period_key, "period_key does not match range_from/range_to")
        else:
            first, last = normalize_period_key(period_type, period_key).split("_")
            key = custom_period_key(first, last)
        first, last = key.split("_")
        from_year, from_month = _parse_month(first, period_type, key)
        to_year, to_month = _parse_month(last, period_type, key)
        return PeriodRange(
            period_type, key, _month_start(from_year, from_month), _next_month_start(to_year, to_month)
        )

    key = normalize_period_key(period_type, period_key)

    if period_type == "month":
        year, month = _parse_month(key, period_type, key)
        return PeriodRange(period_type, key, _month_start(year, month), _next_month_start(year, month))

    if period_type == "quarter":
        match = _QUARTER_RE.match(key)
        if not match:
            raise InvalidPeriodError(period_type, key, "Expected YYYY-Qn with n in 1..4")
        year, quarter = int(match.group(1)), int(match.group(2))
        if not 1 <= year <= MAX_YEAR:
            raise InvalidPeriodError(period_type, key, "Year out of range")
        first_month = (quarter - 1) * 3 + 1
        return PeriodRange(
            period_type, key, _month_start(year, first_month), _next_month_start(year, first_month + 2)
        )

    if period_type == "year":
        match = _YEAR_RE.match(key)
        if not match or not 1 <= int(match.group(1)) <= MAX_YEAR:
            raise InvalidPeriodError(period_type, key, "Expected YYYY")
        year = int(match.group(1))
        return PeriodRange(period_type, key, _month_start(year, 1), _month_start(year + 1, 1))

    # adhoc
    match = _DAY_RE.match(key)
    if not match:
        raise InvalidPeriodError(period_type, key, "Expected YYYY-MM-DD")
    try:
        day = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError as e:
        raise InvalidPeriodError(period_type, key, f"Invalid date: {key}") from e
    if day.year > MAX_YEAR:
        raise InvalidPeriodError(period_type, key, "Year out of range")
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return PeriodRange(period_type, key, start, start + timedelta(days=1))


def format_period_label(period_type: str, period_key: str) -> str:
    """Human readable label used in exports."""
    if period_type == "month":
        year, month = period_key.split("-")
        return f"Month {month}/{year}"
    if period_type == "quarter":
        year, quarter = period_key.split("-Q")
        first_month = (int(quarter) - 1) * 3 + 1
        return f"Quarter {quarter}/{year} (months {first_month}-{first_month + 2})"
    if period_type == "year":
        return f"Year {period_key}"
    if period_type == "custom":
        first, last = period_key.split("_")
        from_year, from_month = first.split("-")
        to_year, to_month = last.split("-")
        return f"Months {from_month}/{from_year} - {to_month}/{to_year}"
    if period_type == "adhoc":
        year, month, day = period_key.split("-")
        return f"Day {day}/{month}/{year}"
    return period_key
