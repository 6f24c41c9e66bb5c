"""Portable column types.

Money and rates are stored as scaled integers so every backend (SQLite
included) keeps exact values; they come back as ``Decimal``.
"""
from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import BigInteger, DateTime
from sqlalchemy.types import TypeDecorator


BIGINT_MAX = 2**63 - 1
BIGINT_MIN = -(2**63)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


class FixedDecimal(TypeDecorator):
    """Fixed-point decimal persisted as an integer count of ``10 ** -scale`` units."""

    impl = BigInteger
    cache_ok = True

    def __init__(self, scale: int = 2):
        super().__init__()
        self.scale = scale

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.scale)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        scaled = int(to_decimal(value).scaleb(self.scale).to_integral_value(rounding=ROUND_HALF_UP))
        if not BIGINT_MIN <= scaled <= BIGINT_MAX:
            raise ValueError(f"{value} does not fit a {self.scale}-place fixed decimal column")
        return scaled

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(int(value)).scaleb(-self.scale).quantize(self.quantum)

    @property
    def python_type(self):
        return Decimal


class Money(FixedDecimal):
    cache_ok = True

    def __init__(self):
        super().__init__(scale=2)


class Percent(FixedDecimal):
    cache_ok = True

    def __init__(self):
        super().__init__(scale=4)


class Quantity(FixedDecimal):
    cache_ok = True

    def __init__(self):
        super().__init__(scale=3)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes, including on SQLite which drops tzinfo."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)
