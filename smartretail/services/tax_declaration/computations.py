"""Tax computation functions.

Pure Decimal arithmetic for the two household-business taxes carried on a
declaration: VAT (``gtgt``) and personal income tax (``tncn``). Both are a
flat percentage of the declared revenue. No database access here.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from smartretail.core.config import settings
from smartretail.core.exceptions import DeclarationValidationError

CENT = Decimal("0.01")
RATE_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")
# Largest filer-supplied amount; the sum of two taxes on it still fits a BIGINT of cents
MAX_MONEY = Decimal("999999999999999.99")
MAX_QUANTITY = Decimal("999999999999.999")


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise DeclarationValidationError(f"{field} is required", field=field)
    try:
        if isinstance(value, float):
            number = Decimal(str(value))
        elif isinstance(value, Decimal):
            number = value
        else:
            number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise DeclarationValidationError(f"{field} must be a decimal number", field=field) from e
    if not number.is_finite():
        raise DeclarationValidationError(f"{field} must be a finite number", field=field)
    if number < 0:
        raise DeclarationValidationError(f"{field} must not be negative", field=field)
    return number


def _exact(number: Decimal, quantum: Decimal, maximum: Decimal, field: str) -> Decimal:
    """``number`` at ``quantum`` precision, refusing to round or exceed ``maximum``."""
    if number > maximum:
        raise DeclarationValidationError(f"{field} must not exceed {maximum}", field=field)
    try:
        fixed = number.quantize(quantum)
    except InvalidOperation as e:
        raise DeclarationValidationError(f"{field} is out of range", field=field) from e
    if fixed != number:
        places = -quantum.as_tuple().exponent
        raise DeclarationValidationError(f"{field} must have at most {places} decimal places", field=field)
    return fixed


def parse_money(value, field: str = "declared_revenue") -> Decimal:
    """Convert request input into a non-negative 2-dp Decimal.

    Accepts ``Decimal``, ``int`` and numeric strings. Floats go through
    ``str()`` so binary representation errors never leak in. Input is never
    rounded: more than two decimals, or more than ``MAX_MONEY``, is rejected.
    """
    return _exact(_to_decimal(value, field), CENT, MAX_MONEY, field)


def parse_quantity(value, field: str = "quantity") -> Decimal:
    return _exact(_to_decimal(value, field), Decimal("0.001"), MAX_QUANTITY, field)


def parse_rate(value, field: str) -> Decimal:
    """Convert a percent rate (``1.0`` means 1%) into a Decimal in [0, 100]."""
    try:
        rate = _to_decimal(value, field)
    except DeclarationValidationError as e:
        raise DeclarationValidationError(f"{field} must be between 0 and 100", field=field) from e
    if rate > HUNDRED:
        raise DeclarationValidationError(f"{field} must be between 0 and 100", field=field)
    return rate.quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxRates:
    gtgt: Decimal
    tncn: Decimal

    @classmethod
    def defaults(cls) -> TaxRates:
        return cls(
            gtgt=parse_rate(settings.TAX_DEFAULT_GTGT_RATE, "gtgt_rate"),
            tncn=parse_rate(settings.TAX_DEFAULT_TNCN_RATE, "tncn_rate"),
        )

    @classmethod
    def from_values(cls, gtgt=None, tncn=None) -> TaxRates:
        """Build rates from optional overrides, falling back to the configured defaults."""
        base = cls.defaults()
        return cls(
            gtgt=base.gtgt if gtgt is None else parse_rate(gtgt, "gtgt_rate"),
            tncn=base.tncn if tncn is None else parse_rate(tncn, "tncn_rate"),
        )


@dataclass(frozen=True)
class TaxAmounts:
    gtgt: Decimal
    tncn: Decimal
    total: Decimal


def compute_tax(amount: Decimal, rate: Decimal) -> Decimal:
    return quantize_money(amount * rate / HUNDRED)


def compute_declaration_taxes(declared_revenue: Decimal, rates: TaxRates | None = None) -> TaxAmounts:
    """
    Compute itemised taxes for a declared revenue.

    gtgt  = round_half_up(declared * gtgt_rate / 100, 2)
    tncn  = round_half_up(declared * tncn_rate / 100, 2)
    total = gtgt + tncn

    Args:
        declared_revenue: Revenue reported by the filer (not the system figure)
        rates: Percent rates; configured defaults when omitted

    Returns:
        TaxAmounts with every field quantized to 2 decimals
    """
    rates = rates or TaxRates.defaults()
    revenue = parse_money(declared_revenue)
    gtgt = compute_tax(revenue, parse_rate(rates.gtgt, "gtgt_rate"))
    tncn = compute_tax(revenue, parse_rate(rates.tncn, "tncn_rate"))
    return TaxAmounts(gtgt=gtgt, tncn=tncn, total=gtgt + tncn)


def format_money(value: Decimal | None) -> str | None:
    """Canonical wire form: exactly two decimals, no exponent."""
    if value is None:
        return None
    return f"{quantize_money(value):f}"


def format_rate(value: Decimal | None) -> str | None:
    if value is None:
        return None
    normalized = value.normalize()
    if normalized.as_tuple().exponent >= 0:
        normalized = normalized.quantize(Decimal("0.1"))
    return f"{normalized:f}"


def format_quantity(value: Decimal | None) -> str | None:
    if value is None:
        return None
    normalized = value.normalize()
    if normalized.as_tuple().exponent > 0:
        normalized = normalized.quantize(Decimal("1"))
    return f"{normalized:f}"
