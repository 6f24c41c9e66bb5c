"""Tax declaration package.

Exports the main service class and the helpers callers need directly.
"""
from .computations import TaxAmounts, TaxRates, compute_declaration_taxes, parse_money
from .declaration_service import DeclarationPage, TaxDeclarationService, serialize_declaration
from .export import ExportedFile
from .period_utils import PeriodRange, format_period_label, resolve_period
from .revenue import compute_system_revenue
from .versioning import DeletionResult

__all__ = [
    "DeclarationPage",
    "DeletionResult",
    "ExportedFile",
    "PeriodRange",
    "TaxAmounts",
    "TaxDeclarationService",
    "TaxRates",
    "compute_declaration_taxes",
    "compute_system_revenue",
    "format_period_label",
    "parse_money",
    "resolve_period",
    "serialize_declaration",
]
