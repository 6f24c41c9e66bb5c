"""Custom exception hierarchy for SmartRetail.

Every error raised by the tax declaration core derives from
``SmartRetailException`` so the API layer can translate it into a JSON body
and HTTP status in one place.

Error codes follow pattern: [CATEGORY][NUMBER]
- USR: Actor/permission errors (100-199)
- STR: Store errors (100-199)
- TAX: Tax declaration errors (300-399)
- SYS: System errors (400-499)
"""

from __future__ import annotations

from typing import Any


class SmartRetailException(Exception):
    """Base exception for all SmartRetail application errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with user-facing message and metadata.

        Args:
            message: User-facing error message
            code: Unique error code (e.g., "TAX302")
            status_code: HTTP status code (default: 400 Bad Request)
            details: Optional additional context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


# ============================================================================
# ACTOR ERRORS (USR100-199)
# ============================================================================

class ForbiddenError(SmartRetailException):
    """Actor lacks the permission or role needed for the action."""

    def __init__(self, action: str | None = None, reason: str | None = None):
        message = "You are not authorized to perform this action" if not action else f"Not authorized: {action}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(
            message=message,
            code="USR106",
            status_code=403,
            details={"action": action} if action else {},
        )


# ============================================================================
# STORE ERRORS (STR100-199)
# ============================================================================

class StoreNotFoundError(SmartRetailException):
    """Store does not exist or has been deleted."""

    def __init__(self, store_id: int):
        super().__init__(
            message=f"Store {store_id} not found or has been deleted",
            code="STR100",
            status_code=404,
            details={"store_id": store_id},
        )


# ============================================================================
# TAX DECLARATION ERRORS (TAX300-399)
# ============================================================================

class TaxDeclarationError(SmartRetailException):
    """Base class for tax declaration errors."""
    pass


class DeclarationValidationError(TaxDeclarationError):
    """Request input is missing or malformed; nothing was written."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            code="TAX300",
            status_code=400,
            details={"field": field} if field else {},
        )


class InvalidPeriodError(TaxDeclarationError):
    """Period key does not match the grammar of its period type."""

    def __init__(self, period_type: str | None, period_key: str | None = None, reason: str | None = None):
        message = f"Invalid period for type '{period_type}'"
        if period_key:
            message = f"{message}: '{period_key}'"
        if reason:
            message = f"{message}. {reason}"
        super().__init__(
            message=message,
            code="TAX301",
            status_code=400,
            details={"period_type": period_type, "period_key": period_key, "reason": reason},
        )


class DuplicatePeriodError(TaxDeclarationError):
    """An original declaration already exists for the store and period."""

    def __init__(self, store_id: int, period_type: str, period_key: str):
        message = (
            f"A declaration for {period_type} {period_key} already exists. "
            "Update the existing declaration or create a clone instead."
        )
        super().__init__(
            message=message,
            code="TAX302",
            status_code=409,
            details={"store_id": store_id, "period_type": period_type, "period_key": period_key},
        )


class DeclarationNotFoundError(TaxDeclarationError):
    """Declaration id does not exist."""

    def __init__(self, declaration_id: int | None = None):
        message = "Declaration not found" if declaration_id is None else f"Declaration {declaration_id} not found"
        super().__init__(
            message=message,
            code="TAX303",
            status_code=404,
            details={"declaration_id": declaration_id} if declaration_id is not None else {},
        )


class NotEditableError(TaxDeclarationError):
    """Declaration is no longer in an editable status."""

    def __init__(self, declaration_id: int, status: str):
        super().__init__(
            message=f"Only declarations with status 'saved' can be edited (declaration {declaration_id} is '{status}')",
            code="TAX304",
            status_code=400,
            details={"declaration_id": declaration_id, "status": status},
        )


class ConcurrentModificationError(TaxDeclarationError):
    """The storage layer aborted the transaction because of a competing write."""

    def __init__(self, reason: str | None = None):
        message = "The declaration was modified concurrently. Please retry."
        super().__init__(
            message=message,
            code="TAX305",
            status_code=409,
            details={"reason": reason} if reason else {},
        )


# ============================================================================
# SYSTEM ERRORS (SYS400-499)
# ============================================================================

class RevenueAggregationError(SmartRetailException):
    """Order data source could not be aggregated; no declaration was written."""

    def __init__(self, store_id: int, reason: str | None = None):
        message = "Order revenue is currently unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            code="SYS400",
            status_code=503,
            details={"store_id": store_id, "reason": reason},
        )
