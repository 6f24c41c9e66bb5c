"""
Tax API Routes Module.

All routes are prefixed with /tax.

Sub-modules:
- declarations: versioned tax declarations (preview, CRUD, clone, export)
"""
from __future__ import annotations

from fastapi import APIRouter

from .declarations import router as declarations_router

# Main router with /tax prefix
router = APIRouter(prefix="/tax", tags=["tax"])

router.include_router(declarations_router)

__all__ = ["router"]
