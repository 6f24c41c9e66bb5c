from __future__ import annotations

from fastapi import APIRouter, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from smartretail.api.dependencies import DbDep

router = APIRouter(tags=["health"])


@router.get("/health")
def health(db: DbDep):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail={"status": "degraded", "database": False})
    return {"status": "ok", "database": True}
