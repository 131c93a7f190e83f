from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from schedule_engine.core.config import get_settings
from schedule_engine.db.bootstrap import missing_schema
from schedule_engine.db.session import engine

router = APIRouter()

settings = get_settings()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _database_status() -> dict:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        missing_tables, missing_columns = missing_schema()
    except SQLAlchemyError as exc:  # pragma: no cover - environment dependent
        return {"ok": False, "schema_ok": False, "missing_tables": [], "missing_columns": {}, "error": str(exc)}
    return {
        "ok": True,
        "schema_ok": not missing_tables and not missing_columns,
        "missing_tables": missing_tables,
        "missing_columns": missing_columns,
        "error": None,
    }


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": _now()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    database = _database_status()
    # /optimize answers 500 until REASONING_API_KEY is set; the key is reported here, not gated on.
    ready = database["ok"] and database["schema_ok"]
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "timestamp": _now(),
            "database": database,
            "reasoning": {"configured": settings.reasoning_configured, "model": settings.reasoning_model},
            "timezone": settings.schedule_timezone,
        },
    )
