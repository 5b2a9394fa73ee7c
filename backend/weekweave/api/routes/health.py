from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from weekweave.core.config import get_settings
from weekweave.db.session import engine

router = APIRouter()

settings = get_settings()

REQUIRED_TABLES = (
    "timetable_entries",
    "weekly_edits",
    "timetable_changes",
    "substitutions",
    "teacher_attendance",
    "timetable_scope_locks",
    "timetable_scopes",
    "class_write_holds",
)


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    db_ok = True
    db_error: str | None = None
    missing_tables: list[str] = []

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            table_names = set(inspect(connection).get_table_names())
            missing_tables = [name for name in REQUIRED_TABLES if name not in table_names]
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    ready = db_ok and not missing_tables
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "timezone": settings.school_timezone,
        "database": {
            "ok": db_ok,
            "schema_ok": not missing_tables,
            "missing_tables": missing_tables,
            "error": db_error,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
