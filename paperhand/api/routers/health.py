"""Health check, no auth required."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Request
from loguru import logger
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(prefix="/api", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    db_ok: bool
    sse_clients: int
    monitor: dict[str, Any] | None = None


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check DB connectivity and report the live monitor."""
    state = request.app.state
    engine = getattr(state, "engine", None)

    db_ok = False
    backend = "none"
    if engine is not None:
        backend = engine.dialect.name
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            db_ok = True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"[HEALTH] Database check failed: {e}")

    monitor = getattr(state, "monitor", None)
    return HealthResponse(
        status="ok" if db_ok or engine is None else "degraded",
        timestamp=datetime.now(UTC),
        database=backend,
        db_ok=db_ok,
        sse_clients=len(state.notifier),
        monitor=monitor.status() if monitor is not None else None,
    )
