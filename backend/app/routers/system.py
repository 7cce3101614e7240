from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timezone

from databases import Database

from ..core.config import settings
from ..core.deps import get_db
from ..services.voice import persistence_monitor

router = APIRouter(prefix="", tags=["Sistem"])


@router.get("/health")
async def health(database: Database = Depends(get_db)):
    """
    Production-ready health check endpoint.
    Returns 200 if healthy, 503 if unhealthy.
    """
    checks = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "env": settings.ENV,
        "database": "unknown",
        "voice_persistence_failures": persistence_monitor.snapshot(),
    }

    try:
        await database.fetch_one("SELECT 1")
        checks["database"] = "connected"
    except Exception as e:
        checks["database"] = "disconnected"
        checks["status"] = "unhealthy"
        checks["database_error"] = str(e)

    if checks["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=checks)

    return checks


@router.get("/version")
async def version():
    return {"app": settings.APP_NAME, "version": settings.VERSION, "env": settings.ENV}
