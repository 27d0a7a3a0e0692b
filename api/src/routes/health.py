from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from api.src.db.database import get_db
from api.src.services.dispatch import get_dispatcher
from controller.src.worker import RunDispatcher

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "pushdeploy-api"}

@router.get("/health/db")
async def db_health_check(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": str(e)}

@router.get("/health/runs")
async def runs_health_check(dispatcher: RunDispatcher = Depends(get_dispatcher)):
    active = dispatcher.active_runs()
    return {
        "status": "healthy",
        "active_runs": len(active),
        "max_concurrent_runs": dispatcher.settings.max_concurrent_runs,
    }

@router.get("/health/all")
async def full_health_check(
    db: AsyncSession = Depends(get_db),
    dispatcher: RunDispatcher = Depends(get_dispatcher),
):
    """Combined health check for all services."""
    health = {
        "api": "healthy",
        "database": "unknown",
        "active_runs": len(dispatcher.active_runs()),
    }

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        health["database"] = "healthy"
    except Exception as e:
        health["database"] = f"unhealthy: {e}"

    overall = "healthy" if all(
        v == "healthy" for k, v in health.items()
        if k not in ["active_runs"]
    ) else "degraded"

    return {"status": overall, "services": health}
