from fastapi import APIRouter
from datetime import datetime, timezone

from tortoise import connections

from app.core.config import settings
from app.services import locks
from app.services.solana import solana_ledger

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health check")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "cluster": settings.solana_cluster,
    }


@router.get("/ready", summary="Readiness check")
async def readiness_check():
    """
    Readiness check - verifies all dependencies are available.

    Checks the Solana RPC, the database and, when configured, Redis.
    """
    checks = {}

    try:
        checks["solana_rpc"] = await solana_ledger.is_connected()
    except Exception:
        checks["solana_rpc"] = False

    try:
        await connections.get("default").execute_query("SELECT 1")
        checks["database"] = True
    except Exception:
        checks["database"] = False

    if settings.redis_url:
        try:
            redis = await locks._get_redis()
            await redis.ping()
            checks["redis"] = True
        except Exception:
            checks["redis"] = False

    all_healthy = all(checks.values())

    return {
        "status": "ready" if all_healthy else "degraded",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
