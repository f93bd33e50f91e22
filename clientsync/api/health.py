"""
Health check endpoints - used by load balancers and monitoring.

- GET /health       - basic liveness (always 200 if app running)
- GET /health/ready - readiness check (DB + Redis + sheet worker heartbeat)
- GET /health/deep  - deep check (DB + Sheets API + SendGrid)
"""
import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends

from clientsync.api.deps import get_portal
from clientsync.services.portal import Portal
from clientsync.workers.sheet_sync import HEARTBEAT_KEY

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Basic liveness check - returns 200 if the app is running."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


@router.get("/health/ready")
async def readiness_check(portal: Portal = Depends(get_portal)):
    """
    Readiness check - database is critical, Redis and the sheet source are not.
    """
    checks = {
        "database": await portal.clients.ping(),
        "redis": False,
        "sheets": portal.sheets.configured,
    }
    last_heartbeat = None

    try:
        from clientsync.utils.redis import get_redis
        redis = await get_redis()
        await redis.ping()
        checks["redis"] = True
        last_heartbeat = await redis.get(HEARTBEAT_KEY)
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))

    if all(checks.values()):
        status = "ready"
    elif checks["database"]:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "sync": {
            "isAutoSyncActive": portal.scheduler.is_auto_sync_active,
            "lastHeartbeat": last_heartbeat,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/deep")
async def deep_health_check(portal: Portal = Depends(get_portal)):
    """
    Deep health check - calls out to every external dependency.

    Checks:
    - MySQL: SELECT 1
    - Google Sheets: header row read
    - SendGrid: API key accepted
    """
    checks = {
        "database": {"healthy": await portal.clients.ping()},
        "sheets": await _check_sheets(portal),
        "email": await _check_email(portal),
    }

    all_healthy = all(c.get("healthy", False) for c in checks.values())
    if all_healthy:
        status = "healthy"
    elif checks["database"]["healthy"]:
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }


async def _check_sheets(portal: Portal) -> dict:
    if not portal.sheets.configured:
        return {"healthy": False, "error": "Google Sheets not configured"}
    try:
        header = await portal.sheets.get_header_row()
        return {"healthy": True, "columns": len(header)}
    except Exception as e:
        logger.warning("Deep health: sheet check failed: %s", str(e))
        return {"healthy": False, "error": str(e)}


async def _check_email(portal: Portal) -> dict:
    result = await portal.dispatcher.mailer.verify()
    if result["success"]:
        return {"healthy": True}
    return {"healthy": False, "error": result["error"]}
