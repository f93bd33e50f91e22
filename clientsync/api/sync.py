"""
Sync endpoints - one-shot passes and auto sync control.

- POST /api/sync-full        - import then export
- POST /api/sync-from-sheets - import only
- POST /api/sync-to-sheets   - export only
- POST /api/sync/start       - run a pass now, then every N minutes
- POST /api/sync/stop        - cancel the recurring timer
- POST /api/sync/manual      - one full pass, returns at once if one is in flight
- GET  /api/sync/status      - scheduler status
"""
import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from clientsync.api.deps import get_portal
from clientsync.schemas.api_responses import ApiError, SyncStartRequest, ok
from clientsync.schemas.sync import SyncKind, SyncResult
from clientsync.services.portal import Portal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sync"])


def _pass_response(result: SyncResult):
    if result.already_running:
        body = ApiError(message=result.message)
        return JSONResponse(status_code=409, content=body.model_dump())
    return ok(result.to_api(), result.message)


@router.get("/api/sync-status")
@router.get("/api/sync/status")
async def sync_status(portal: Portal = Depends(get_portal)):
    return ok(portal.scheduler.status())


@router.post("/api/sync-full")
async def sync_full(portal: Portal = Depends(get_portal)):
    return _pass_response(await portal.scheduler.run_pass(SyncKind.FULL))


@router.post("/api/sync-from-sheets")
async def sync_from_sheets(portal: Portal = Depends(get_portal)):
    return _pass_response(await portal.scheduler.run_pass(SyncKind.IMPORT))


@router.post("/api/sync-to-sheets")
async def sync_to_sheets(portal: Portal = Depends(get_portal)):
    return _pass_response(await portal.scheduler.run_pass(SyncKind.EXPORT))


@router.post("/api/sync/start")
async def start_auto_sync(
    body: Optional[SyncStartRequest] = Body(default=None),
    portal: Portal = Depends(get_portal),
):
    interval = body.interval_minutes if body else None
    result = await portal.scheduler.start(interval)
    return ok(
        {"initialSync": result.to_api(), "status": portal.scheduler.status()},
        f"Auto sync started (every {portal.scheduler.interval_minutes} minutes)",
    )


@router.post("/api/sync/stop")
async def stop_auto_sync(portal: Portal = Depends(get_portal)):
    await portal.scheduler.stop()
    return ok(portal.scheduler.status(), "Auto sync stopped")


@router.post("/api/sync/manual")
async def manual_sync(portal: Portal = Depends(get_portal)):
    return _pass_response(await portal.scheduler.trigger_manual())
