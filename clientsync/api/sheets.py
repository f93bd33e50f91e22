"""
Spreadsheet endpoints - list tabs, switch the data source, create a tab.
"""
import logging
from fastapi import APIRouter, Depends, Request

from clientsync.api.deps import get_portal
from clientsync.errors import SyncInProgressError, ValidationError
from clientsync.schemas.api_responses import CreateSheetRequest, UpdateSourceRequest, ok
from clientsync.services.portal import Portal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["sheets"])


def _source_info(portal: Portal) -> dict:
    source = portal.sheets.source
    return {"sheetId": source.spreadsheet_id, "sheetName": source.sheet_name}


@router.get("/api/sheets")
async def list_sheets(portal: Portal = Depends(get_portal)):
    tabs = await portal.sheets.list_tabs()
    return ok({"current": _source_info(portal), "sheets": tabs})


@router.put("/api/update-source")
async def update_source(
    body: UpdateSourceRequest,
    request: Request,
    portal: Portal = Depends(get_portal),
):
    """
    Point the portal at another spreadsheet/tab. sheetTabId may be a tab
    title or a numeric sheetId.
    """
    if portal.engine.is_running:
        raise SyncInProgressError("Cannot switch data source while a sync is running")

    target = portal.sheets.with_data_source(body.sheet_id)
    sheet_name = None
    if body.sheet_tab_id:
        tabs = await target.list_tabs()
        for tab in tabs:
            if body.sheet_tab_id in (tab.get("title"), str(tab.get("sheetId"))):
                sheet_name = tab.get("title")
                break
        if sheet_name is None:
            raise ValidationError("sheetTabId", f"Tab {body.sheet_tab_id} not found in spreadsheet")

    was_active = portal.scheduler.is_auto_sync_active
    await portal.scheduler.stop()
    new_portal = portal.with_data_source(body.sheet_id, sheet_name)
    request.app.state.portal = new_portal
    if was_active:
        await new_portal.scheduler.start(portal.scheduler.interval_minutes)

    return ok(_source_info(new_portal), "Data source updated")


@router.post("/api/create-sheet")
async def create_sheet(body: CreateSheetRequest, portal: Portal = Depends(get_portal)):
    tab = await portal.sheets.create_tab(body.title)
    return ok(tab, f"Sheet '{tab['title']}' created")
