"""
Inspection report endpoints. Reports are stored as audit entries keyed by client.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query

from clientsync.api.deps import get_portal, get_user_email
from clientsync.errors import ClientNotFoundError
from clientsync.schemas.api_responses import ReportRequest, ok
from clientsync.schemas.identity import ById
from clientsync.services.portal import Portal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["reports"])


@router.post("/api/reports")
async def create_report(
    body: ReportRequest,
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    client = await portal.clients.get_client_by_identity(ById(client_id=body.client_id))
    if client is None:
        raise ClientNotFoundError(f"Client {body.client_id} not found")
    report = body.model_dump(by_alias=True, mode="json")
    saved = await portal.clients.add_report(report, inspector_email=body.inspector_email or user_email)
    return ok(saved, "Report saved")


@router.get("/api/reports")
async def list_reports(
    client_id: Optional[str] = Query(default=None, alias="clientId"),
    limit: int = Query(default=100, ge=1, le=1000),
    portal: Portal = Depends(get_portal),
):
    reports = await portal.clients.list_reports(client_id=client_id, limit=limit)
    return ok({"reports": reports, "total": len(reports)})
