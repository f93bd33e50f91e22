"""
Client endpoints - list, intake, detail, status updates and dashboard statistics.

Status and field updates go through the reconciliation write path: the
database is written first, the sheet row second (best-effort).
"""
import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends, Query

from clientsync.api.deps import get_portal, get_user_email
from clientsync.errors import ClientNotFoundError, ValidationError
from clientsync.schemas.api_responses import ClientUpdateRequest, StatusUpdateRequest, ok
from clientsync.schemas.client_record import canonical_status, normalize_update_fields
from clientsync.schemas.identity import resolve_identity
from clientsync.services.portal import Portal

logger = logging.getLogger(__name__)
router = APIRouter(tags=["clients"])


@router.get("/api/clients")
async def list_clients(
    company: Optional[str] = None,
    status: Optional[str] = None,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    portal: Portal = Depends(get_portal),
):
    """Clients, newest first."""
    clients = await portal.clients.list_clients(company=company, status=status, limit=limit)
    return ok({"clients": [c.to_api() for c in clients], "total": len(clients)})


@router.post("/api/clients")
async def create_client(
    payload: dict = Body(...),
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    """
    Create a client. The database insert is authoritative; sheet mirror,
    email, Zoho and Drive outcomes are reported as flags.
    """
    result = await portal.intake.create_client(payload, user_email=user_email)
    message = "Client created successfully"
    if not result["emailSent"]:
        message += " (notification email not sent)"
    return ok(result, message)


@router.get("/api/clients/{client_id}")
async def get_client(client_id: str, portal: Portal = Depends(get_portal)):
    record = await portal.clients.get_client_by_identity(resolve_identity(client_id))
    if record is None:
        raise ClientNotFoundError(f"Client {client_id} not found")
    return ok(record.to_api())


async def _update_status(
    portal: Portal, body: StatusUpdateRequest, field: str, user_email: Optional[str],
) -> dict:
    value = canonical_status(field, body.status)
    if value is None:
        raise ValidationError("status", f"Invalid {field.replace('_', ' ')}: {body.status}")
    identity = resolve_identity(body.client_id, body.row_index)
    return await portal.engine.push_update(identity, {field: value}, user_email)


@router.put("/api/client-status")
async def update_client_status(
    body: StatusUpdateRequest,
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    result = await _update_status(portal, body, "status", user_email)
    return ok(result, "Client status updated")


@router.put("/api/client-invoice-status")
async def update_invoice_status(
    body: StatusUpdateRequest,
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    result = await _update_status(portal, body, "invoice_status", user_email)
    return ok(result, "Invoice status updated")


@router.put("/api/client-estimate-status")
async def update_estimate_status(
    body: StatusUpdateRequest,
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    result = await _update_status(portal, body, "estimate_status", user_email)
    return ok(result, "Estimate status updated")


@router.put("/api/client-update")
async def update_client(
    body: ClientUpdateRequest,
    portal: Portal = Depends(get_portal),
    user_email: Optional[str] = Depends(get_user_email),
):
    """Partial update of any editable client field."""
    if not body.update_data:
        raise ValidationError("updateData", "No fields to update")
    fields = normalize_update_fields(body.update_data)
    identity = resolve_identity(body.client_id, body.row_index)
    result = await portal.engine.push_update(identity, fields, user_email)
    return ok(result, "Client updated")


@router.get("/api/statistics")
async def get_statistics(company: Optional[str] = None, portal: Portal = Depends(get_portal)):
    stats = await portal.clients.get_statistics(company)
    return ok(stats)
