"""
Shared API dependencies and error mapping.
"""
import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from clientsync.errors import (
    ClientNotFoundError,
    HeaderSchemaError,
    IdentityConflictError,
    PortalError,
    StoreConnectionError,
    SyncInProgressError,
    ValidationError,
    WriteError,
)
from clientsync.schemas.api_responses import ApiError
from clientsync.services.portal import Portal

logger = logging.getLogger(__name__)

# Most specific first
_STATUS_FOR_ERROR = (
    (ValidationError, 400),
    (ClientNotFoundError, 404),
    (IdentityConflictError, 409),
    (SyncInProgressError, 409),
    (HeaderSchemaError, 422),
    (WriteError, 502),
    (StoreConnectionError, 503),
)


def get_portal(request: Request) -> Portal:
    return request.app.state.portal


def get_user_email(request: Request) -> Optional[str]:
    """Acting user for the audit trail, forwarded by the dashboard."""
    return request.headers.get("X-User-Email") or None


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    status_code = 500
    for error_type, code in _STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            status_code = code
            break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, str(exc))
    body = ApiError(message=str(exc), field=getattr(exc, "field", None))
    return JSONResponse(status_code=status_code, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
