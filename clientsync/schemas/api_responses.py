"""
API request and response schemas for the portal endpoints.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiResponse(BaseModel):
    """Envelope for every successful response."""
    success: bool = True
    message: str = ""
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class ApiError(BaseModel):
    success: bool = False
    error: bool = True
    message: str
    field: Optional[str] = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def ok(data: Any = None, message: str = "") -> dict:
    return ApiResponse(data=data, message=message).model_dump()


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatusUpdateRequest(_CamelModel):
    client_id: Optional[str] = None
    row_index: Optional[int] = None
    status: str


class ClientUpdateRequest(_CamelModel):
    client_id: Optional[str] = None
    row_index: Optional[int] = None
    update_data: dict[str, Any]


class SyncStartRequest(_CamelModel):
    interval_minutes: Optional[int] = Field(default=None, ge=1, le=1440)


class UpdateSourceRequest(_CamelModel):
    sheet_id: str
    # Tab title or numeric sheetId
    sheet_tab_id: Optional[str] = None


class CreateSheetRequest(_CamelModel):
    title: str = Field(min_length=1, max_length=100)


class ReportRequest(_CamelModel):
    model_config = ConfigDict(extra="allow")

    client_id: str
    inspector_email: Optional[str] = None
    title: Optional[str] = None
    summary: Optional[str] = None
