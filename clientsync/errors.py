"""
Error taxonomy for the client portal.

Authoritative-store failures (StoreConnectionError, WriteError, ValidationError)
propagate to the caller. Per-row failures (RowMappingError, IdentityConflictError)
are counted by the reconciliation pass. NotificationError never escapes the
notification dispatcher.
"""
from typing import Optional


class PortalError(Exception):
    """Base class for all portal errors."""


class ValidationError(PortalError):
    """A required client field is missing or invalid. Raised before any write."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Missing required field: {field}")


class StoreConnectionError(PortalError, ConnectionError):
    """The sheet API or the database cannot be reached."""


class WriteError(PortalError):
    """A sheet write was rejected (bad range, permission denied)."""


class RowMappingError(PortalError):
    """A sheet row could not be mapped to a client record."""

    def __init__(self, row_index: int, message: str):
        self.row_index = row_index
        super().__init__(f"Row {row_index}: {message}")


class HeaderSchemaError(PortalError):
    """The sheet header row does not match the client column schema."""


class NotificationError(PortalError):
    """An email, webhook or Drive call failed."""


class IdentityConflictError(PortalError):
    """Two inputs resolve to the same client identity in incompatible ways."""


class SyncInProgressError(PortalError):
    """A reconciliation pass is already running."""


class ClientNotFoundError(PortalError):
    """No client matches the given identity."""
