"""
Google service-account access tokens for the Sheets and Drive REST APIs.

The key comes from GOOGLE_SERVICE_ACCOUNT_KEY as raw JSON or base64-encoded
JSON. google-auth refreshes synchronously, so the refresh runs in the default
executor; the token is reused until shortly before it expires.
"""
import asyncio
import base64
import binascii
import json
import logging
from typing import Optional

from clientsync.errors import StoreConnectionError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


def load_service_account_info(raw_key: str) -> dict:
    """Parse a service-account key given as JSON or base64(JSON)."""
    raw_key = (raw_key or "").strip()
    if not raw_key:
        raise ValueError("Google service account key is not configured")
    if raw_key.startswith("{"):
        return json.loads(raw_key)
    try:
        decoded = base64.b64decode(raw_key, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("Google service account key is neither JSON nor base64 JSON") from e
    return json.loads(decoded)


class GoogleServiceAccountAuth:
    """Lazily built google-auth credentials with a cached bearer token."""

    def __init__(self, service_account_info: dict, scopes: Optional[list[str]] = None):
        self._info = service_account_info
        self._scopes = scopes or SCOPES
        self._credentials = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_key(cls, raw_key: str) -> "GoogleServiceAccountAuth":
        return cls(load_service_account_info(raw_key))

    @property
    def client_email(self) -> str:
        return self._info.get("client_email", "")

    def _build_credentials(self):
        from google.oauth2.service_account import Credentials
        return Credentials.from_service_account_info(self._info, scopes=self._scopes)

    def _token_is_fresh(self) -> bool:
        # valid turns False inside google-auth's expiry skew window
        return self._credentials is not None and self._credentials.valid

    def _refresh_blocking(self) -> None:
        from google.auth.transport.requests import Request
        if self._credentials is None:
            self._credentials = self._build_credentials()
        self._credentials.refresh(Request())

    async def get_token(self) -> str:
        """Return a valid bearer token, refreshing off the event loop when needed."""
        async with self._lock:
            if self._token_is_fresh():
                return self._credentials.token
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, self._refresh_blocking)
            except Exception as e:
                logger.error("Google token refresh failed: %s", str(e))
                raise StoreConnectionError(f"Google authentication failed: {str(e)}") from e
            logger.debug("Google access token refreshed for %s", self.client_email)
            return self._credentials.token
