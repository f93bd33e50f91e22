"""
Google Drive - one folder per client, named "<name> - <address>", created
under the residential or commercial parent folder.
"""
import logging
import re
from typing import Optional
import httpx

from clientsync.integrations.google_auth import GoogleServiceAccountAuth

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*]')


def folder_name_for(client_name: str, address: str) -> str:
    name = _UNSAFE_CHARS.sub("_", client_name).strip()
    address = _UNSAFE_CHARS.sub("_", address).strip()
    return f"{name} - {address}" if address else name


class GoogleDriveFolders:
    def __init__(
        self,
        auth: Optional[GoogleServiceAccountAuth],
        residential_folder_id: str = "",
        commercial_folder_id: str = "",
    ):
        self.auth = auth
        self.residential_folder_id = residential_folder_id
        self.commercial_folder_id = commercial_folder_id

    @property
    def configured(self) -> bool:
        return self.auth is not None and bool(self.residential_folder_id or self.commercial_folder_id)

    def parent_for(self, customer_type: str) -> str:
        if customer_type == "Commercial" and self.commercial_folder_id:
            return self.commercial_folder_id
        return self.residential_folder_id or self.commercial_folder_id

    async def create_client_folder(self, client_name: str, address: str, customer_type: str) -> dict:
        """Returns {"success", "folder_id", "web_view_link", "error"}."""
        if not self.configured:
            return {"success": False, "folder_id": None, "web_view_link": None,
                    "error": "Google Drive not configured"}

        name = folder_name_for(client_name, address)
        try:
            token = await self.auth.get_token()
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    DRIVE_FILES_URL,
                    params={"fields": "id,name,webViewLink", "supportsAllDrives": "true"},
                    headers={"Authorization": f"Bearer {token}"},
                    json={
                        "name": name,
                        "mimeType": FOLDER_MIME_TYPE,
                        "parents": [self.parent_for(customer_type)],
                    },
                )
                response.raise_for_status()
                data = response.json()
            logger.info("Drive folder created: %s", name)
            return {"success": True, "folder_id": data.get("id"),
                    "web_view_link": data.get("webViewLink"), "error": None}
        except Exception as e:
            logger.error("Drive folder creation failed for %s: %s", name, str(e))
            return {"success": False, "folder_id": None, "web_view_link": None, "error": str(e)}
