"""
Client intake - creating a client from the portal form.

Order:
1. validate (nothing is written for an invalid payload)
2. authoritative insert into the database (errors propagate)
3. best-effort mirror into the sheet
4. best-effort new-lead email, Zoho webhook and Drive folder

Steps 3 and 4 report per-side flags so the caller can tell "client saved,
email failed" apart from "client not saved".
"""
import logging
from typing import Optional
from pydantic import ValidationError as PydanticValidationError

from clientsync.errors import ValidationError
from clientsync.integrations.google_sheets import GoogleSheetsStore
from clientsync.schemas.client_record import ClientRecord, generate_client_id
from clientsync.services.client_store import ClientStore
from clientsync.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class ClientIntake:
    def __init__(
        self,
        clients: ClientStore,
        sheets: Optional[GoogleSheetsStore],
        dispatcher: NotificationDispatcher,
        default_company: str,
    ):
        self.clients = clients
        self.sheets = sheets
        self.dispatcher = dispatcher
        self.default_company = default_company

    def prepare(self, payload: dict) -> ClientRecord:
        """Apply defaults and validate. Raises ValidationError."""
        try:
            record = ClientRecord.model_validate(payload)
        except PydanticValidationError as e:
            loc = e.errors()[0]["loc"]
            raise ValidationError(str(loc[0]) if loc else "body", str(e)) from e
        if "company_name" not in record.model_fields_set:
            record.company_name = self.default_company
        record.validate_required()
        if record.has_synthetic_id:
            record.client_id = generate_client_id()
        return record

    async def create_client(self, payload: dict, user_email: Optional[str] = None) -> dict:
        record = self.prepare(payload)
        saved = await self.clients.create_client(record, user_email=user_email)

        row_index, sheet_error = await self._mirror_to_sheet(saved)
        if row_index is not None:
            saved.sheet_row_index = row_index

        email = await self.dispatcher.notify_new_lead(saved)
        zoho = await self.dispatcher.trigger_crm_webhook(saved)
        drive = await self.dispatcher.create_drive_folder(saved)

        return {
            "clientId": saved.client_id,
            "client": saved.to_api(),
            "sheetSynced": sheet_error is None,
            "sheetError": sheet_error,
            "emailSent": email.succeeded,
            "emailError": email.error if not email.succeeded else None,
            "zohoTriggered": zoho.succeeded,
            "zohoError": zoho.error if not zoho.succeeded else None,
            "driveFolderCreated": drive.succeeded,
            "driveError": drive.error if not drive.succeeded else None,
            "driveFolderLink": drive.detail.get("folderLink"),
        }

    async def _mirror_to_sheet(self, record: ClientRecord) -> tuple[Optional[int], Optional[str]]:
        """Append to the sheet. Returns (row_index, error)."""
        if self.sheets is None or not self.sheets.configured:
            return None, "Google Sheets not configured"
        try:
            row_index = await self.sheets.append_record(record)
            if row_index is not None:
                await self.clients.set_sheet_row_index(record.client_id, row_index)
            return row_index, None
        except Exception as e:
            logger.warning("Sheet mirror failed for %s: %s", record.client_id, str(e))
            return None, str(e)
