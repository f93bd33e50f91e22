"""
Notification dispatcher - best-effort email, Zoho webhook and Drive folder
side effects for client creation and sync passes.

CRITICAL: nothing here may raise into a data-mutation path. Every channel
returns a SideEffect; a failed or unconfigured channel is reported, not thrown.
Single attempt per event, no retry.
"""
import logging
from typing import Awaitable, Callable, Optional, Sequence
from pydantic import BaseModel, Field

from clientsync.errors import NotificationError
from clientsync.integrations.google_drive import GoogleDriveFolders
from clientsync.integrations.zoho_webhook import ZohoWebhookClient
from clientsync.schemas.client_record import ClientRecord
from clientsync.schemas.sync import SyncResult
from clientsync.services.email import Mailer, render_new_lead_email, render_sync_result_email

logger = logging.getLogger(__name__)


class SideEffect(BaseModel):
    """Outcome of one best-effort side effect."""
    attempted: bool = False
    succeeded: bool = False
    error: Optional[str] = None
    detail: dict = Field(default_factory=dict)

    @classmethod
    def skipped(cls, reason: str) -> "SideEffect":
        return cls(attempted=False, succeeded=False, error=reason)


class NotificationDispatcher:
    def __init__(
        self,
        mailer: Mailer,
        notification_email: str,
        cc_email: str = "",
        sync_recipients: Optional[Sequence[str]] = None,
        zoho: Optional[ZohoWebhookClient] = None,
        drive: Optional[GoogleDriveFolders] = None,
        notify_sync_success: bool = True,
    ):
        self.mailer = mailer
        self.notification_email = notification_email
        self.cc_email = cc_email
        self.sync_recipients = [r for r in (sync_recipients or []) if r] or [notification_email]
        self.zoho = zoho
        self.drive = drive
        self.notify_sync_success = notify_sync_success

    async def _dispatch(self, channel: str, call: Callable[[], Awaitable[dict]]) -> SideEffect:
        try:
            detail = await call()
            return SideEffect(attempted=True, succeeded=True, detail=detail)
        except NotificationError as e:
            logger.warning("%s notification failed: %s", channel, str(e))
            return SideEffect(attempted=True, succeeded=False, error=str(e))
        except Exception as e:
            logger.error("%s notification crashed: %s", channel, str(e))
            return SideEffect(attempted=True, succeeded=False, error=str(e))

    async def _send_email(self, to: Sequence[str], subject: str, html: str, text: str,
                          cc: Optional[Sequence[str]] = None) -> dict:
        result = await self.mailer.send(to, subject, html, text, cc_emails=cc)
        if result.get("status") != "sent":
            raise NotificationError(result.get("error") or "Email not sent")
        return {"messageId": result.get("message_id")}

    async def notify_new_lead(self, record: ClientRecord) -> SideEffect:
        if not self.mailer.configured or not self.notification_email:
            return SideEffect.skipped("Email not configured")
        subject, html, text = render_new_lead_email(record)
        cc = [self.cc_email] if self.cc_email else None
        return await self._dispatch(
            "New lead email",
            lambda: self._send_email([self.notification_email], subject, html, text, cc),
        )

    async def notify_sync_result(self, result: SyncResult, kind: str) -> SideEffect:
        """kind is "success" or "error"."""
        if kind == "success" and not self.notify_sync_success:
            return SideEffect.skipped("Success notifications disabled")
        if not self.mailer.configured:
            return SideEffect.skipped("Email not configured")
        subject, html, text = render_sync_result_email(result, kind)
        return await self._dispatch(
            "Sync result email",
            lambda: self._send_email(self.sync_recipients, subject, html, text),
        )

    async def trigger_crm_webhook(self, record: ClientRecord) -> SideEffect:
        if self.zoho is None or not self.zoho.configured:
            return SideEffect.skipped("Zoho webhook not configured")

        async def _call() -> dict:
            result = await self.zoho.trigger(record)
            if not result.get("success"):
                raise NotificationError(result.get("error") or "Webhook rejected")
            return {"statusCode": result.get("status_code")}

        return await self._dispatch("Zoho webhook", _call)

    async def create_drive_folder(self, record: ClientRecord) -> SideEffect:
        if self.drive is None or not self.drive.configured:
            return SideEffect.skipped("Google Drive not configured")

        async def _call() -> dict:
            result = await self.drive.create_client_folder(
                record.client_full_name, record.project_address, record.customer_type,
            )
            if not result.get("success"):
                raise NotificationError(result.get("error") or "Folder not created")
            return {"folderId": result.get("folder_id"), "folderLink": result.get("web_view_link")}

        return await self._dispatch("Drive folder", _call)
