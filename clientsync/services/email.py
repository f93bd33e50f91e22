"""
Notification email - SendGrid delivery plus the two portal messages:
the new-lead alert and the sync pass summary.

Single attempt, no retry. Callers get {"message_id", "status", "error"} and
never an exception.
"""
import asyncio
import html as html_lib
import logging
from typing import Optional, Sequence
import httpx

from clientsync.schemas.client_record import ClientRecord
from clientsync.schemas.sync import SyncResult

logger = logging.getLogger(__name__)

SENDGRID_SCOPES_URL = "https://api.sendgrid.com/v3/scopes"


def _mask(address: str) -> str:
    return address[:20] + "***"


class Mailer:
    """SendGrid sender bound to one from-identity."""

    def __init__(self, api_key: str, from_email: str, from_name: str):
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.from_email)

    async def send(
        self,
        to_emails: Sequence[str],
        subject: str,
        html_content: str,
        text_content: str,
        cc_emails: Optional[Sequence[str]] = None,
    ) -> dict:
        """
        Send one message.

        Returns: {"message_id": str|None, "status": str, "error": str|None}
        """
        if not self.configured:
            return {"message_id": None, "status": "error", "error": "SendGrid not configured"}
        if not to_emails:
            return {"message_id": None, "status": "error", "error": "No recipients"}

        try:
            from sendgrid import SendGridAPIClient
            from sendgrid.helpers.mail import Mail, Email, To, Cc, Content

            message = Mail(
                from_email=Email(self.from_email, self.from_name),
                to_emails=[To(address) for address in to_emails],
                subject=subject,
            )
            for address in cc_emails or []:
                message.add_cc(Cc(address))
            message.content = [
                Content("text/plain", text_content),
                Content("text/html", html_content),
            ]

            sg = SendGridAPIClient(api_key=self.api_key)
            # Offload synchronous SendGrid SDK call to thread pool
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(None, lambda: sg.send(message))
            message_id = response.headers.get("X-Message-Id", "")

            logger.info("Email sent: to=%s subject=%s", _mask(to_emails[0]), subject[:40])
            return {"message_id": message_id, "status": "sent", "error": None}

        except Exception as e:
            logger.error("Email failed: to=%s error=%s", _mask(to_emails[0]), str(e))
            return {"message_id": None, "status": "error", "error": str(e)}

    async def verify(self) -> dict:
        """Check that the API key is accepted. Returns {"success", "error"}."""
        if not self.configured:
            return {"success": False, "error": "SendGrid not configured"}
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(
                    SENDGRID_SCOPES_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
            return {"success": True, "error": None}
        except Exception as e:
            logger.warning("SendGrid credential check failed: %s", str(e))
            return {"success": False, "error": str(e)}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

_LEAD_FIELDS = (
    ("Client ID", "client_id"),
    ("Name", "client_full_name"),
    ("Email", "email"),
    ("Phone", "phone_number"),
    ("Project Address", "project_address"),
    ("Customer Type", "customer_type"),
    ("Service Type", "service_type"),
    ("Urgency", "urgency_level"),
    ("Preferred Contact", "preferred_contact_method"),
    ("Budget", "budget_range"),
    ("Timeline", "expected_timeline"),
    ("Description", "technical_description"),
    ("Notes", "additional_notes"),
    ("Channel", "channel"),
)


def render_new_lead_email(record: ClientRecord) -> tuple[str, str, str]:
    """Return (subject, html, text) for a new client lead."""
    subject = f"NEW CUSTOMER LEAD - {record.client_full_name}"
    rows = [(label, getattr(record, field)) for label, field in _LEAD_FIELDS if getattr(record, field)]

    html_rows = "".join(
        f"<tr><td style=\"padding: 4px 12px 4px 0; color: #666;\">{label}</td>"
        f"<td style=\"padding: 4px 0;\">{html_lib.escape(str(value))}</td></tr>"
        for label, value in rows
    )
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto; padding: 24px;">
      <h2 style="margin: 0 0 16px; color: #111;">New customer lead</h2>
      <table style="border-collapse: collapse; font-size: 14px;">{html_rows}</table>
      <p style="color: #999; font-size: 12px; margin-top: 24px;">{html_lib.escape(record.company_name)} client portal</p>
    </div>
    """
    text = "New customer lead\n\n" + "\n".join(f"{label}: {value}" for label, value in rows)
    return subject, html, text


def render_sync_result_email(result: SyncResult, kind: str) -> tuple[str, str, str]:
    """Return (subject, html, text) summarising a sync pass. kind is success|error."""
    succeeded = kind == "success"
    subject = (
        "Sync Completed Successfully - IRIAS Ironworks" if succeeded
        else "Sync Failed - IRIAS Ironworks"
    )
    lines = [
        f"Pass: {result.kind}",
        f"Imported: {result.imported}",
        f"Updated: {result.updated}",
        f"Synced to sheet: {result.synced_to_sheet}",
        f"Errors: {result.errors}",
        f"Duration: {result.duration_ms} ms",
    ]
    if result.message:
        lines.append(f"Message: {result.message}")
    error_lines = list(result.error_log)

    color = "#059669" if succeeded else "#dc2626"
    html_errors = ""
    if error_lines:
        items = "".join(f"<li>{html_lib.escape(line)}</li>" for line in error_lines)
        html_errors = f"<h3 style=\"color: {color};\">Recent errors</h3><ul>{items}</ul>"
    html = f"""
    <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto; padding: 24px;">
      <h2 style="margin: 0 0 16px; color: {color};">Sync {'completed' if succeeded else 'failed'}</h2>
      <p style="font-size: 14px; line-height: 1.6;">{'<br>'.join(html_lib.escape(line) for line in lines)}</p>
      {html_errors}
    </div>
    """
    text = "\n".join(lines)
    if error_lines:
        text += "\n\nRecent errors:\n" + "\n".join(f"- {line}" for line in error_lines)
    return subject, html, text
