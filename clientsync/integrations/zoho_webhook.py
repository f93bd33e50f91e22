"""
Zoho Flow webhook - pushes each new client into Zoho as a contact.
Single POST, 10s timeout, no retry. The shared secret travels in
X-Webhook-Secret; when a signing key is set the body is also HMAC-signed.
"""
import json
import logging
from datetime import datetime, timezone
import httpx

from clientsync.schemas.client_record import ClientRecord
from clientsync.utils.webhook_signatures import sign_hmac_sha256

logger = logging.getLogger(__name__)

USER_AGENT = "IRIAS-Client-Portal/1.0"
TIMEOUT_SECONDS = 10.0


def build_contact_payload(record: ClientRecord) -> dict:
    """Zoho contact fields for a client."""
    parts = record.client_full_name.split()
    organization = record.company_name or "Individual"
    return {
        "Email": record.email,
        "Organization": organization,
        "Company name": organization,
        "First name": parts[0] if parts else "New",
        "Last name": parts[-1] if len(parts) > 1 else "Client",
        "Customer display name": record.client_full_name or "New Client",
        "Phone": record.phone_number,
        "Billing address - Phone": record.phone_number,
        "Billing address - Address": record.project_address,
        "Shipping address - Address": record.project_address,
        "Remark": record.technical_description or "New lead from website",
        "Customer subtype": record.customer_type or "Residential",
        "Service Type": record.service_type,
        "Price": record.price or "0",
        "Place of contact": "Website",
        "Source": "Web Form",
        "Client ID": record.client_id,
        "Registration Date": datetime.now(timezone.utc).isoformat(),
    }


class ZohoWebhookClient:
    def __init__(self, webhook_url: str, webhook_secret: str = "", signing_key: str = ""):
        self.webhook_url = webhook_url.strip()
        self.webhook_secret = webhook_secret.strip()
        self.signing_key = signing_key.strip()

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    async def trigger(self, record: ClientRecord) -> dict:
        """POST the contact. Returns {"success", "status_code", "error"}."""
        if not self.configured:
            return {"success": False, "status_code": None, "error": "Zoho Flow webhook not configured"}

        body = json.dumps(build_contact_payload(record)).encode("utf-8")
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if self.webhook_secret:
            headers["X-Webhook-Secret"] = self.webhook_secret
        if self.signing_key:
            headers["X-Webhook-Signature"] = sign_hmac_sha256(self.signing_key, body)

        try:
            async with httpx.AsyncClient(timeout=TIMEOUT_SECONDS) as client:
                response = await client.post(self.webhook_url, content=body, headers=headers)
                response.raise_for_status()
            logger.info(
                "Zoho webhook delivered for %s", record.client_id,
                extra={"client_id": record.client_id},
            )
            return {"success": True, "status_code": response.status_code, "error": None}
        except Exception as e:
            logger.error("Zoho webhook failed for %s: %s", record.client_id, str(e))
            return {"success": False, "status_code": None, "error": str(e)}
