"""
Portal wiring - builds the component graph from Settings.

Components receive their configuration through constructors; nothing reads a
global sheet id. Switching the spreadsheet or tab produces a new Portal via
with_data_source(); the old one is left as it was.
"""
import logging
from typing import Optional
from sqlalchemy.ext.asyncio import async_sessionmaker

from clientsync.config import Settings
from clientsync.integrations.google_auth import GoogleServiceAccountAuth
from clientsync.integrations.google_drive import GoogleDriveFolders
from clientsync.integrations.google_sheets import GoogleSheetsStore, SheetSource
from clientsync.integrations.zoho_webhook import ZohoWebhookClient
from clientsync.services.client_intake import ClientIntake
from clientsync.services.client_store import ClientStore
from clientsync.services.email import Mailer
from clientsync.services.notifications import NotificationDispatcher
from clientsync.services.read_cache import ReadCache
from clientsync.services.reconciliation import ReconciliationEngine
from clientsync.workers.sheet_sync import SyncScheduler

logger = logging.getLogger(__name__)


class Portal:
    def __init__(
        self,
        settings: Settings,
        clients: ClientStore,
        sheets: GoogleSheetsStore,
        dispatcher: NotificationDispatcher,
    ):
        self.settings = settings
        self.clients = clients
        self.sheets = sheets
        self.dispatcher = dispatcher
        self.engine = ReconciliationEngine(
            sheets, clients, dispatcher, export_limit=settings.sync_export_limit,
        )
        self.scheduler = SyncScheduler(
            self.engine, clients, dispatcher,
            default_interval_minutes=settings.sync_interval_minutes,
        )
        self.intake = ClientIntake(clients, sheets, dispatcher, settings.default_company)

    def with_data_source(self, spreadsheet_id: str, sheet_name: Optional[str] = None) -> "Portal":
        """New portal reading another spreadsheet/tab. Scheduler history carries over."""
        portal = Portal(
            self.settings,
            self.clients,
            self.sheets.with_data_source(spreadsheet_id, sheet_name),
            self.dispatcher,
        )
        portal.scheduler.interval_minutes = self.scheduler.interval_minutes
        portal.scheduler.last_result = self.scheduler.last_result
        portal.scheduler.last_sync_timestamp = self.scheduler.last_sync_timestamp
        portal.scheduler.recent_errors = list(self.scheduler.recent_errors)
        portal.scheduler.stats = dict(self.scheduler.stats)
        logger.info(
            "Data source switched to %s / '%s'",
            portal.sheets.source.spreadsheet_id, portal.sheets.source.sheet_name,
        )
        return portal


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def build_portal(settings: Settings, session_factory: async_sessionmaker) -> Portal:
    google_auth: Optional[GoogleServiceAccountAuth] = None
    if settings.google_service_account_key:
        try:
            google_auth = GoogleServiceAccountAuth.from_key(settings.google_service_account_key)
        except ValueError as e:
            logger.error("GOOGLE_SERVICE_ACCOUNT_KEY is invalid: %s", str(e))
    else:
        logger.warning("GOOGLE_SERVICE_ACCOUNT_KEY not set - sheet sync and Drive folders disabled")

    sheets = GoogleSheetsStore(
        SheetSource(
            spreadsheet_id=settings.google_sheets_id,
            sheet_name=settings.google_sheet_name,
            columns=settings.google_sheet_columns,
        ),
        google_auth,
    )

    dispatcher = NotificationDispatcher(
        mailer=Mailer(
            settings.sendgrid_api_key,
            settings.sendgrid_from_email,
            settings.sendgrid_from_name,
        ),
        notification_email=settings.notification_email,
        cc_email=settings.notification_cc_email,
        sync_recipients=_split(settings.sync_notification_emails),
        zoho=ZohoWebhookClient(
            settings.zoho_webhook_url,
            settings.zoho_webhook_secret,
            settings.zoho_webhook_signing_key,
        ),
        drive=GoogleDriveFolders(
            google_auth,
            settings.google_drive_residential_folder_id,
            settings.google_drive_commercial_folder_id,
        ),
        notify_sync_success=settings.sync_notify_on_success,
    )

    clients = ClientStore(session_factory, ReadCache(settings.client_cache_ttl_seconds))
    return Portal(settings, clients, sheets, dispatcher)
