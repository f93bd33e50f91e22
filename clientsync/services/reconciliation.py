"""
Reconciliation engine - two-way sync between the client sheet and the
relational mirror, joined on client_id.

Passes:
- import: sheet -> database. Sheet values win for every mapped field.
- export: database -> sheet. The most recent N clients missing from the sheet
  are appended.
- full: import, then export. Never concurrently.

Conflict policy is last-writer-wins per direction with no timestamp
comparison. A field edited in both stores between passes keeps the sheet's
value after the next import.

Failure handling:
- per-row problems (RowMappingError, IdentityConflictError, rejected writes)
  are counted in SyncResult.errors and the pass moves on
- StoreConnectionError and HeaderSchemaError abort the pass and propagate

CRITICAL: at most one pass runs at a time. A second trigger while one is in
flight raises SyncInProgressError immediately; nothing is queued.
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Union

from clientsync.errors import (
    ClientNotFoundError,
    IdentityConflictError,
    RowMappingError,
    StoreConnectionError,
    SyncInProgressError,
)
from clientsync.integrations.google_sheets import GoogleSheetsStore
from clientsync.schemas.client_record import ClientRecord, generate_client_id, validate_update_fields
from clientsync.schemas.identity import ById, ByRow
from clientsync.schemas.sync import SyncKind, SyncResult
from clientsync.services.client_store import ClientStore
from clientsync.services.notifications import NotificationDispatcher
from clientsync.services.record_mapper import CLIENT_SHEET_SCHEMA, HeaderBinding, bind_headers, row_to_record

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_LIMIT = 50

_IMPORTED = "imported"
_UPDATED = "updated"
_SKIPPED = "skipped"


class ReconciliationEngine:
    def __init__(
        self,
        sheets: GoogleSheetsStore,
        clients: ClientStore,
        dispatcher: NotificationDispatcher,
        export_limit: int = DEFAULT_EXPORT_LIMIT,
    ):
        self.sheets = sheets
        self.clients = clients
        self.dispatcher = dispatcher
        self.export_limit = export_limit
        self._running_kind: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._running_kind is not None

    @asynccontextmanager
    async def _exclusive(self, kind: str) -> AsyncIterator[None]:
        # No await between the check and the set: atomic on one event loop
        if self._running_kind is not None:
            raise SyncInProgressError(f"A {self._running_kind} sync is already running")
        self._running_kind = kind
        try:
            yield
        finally:
            self._running_kind = None

    # ------------------------------------------------------------------
    # Public passes
    # ------------------------------------------------------------------

    async def import_from_sheet(self) -> SyncResult:
        async with self._exclusive(SyncKind.IMPORT):
            return await self._import_pass()

    async def export_to_sheet(self) -> SyncResult:
        async with self._exclusive(SyncKind.EXPORT):
            return await self._export_pass()

    async def full_sync(self) -> SyncResult:
        async with self._exclusive(SyncKind.FULL):
            result = SyncResult(kind=SyncKind.FULL)
            result.absorb(await self._import_pass())
            result.absorb(await self._export_pass())
            result.finish()
            logger.info("Full sync finished: %s (%d ms)", result.message, result.duration_ms)
            return result

    # ------------------------------------------------------------------
    # Import: sheet -> database
    # ------------------------------------------------------------------

    async def _import_pass(self) -> SyncResult:
        result = SyncResult(kind=SyncKind.IMPORT)
        rows = await self.sheets.get_all_rows()
        if len(rows) < 2:
            logger.info("Import: sheet has no data rows")
            return result.finish("Sheet has no data rows")

        binding = bind_headers(rows[0])
        seen: dict[str, int] = {}

        for row_index, row in enumerate(rows[1:], start=2):
            try:
                outcome = await self._import_row(binding, row, row_index, seen)
            except StoreConnectionError:
                raise
            except RowMappingError as e:
                result.record_error(str(e))
                logger.warning("Import skipped malformed row: %s", str(e))
                continue
            except Exception as e:
                result.record_error(f"Row {row_index}: {str(e)}")
                logger.error("Import failed for row %d: %s", row_index, str(e))
                continue

            if outcome == _IMPORTED:
                result.imported += 1
            elif outcome == _UPDATED:
                result.updated += 1
            else:
                result.skipped += 1

        result.finish()
        logger.info("Import finished: %s", result.message)
        return result

    async def _import_row(
        self, binding: HeaderBinding, row: list[str], row_index: int, seen: dict[str, int],
    ) -> str:
        record = row_to_record(binding, row, row_index)
        if record is None:
            return _SKIPPED

        if record.has_synthetic_id:
            record.client_id = await self._assign_client_id(binding, row_index)

        if record.client_id in seen:
            raise IdentityConflictError(
                f"client id {record.client_id} already used by row {seen[record.client_id]}"
            )
        seen[record.client_id] = row_index

        existing = await self.clients.get_client_by_id(record.client_id)
        saved = await self.clients.upsert_client(record)
        if existing is None:
            logger.info(
                "Imported new client %s from row %d", saved.client_id, row_index,
                extra={"client_id": saved.client_id},
            )
            await self.dispatcher.notify_new_lead(saved)
            return _IMPORTED
        return _UPDATED

    async def _assign_client_id(self, binding: HeaderBinding, row_index: int) -> str:
        """Give a sheet row without an id a permanent one, written to the sheet first."""
        client_id = generate_client_id()
        await self.sheets.update_cell(binding.letter_for("client_id"), row_index, client_id)
        logger.info("Assigned client id %s to sheet row %d", client_id, row_index)
        return client_id

    # ------------------------------------------------------------------
    # Export: database -> sheet
    # ------------------------------------------------------------------

    async def _export_pass(self) -> SyncResult:
        result = SyncResult(kind=SyncKind.EXPORT)
        records = await self.clients.get_recent_clients(self.export_limit)

        rows = await self.sheets.get_all_rows()
        if not rows:
            await self.sheets.write_header_row()
            rows = [CLIENT_SHEET_SCHEMA.header_row()]
        binding = bind_headers(rows[0])

        id_position = binding.positions["client_id"]
        present = {
            row[id_position].strip() for row in rows[1:]
            if id_position < len(row) and row[id_position].strip()
        }

        # Oldest first so appended rows stay in creation order
        for record in reversed(records):
            if record.client_id in present:
                continue
            try:
                row_index = await self.sheets.append_record(record, binding)
                if row_index is not None:
                    await self.clients.set_sheet_row_index(record.client_id, row_index)
            except StoreConnectionError:
                raise
            except Exception as e:
                result.record_error(f"Export {record.client_id}: {str(e)}")
                logger.error("Export failed for %s: %s", record.client_id, str(e))
                continue
            present.add(record.client_id)
            result.synced_to_sheet += 1

        result.finish()
        logger.info("Export finished: %s", result.message)
        return result

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def push_update(
        self,
        identity: Union[ById, ByRow],
        fields: dict[str, Any],
        user_email: Optional[str] = None,
    ) -> dict:
        """
        Apply a field update to both stores. Values are validated before either
        store is touched, and the sheet receives the same canonical values the
        database holds. The database write is authoritative and propagates
        errors; the sheet write is best-effort.
        """
        values = validate_update_fields(fields)
        record: Optional[ClientRecord] = await self.clients.get_client_by_identity(identity)
        if record is not None:
            record = await self.clients.update_fields(record.client_id, values, user_email)
            values = {name: getattr(record, name) for name in values}

        sheet_fields: set[str] = set()
        sheet_error: Optional[str] = None
        try:
            sheet_fields = await self.sheets.update_fields(identity, values)
        except Exception as e:
            sheet_error = str(e)
            logger.warning("Sheet update failed for %s: %s", identity, str(e))

        if record is None and not sheet_fields:
            raise ClientNotFoundError(f"Client {identity} not found")

        return {
            "clientId": record.client_id if record else str(identity),
            "client": record.to_api() if record else None,
            "relationalUpdated": record is not None,
            "sheetUpdated": bool(sheet_fields),
            "sheetFields": sorted(sheet_fields),
            "sheetError": sheet_error,
        }
