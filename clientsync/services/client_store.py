"""
Relational store - async SQLAlchemy CRUD over the clients and audit_log tables.

Reads go through a process-local ReadCache (5 min TTL). Every write commits
first and then invalidates the cached query family it touches.

If connect() cannot reach the database, the store instance latches as
unavailable and every later call raises StoreConnectionError. A new instance
is needed to try again (the driver's pool still retries on its own).
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional, Union
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, func, text
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clientsync.errors import (
    ClientNotFoundError,
    IdentityConflictError,
    StoreConnectionError,
    ValidationError,
)
from clientsync.models.audit_log import AuditAction, AuditLog
from clientsync.models.client import Client
from clientsync.schemas.client_record import CLIENT_STATUSES, ClientRecord
from clientsync.schemas.identity import ById, ByRow
from clientsync.schemas.sync import SyncResult
from clientsync.services.read_cache import ReadCache

logger = logging.getLogger(__name__)

_CONNECTION_ERRORS = (OperationalError, InterfaceError, DisconnectionError, OSError)

# ClientRecord field -> clients column, where the names differ
_COLUMN_FOR_FIELD = {"responsible": "responsable"}
_SYSTEM_FIELDS = {"client_id", "created_at", "updated_at", "sheet_row_index"}
_DATA_FIELDS = [name for name in ClientRecord.model_fields if name not in _SYSTEM_FIELDS]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_record(row: Client) -> ClientRecord:
    data = {name: getattr(row, _COLUMN_FOR_FIELD.get(name, name)) for name in _DATA_FIELDS}
    data.update(
        client_id=row.client_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        sheet_row_index=row.sheet_row_index,
    )
    return ClientRecord.model_validate(data)


def _apply(row: Client, record: ClientRecord) -> None:
    for name in _DATA_FIELDS:
        setattr(row, _COLUMN_FOR_FIELD.get(name, name), getattr(record, name))
    if record.sheet_row_index is not None:
        row.sheet_row_index = record.sheet_row_index


def _report_to_dict(entry: AuditLog) -> dict:
    report = dict(entry.new_values or {})
    report.update(
        id=entry.id,
        clientId=entry.record_id,
        inspector=entry.user_email,
        createdAt=entry.created_at.isoformat() if entry.created_at else None,
    )
    return report


class ClientStore:
    """Authoritative client persistence."""

    def __init__(self, session_factory: async_sessionmaker, cache: Optional[ReadCache] = None):
        self._session_factory = session_factory
        self.cache = cache or ReadCache()
        self._unavailable_reason: Optional[str] = None

    @property
    def available(self) -> bool:
        return self._unavailable_reason is None

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        if self._unavailable_reason is not None:
            raise StoreConnectionError(f"Database unavailable: {self._unavailable_reason}")
        try:
            async with self._session_factory() as db:
                yield db
        except _CONNECTION_ERRORS as e:
            logger.error("Database operation failed: %s", str(e))
            raise StoreConnectionError(f"Database error: {str(e)}") from e

    async def connect(self) -> None:
        """Verify connectivity once. Failure latches the store as unavailable."""
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
        except (*_CONNECTION_ERRORS, DBAPIError) as e:
            self._unavailable_reason = str(e)
            logger.error("Relational store unavailable: %s", str(e))
            raise StoreConnectionError(f"Database unavailable: {str(e)}") from e
        logger.info("Relational store connected")

    async def ping(self) -> bool:
        """Health probe. Never raises."""
        if not self.available:
            return False
        try:
            async with self._session_factory() as db:
                await db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", str(e))
            return False

    def _invalidate(self, *patterns: str) -> None:
        for pattern in patterns:
            self.cache.invalidate(pattern)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    async def get_client_by_id(self, client_id: str) -> Optional[ClientRecord]:
        key = ReadCache.make_key("clients", "id", client_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached.model_copy()

        async with self._session() as db:
            result = await db.execute(select(Client).where(Client.client_id == client_id))
            row = result.scalar_one_or_none()
        if row is None:
            return None
        record = _to_record(row)
        self.cache.set(key, record)
        return record.model_copy()

    async def get_client_by_identity(self, identity: Union[ById, ByRow]) -> Optional[ClientRecord]:
        if isinstance(identity, ById):
            return await self.get_client_by_id(identity.client_id)
        async with self._session() as db:
            result = await db.execute(
                select(Client).where(Client.sheet_row_index == identity.row_index).limit(1)
            )
            row = result.scalar_one_or_none()
        return _to_record(row) if row is not None else None

    async def list_clients(
        self,
        company: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ClientRecord]:
        """Clients ordered by created_at descending. company='all' means no filter."""
        if company == "all":
            company = None
        key = ReadCache.make_key("clients", "list", company, status, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return [r.model_copy() for r in cached]

        query = select(Client)
        if company:
            query = query.where(Client.company_name == company)
        if status:
            query = query.where(Client.status == status)
        query = query.order_by(Client.created_at.desc(), Client.id.desc())
        if limit:
            query = query.limit(limit)

        async with self._session() as db:
            result = await db.execute(query)
            records = [_to_record(row) for row in result.scalars().all()]
        self.cache.set(key, records)
        return [r.model_copy() for r in records]

    async def get_recent_clients(self, limit: int = 50) -> list[ClientRecord]:
        return await self.list_clients(limit=limit)

    async def count_clients(self, company: Optional[str] = None) -> int:
        if company == "all":
            company = None
        key = ReadCache.make_key("clients", "count", company)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        query = select(func.count()).select_from(Client)
        if company:
            query = query.where(Client.company_name == company)
        async with self._session() as db:
            total = (await db.execute(query)).scalar_one()
        self.cache.set(key, total)
        return total

    async def create_client(
        self, record: ClientRecord, user_email: Optional[str] = None,
    ) -> ClientRecord:
        """Insert a new client. Raises IdentityConflictError if the id exists."""
        record.validate_required()
        now = _utcnow()
        async with self._session() as db:
            existing = await db.execute(select(Client.id).where(Client.client_id == record.client_id))
            if existing.scalar_one_or_none() is not None:
                raise IdentityConflictError(f"Client {record.client_id} already exists")

            row = Client(client_id=record.client_id, created_at=record.created_at or now)
            _apply(row, record)
            row.updated_at = now
            db.add(row)
            db.add(AuditLog(
                action=AuditAction.CREATE_CLIENT,
                table_name="clients",
                record_id=record.client_id,
                new_values=record.model_dump(mode="json", exclude={"created_at", "updated_at"}),
                user_email=user_email,
            ))
            await db.commit()
            saved = _to_record(row)

        self._invalidate("clients")
        logger.info("Client created: %s", saved.client_id, extra={"client_id": saved.client_id})
        return saved

    async def upsert_client(self, record: ClientRecord) -> ClientRecord:
        """
        Insert if client_id is absent, else overwrite the data columns.
        created_at is never changed once set; updated_at always refreshes.
        """
        now = _utcnow()
        async with self._session() as db:
            result = await db.execute(select(Client).where(Client.client_id == record.client_id))
            row = result.scalar_one_or_none()
            if row is None:
                row = Client(client_id=record.client_id, created_at=record.created_at or now)
                db.add(row)
            _apply(row, record)
            row.updated_at = now
            await db.commit()
            saved = _to_record(row)

        self._invalidate("clients")
        return saved

    async def update_fields(
        self, client_id: str, fields: dict[str, Any], user_email: Optional[str] = None,
    ) -> ClientRecord:
        """
        Apply a partial update (record field names). The merged record is
        validated before anything is written. Writes an UPDATE_CLIENT audit row.
        """
        unknown = [name for name in fields if name not in _DATA_FIELDS]
        if unknown:
            raise ValidationError(unknown[0], f"Field cannot be updated: {unknown[0]}")

        async with self._session() as db:
            result = await db.execute(select(Client).where(Client.client_id == client_id))
            row = result.scalar_one_or_none()
            if row is None:
                raise ClientNotFoundError(f"Client {client_id} not found")

            current = _to_record(row)
            try:
                merged = ClientRecord.model_validate({**current.model_dump(), **fields})
            except PydanticValidationError as e:
                loc = e.errors()[0]["loc"]
                raise ValidationError(str(loc[0]) if loc else "updateData", str(e)) from e

            old_values = {name: getattr(current, name) for name in fields}
            new_values = {name: getattr(merged, name) for name in fields}
            for name in fields:
                setattr(row, _COLUMN_FOR_FIELD.get(name, name), getattr(merged, name))
            row.updated_at = _utcnow()
            db.add(AuditLog(
                action=AuditAction.UPDATE_CLIENT,
                table_name="clients",
                record_id=client_id,
                old_values=old_values,
                new_values=new_values,
                user_email=user_email,
            ))
            await db.commit()
            saved = _to_record(row)

        self._invalidate("clients")
        logger.info(
            "Client %s updated: %s", client_id, ", ".join(sorted(fields)),
            extra={"client_id": client_id},
        )
        return saved

    async def set_sheet_row_index(self, client_id: str, row_index: int) -> None:
        async with self._session() as db:
            result = await db.execute(select(Client).where(Client.client_id == client_id))
            row = result.scalar_one_or_none()
            if row is None:
                raise ClientNotFoundError(f"Client {client_id} not found")
            row.sheet_row_index = row_index
            await db.commit()
        self._invalidate("clients")

    # ------------------------------------------------------------------
    # Reports (stored as CREATE_REPORT audit rows)
    # ------------------------------------------------------------------

    async def add_report(self, report: dict, inspector_email: Optional[str] = None) -> dict:
        client_id = str(report.get("clientId") or report.get("client_id") or "")
        async with self._session() as db:
            entry = AuditLog(
                action=AuditAction.CREATE_REPORT,
                table_name="reports",
                record_id=client_id or None,
                new_values=report,
                user_email=inspector_email,
            )
            db.add(entry)
            await db.commit()
            saved = _report_to_dict(entry)

        self._invalidate("reports")
        logger.info("Report stored for client %s", client_id or "-", extra={"client_id": client_id})
        return saved

    async def list_reports(self, client_id: Optional[str] = None, limit: int = 100) -> list[dict]:
        key = ReadCache.make_key("reports", "list", client_id, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return list(cached)

        query = select(AuditLog).where(AuditLog.action == AuditAction.CREATE_REPORT)
        if client_id:
            query = query.where(AuditLog.record_id == client_id)
        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)

        async with self._session() as db:
            result = await db.execute(query)
            reports = [_report_to_dict(entry) for entry in result.scalars().all()]
        self.cache.set(key, reports)
        return list(reports)

    async def get_statistics(self, company: Optional[str] = None) -> dict:
        """Dashboard counters: clients by status plus report totals."""
        if company == "all":
            company = None
        key = ReadCache.make_key("stats", "clients", "reports", company)
        cached = self.cache.get(key)
        if cached is not None:
            return dict(cached)

        status_query = select(Client.status, func.count()).group_by(Client.status)
        if company:
            status_query = status_query.where(Client.company_name == company)

        now = _utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        reports_query = select(func.count()).select_from(AuditLog).where(
            AuditLog.action == AuditAction.CREATE_REPORT
        )

        async with self._session() as db:
            by_status = {status: count for status, count in (await db.execute(status_query)).all()}
            total_reports = (await db.execute(reports_query)).scalar_one()
            this_month = (await db.execute(
                reports_query.where(AuditLog.created_at >= month_start)
            )).scalar_one()

        stats = {
            "totalClients": sum(by_status.values()),
            "byStatus": {status: by_status.get(status, 0) for status in CLIENT_STATUSES},
            "pendingClients": by_status.get("New Lead", 0),
            "activeClients": by_status.get("In Progress", 0),
            "completedClients": by_status.get("Completed", 0),
            "totalReports": total_reports,
            "thisMonth": this_month,
        }
        self.cache.set(key, stats)
        return dict(stats)

    # ------------------------------------------------------------------
    # Sync pass history (stored as SYNC_PASS audit rows)
    # ------------------------------------------------------------------

    async def record_sync_pass(self, result: SyncResult) -> None:
        async with self._session() as db:
            db.add(AuditLog(
                action=AuditAction.SYNC_PASS,
                table_name="clients",
                record_id=result.kind,
                new_values=result.to_api(),
            ))
            await db.commit()

    async def last_sync_pass(self) -> Optional[SyncResult]:
        async with self._session() as db:
            result = await db.execute(
                select(AuditLog)
                .where(AuditLog.action == AuditAction.SYNC_PASS)
                .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
                .limit(1)
            )
            entry = result.scalar_one_or_none()
        if entry is None or not entry.new_values:
            return None
        return SyncResult.model_validate(entry.new_values)
