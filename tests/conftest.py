"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from clientsync.config import Settings
from clientsync.database import Base
from clientsync.models import AuditLog, Client  # noqa: F401  (registers tables)
from clientsync.schemas.client_record import ClientRecord
from clientsync.schemas.identity import ByRow
from clientsync.services.client_store import ClientStore
from clientsync.services.notifications import NotificationDispatcher, SideEffect
from clientsync.services.portal import Portal
from clientsync.services.read_cache import ReadCache
from clientsync.services.record_mapper import CLIENT_SHEET_SCHEMA, FIELD_COLUMNS, bind_headers, record_to_row

HEADER = CLIENT_SHEET_SCHEMA.header_row()


@pytest.fixture
async def session_factory():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session_factory):
    return ClientStore(session_factory, ReadCache())


@pytest.fixture
def dispatcher():
    """Dispatcher with every channel mocked to succeed."""
    mock = MagicMock(spec=NotificationDispatcher)
    ok = SideEffect(attempted=True, succeeded=True)
    mock.notify_new_lead = AsyncMock(return_value=ok)
    mock.notify_sync_result = AsyncMock(return_value=ok)
    mock.trigger_crm_webhook = AsyncMock(return_value=ok)
    mock.create_drive_folder = AsyncMock(return_value=ok)
    return mock


class FakeSheet:
    """
    In-memory stand-in for GoogleSheetsStore. rows[0] is the header row;
    row N of the sheet is rows[N - 1].
    """

    def __init__(self, rows=None):
        self.rows = [list(r) for r in (rows if rows is not None else [HEADER])]
        self.configured = True
        self.fail_appends_for: set[str] = set()
        self.calls: list[tuple] = []

    async def get_all_rows(self, range=None):
        return [list(r) for r in self.rows]

    async def get_header_row(self):
        return list(self.rows[0]) if self.rows else []

    async def write_header_row(self, header=None):
        header = list(header or HEADER)
        if self.rows:
            self.rows[0] = header
        else:
            self.rows.append(header)
        self.calls.append(("write_header_row",))

    async def update_cell(self, column, row_index, value):
        self.calls.append(("update_cell", column, row_index, value))
        binding = bind_headers(self.rows[0])
        position = next(
            pos for key, pos in binding.positions.items() if binding.letter_for(key) == column
        )
        row = self.rows[row_index - 1]
        while len(row) <= position:
            row.append("")
        row[position] = value

    async def append_record(self, record, binding=None):
        if record.client_id in self.fail_appends_for:
            raise RuntimeError("append rejected")
        binding = binding or bind_headers(self.rows[0])
        self.rows.append(record_to_row(record, binding.column_order()))
        self.calls.append(("append_record", record.client_id))
        return len(self.rows)

    async def find_row_index(self, identity, rows=None):
        if isinstance(identity, ByRow):
            return identity.row_index
        binding = bind_headers(self.rows[0])
        pos = binding.positions["client_id"]
        for index, row in enumerate(self.rows[1:], start=2):
            if pos < len(row) and row[pos] == identity.client_id:
                return index
        return None

    async def update_fields(self, identity, fields):
        mapped = {k: v for k, v in fields.items() if k in FIELD_COLUMNS}
        if not mapped:
            return set()
        row_index = await self.find_row_index(identity)
        if row_index is None:
            return set()
        binding = bind_headers(self.rows[0])
        mapped = {k: v for k, v in mapped.items() if k in binding.positions}
        for name, value in mapped.items():
            await self.update_cell(binding.letter_for(name), row_index, value)
        return set(mapped)

    def cell(self, row_index, key):
        binding = bind_headers(self.rows[0])
        row = self.rows[row_index - 1]
        pos = binding.positions[key]
        return row[pos] if pos < len(row) else ""


@pytest.fixture
def fake_sheet():
    return FakeSheet()


def make_row(**values) -> list[str]:
    """A data row in canonical column order."""
    defaults = {
        "client_id": "",
        "client_full_name": "",
        "email": "",
        "status": "New Lead",
        "invoice_status": "Pending",
        "estimate_status": "Pending",
        "form_emailer_status": "Pending",
    }
    defaults.update(values)
    return [str(defaults.get(key, "")) for key in CLIENT_SHEET_SCHEMA.column_keys()]


def make_record(**overrides) -> ClientRecord:
    data = {
        "client_id": "CLI000001ABC",
        "client_full_name": "Maria Lopez",
        "email": "maria@example.com",
        "phone_number": "555-0100",
        "project_address": "12 Forge St, Austin TX",
    }
    data.update(overrides)
    return ClientRecord.model_validate(data)


@pytest.fixture
def make_sheet():
    """Build a FakeSheet from rows (header included)."""
    return FakeSheet


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def test_settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        google_sheets_id="sheet123",
        log_level="WARNING",
    )


@pytest.fixture
def portal(test_settings, store, fake_sheet, dispatcher):
    """Portal wired to the SQLite store, the in-memory sheet and mocked notifications."""
    return Portal(test_settings, store, fake_sheet, dispatcher)


@pytest.fixture
async def api_client(portal):
    """HTTP client against the app with the test portal installed (no lifespan)."""
    from clientsync.main import create_app
    app = create_app()
    app.state.portal = portal
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.app = app
        yield client
