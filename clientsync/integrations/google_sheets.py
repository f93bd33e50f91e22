"""
Google Sheets store - thin adapter over the Sheets v4 REST API.

Every read re-fetches the range; nothing is cached here. FIELD_COLUMNS limits
which fields may be updated, but every write lands in the column the live
header binds the field to. Updates touching two or more fields of one client
are sent as a single batchUpdate so an office edit cannot land between them.

Errors:
- network failures and 5xx -> StoreConnectionError
- rejected writes (bad range, permission denied) -> WriteError
"""
import logging
import re
from typing import Any, Optional, Sequence, Union
from urllib.parse import quote
import httpx
from pydantic import BaseModel, ConfigDict

from clientsync.errors import StoreConnectionError, WriteError
from clientsync.integrations.google_auth import GoogleServiceAccountAuth
from clientsync.schemas.client_record import ClientRecord
from clientsync.schemas.identity import ById, ByRow
from clientsync.services.record_mapper import (
    CLIENT_SHEET_SCHEMA,
    FIELD_COLUMNS,
    HeaderBinding,
    bind_headers,
    record_to_row,
)

logger = logging.getLogger(__name__)

SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
VALUE_INPUT_OPTION = "USER_ENTERED"

_UPDATED_ROW = re.compile(r"![A-Z]+(\d+)")


class SheetSource(BaseModel):
    """Which spreadsheet, tab and columns the store talks to. Immutable."""
    model_config = ConfigDict(frozen=True)

    spreadsheet_id: str
    sheet_name: str = "Form Responses 1"
    columns: str = "A:AA"

    @property
    def data_range(self) -> str:
        return f"'{self.sheet_name}'!{self.columns}"

    @property
    def header_range(self) -> str:
        return f"'{self.sheet_name}'!1:1"

    def cell_range(self, column: str, row_index: int) -> str:
        return f"'{self.sheet_name}'!{column}{row_index}"

    def with_data_source(
        self,
        spreadsheet_id: Optional[str] = None,
        sheet_name: Optional[str] = None,
        columns: Optional[str] = None,
    ) -> "SheetSource":
        """Return a new source; this one is left untouched."""
        return self.model_copy(update={
            "spreadsheet_id": spreadsheet_id or self.spreadsheet_id,
            "sheet_name": sheet_name or self.sheet_name,
            "columns": columns or self.columns,
        })


class CellUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    row_index: int
    value: str


class GoogleSheetsStore:
    """Client sheet access for one SheetSource."""

    def __init__(
        self, source: SheetSource, auth: Optional[GoogleServiceAccountAuth], timeout: float = 30.0,
    ):
        self.source = source
        self.auth = auth
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return self.auth is not None and bool(self.source.spreadsheet_id)

    def with_data_source(
        self, spreadsheet_id: Optional[str] = None, sheet_name: Optional[str] = None,
    ) -> "GoogleSheetsStore":
        return GoogleSheetsStore(
            self.source.with_data_source(spreadsheet_id, sheet_name), self.auth, self.timeout,
        )

    async def _request(self, method: str, path: str, write: bool = False, **kwargs) -> dict:
        """Make an authenticated request against the spreadsheet."""
        if not self.configured:
            raise StoreConnectionError("Google Sheets not configured")
        token = await self.auth.get_token()
        url = f"{SHEETS_API_BASE}/{self.source.spreadsheet_id}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers={
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                    **kwargs,
                )
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Sheets API %s %s failed: HTTP %s", method, path, status)
            if write and status < 500:
                raise WriteError(f"Sheet write rejected (HTTP {status}): {e.response.text}") from e
            raise StoreConnectionError(f"Sheets API error (HTTP {status})") from e
        except httpx.HTTPError as e:
            logger.error("Sheets API %s %s unreachable: %s", method, path, str(e))
            raise StoreConnectionError(f"Sheets API unreachable: {str(e)}") from e

    def _values_path(self, a1_range: str) -> str:
        return f"/values/{quote(a1_range, safe='')}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all_rows(self, range: Optional[str] = None) -> list[list[str]]:
        """All rows of the range, header included. Always a fresh read."""
        data = await self._request("GET", self._values_path(range or self.source.data_range))
        rows = data.get("values", [])
        logger.debug("Read %d rows from sheet '%s'", len(rows), self.source.sheet_name)
        return [[str(cell) for cell in row] for row in rows]

    async def get_header_row(self) -> list[str]:
        rows = await self.get_all_rows(self.source.header_range)
        return rows[0] if rows else []

    async def find_row_index(
        self,
        identity: Union[ById, ByRow],
        rows: Optional[Sequence[Sequence[str]]] = None,
    ) -> Optional[int]:
        """
        1-based row of the client. ByRow resolves directly; ById scans the
        identity column of a fresh read (or the rows passed in).
        """
        if isinstance(identity, ByRow):
            if rows is not None and not 1 < identity.row_index <= len(rows):
                return None
            return identity.row_index

        if rows is None:
            rows = await self.get_all_rows()
        if not rows:
            return None
        position = bind_headers(rows[0]).positions["client_id"]
        for offset, row in enumerate(rows[1:], start=2):
            if position < len(row) and str(row[position]).strip() == identity.client_id:
                return offset
        return None

    async def client_exists(self, client_id: str) -> bool:
        return await self.find_row_index(ById(client_id=client_id)) is not None

    async def list_tabs(self) -> list[dict]:
        data = await self._request("GET", "", params={"fields": "sheets.properties"})
        tabs = []
        for sheet in data.get("sheets", []):
            props = sheet.get("properties", {})
            grid = props.get("gridProperties", {})
            tabs.append({
                "sheetId": props.get("sheetId"),
                "title": props.get("title"),
                "index": props.get("index"),
                "rowCount": grid.get("rowCount"),
                "columnCount": grid.get("columnCount"),
            })
        return tabs

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append_row(self, row: Sequence[Any], range: Optional[str] = None) -> Optional[int]:
        """Append one row. Returns its 1-based index when the API reports it."""
        data = await self._request(
            "POST",
            f"{self._values_path(range or self.source.data_range)}:append",
            write=True,
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"values": [["" if v is None else str(v) for v in row]]},
        )
        updated_range = data.get("updates", {}).get("updatedRange", "")
        match = _UPDATED_ROW.search(updated_range)
        return int(match.group(1)) if match else None

    async def update_cell(self, column: str, row_index: int, value: Any) -> None:
        await self._request(
            "PUT",
            self._values_path(self.source.cell_range(column, row_index)),
            write=True,
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"values": [["" if value is None else str(value)]]},
        )

    async def batch_update_cells(self, updates: Sequence[CellUpdate]) -> None:
        if not updates:
            return
        await self._request(
            "POST",
            "/values:batchUpdate",
            write=True,
            json={
                "valueInputOption": VALUE_INPUT_OPTION,
                "data": [
                    {
                        "range": self.source.cell_range(u.column, u.row_index),
                        "values": [[u.value]],
                    }
                    for u in updates
                ],
            },
        )

    async def update_fields(self, identity: Union[ById, ByRow], fields: dict[str, Any]) -> set[str]:
        """
        Write record fields into the client's row. Only fields listed in
        FIELD_COLUMNS are updatable; each one is written to the column the live
        header binds it to, never to a fixed letter. Updatable fields the sheet
        has no column for are skipped. Returns the set of fields actually written.
        """
        mapped = {name: value for name, value in fields.items() if name in FIELD_COLUMNS}
        skipped = set(fields) - set(mapped)
        if skipped:
            logger.debug("No sheet column for fields: %s", ", ".join(sorted(skipped)))
        if not mapped:
            return set()

        # Header and identity lookup share one read
        rows = await self.get_all_rows()
        if not rows:
            logger.warning("Sheet '%s' is empty, nothing updated", self.source.sheet_name)
            return set()
        binding = bind_headers(rows[0])

        row_index = await self.find_row_index(identity, rows)
        if row_index is None:
            logger.warning("Client %s not found in sheet, nothing updated", identity)
            return set()

        unbound = {name for name in mapped if name not in binding.positions}
        if unbound:
            logger.warning("Sheet has no column for %s, skipped", ", ".join(sorted(unbound)))
            mapped = {name: value for name, value in mapped.items() if name not in unbound}
            if not mapped:
                return set()

        if len(mapped) == 1:
            name, value = next(iter(mapped.items()))
            await self.update_cell(binding.letter_for(name), row_index, value)
        else:
            await self.batch_update_cells([
                CellUpdate(column=binding.letter_for(name), row_index=row_index,
                           value="" if value is None else str(value))
                for name, value in mapped.items()
            ])
        logger.info(
            "Sheet row %d updated: %s", row_index, ", ".join(sorted(mapped)),
            extra={"client_id": str(identity)},
        )
        return set(mapped)

    async def write_header_row(self, header: Optional[Sequence[str]] = None) -> None:
        """Write the canonical header into row 1."""
        header = list(header or CLIENT_SHEET_SCHEMA.header_row())
        await self._request(
            "PUT",
            self._values_path(self.source.header_range),
            write=True,
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"values": [header]},
        )
        logger.info("Header row written to sheet '%s'", self.source.sheet_name)

    async def append_record(
        self, record: ClientRecord, binding: Optional[HeaderBinding] = None,
    ) -> Optional[int]:
        """
        Append a record in the sheet's own column order. Writes the canonical
        header first when the sheet is empty.
        """
        if binding is None:
            header = await self.get_header_row()
            if not header:
                await self.write_header_row()
                header = CLIENT_SHEET_SCHEMA.header_row()
            binding = bind_headers(header)
        return await self.append_row(record_to_row(record, binding.column_order()))

    async def create_tab(self, title: str) -> dict:
        data = await self._request(
            "POST",
            ":batchUpdate",
            write=True,
            json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )
        replies = data.get("replies") or [{}]
        props = replies[0].get("addSheet", {}).get("properties", {})
        logger.info("Sheet tab created: %s", title)
        return {"sheetId": props.get("sheetId"), "title": props.get("title", title)}
