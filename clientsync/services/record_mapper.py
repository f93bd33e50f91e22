"""
Sheet row <-> ClientRecord translation.

The client sheet is a fixed-width row of 27 positional columns (A:AA). Header
cells are bound to fields once per pass by bind_headers():
  1. exact label match (case-insensitive)
  2. "contains" match on each column's tokens, in schema order, against headers
     not yet claimed

A token that matches two unclaimed headers, or a required column left unbound,
raises HeaderSchemaError. The pass fails instead of writing into the wrong column.

CRITICAL: record_to_row() is positional. A row with the wrong cell count shifts
every cell after the gap, so the output length always equals the column order.
"""
import logging
from datetime import datetime
from typing import Optional, Sequence, Union
from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from clientsync.errors import HeaderSchemaError, RowMappingError
from clientsync.schemas.client_record import ClientRecord, canonical_status
from clientsync.schemas.identity import synthetic_row_id

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# Template rows left in the sheet. Substring match, case-insensitive.
EXAMPLE_NAME_PATTERNS = (
    "john doe",
    "jane doe",
    "test client",
    "example client",
    "cli001",
    "cli002",
    "test-client",
    "test-cli",
    "demo",
)

REQUIRED_COLUMNS = ("client_id", "client_full_name", "email")

# Sheet-only columns computed from other record fields
DERIVED_COLUMNS = ("timestamp", "date", "address", "correo")

SHEET_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S"
SHEET_DATE_FORMAT = "%m/%d/%Y"


class SheetColumn(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    letter: str
    tokens: tuple[str, ...]


class HeaderSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: int
    columns: tuple[SheetColumn, ...]

    def header_row(self) -> list[str]:
        return [c.label for c in self.columns]

    def column_keys(self) -> list[str]:
        return [c.key for c in self.columns]

    def get(self, key: str) -> Optional[SheetColumn]:
        for column in self.columns:
            if column.key == key:
                return column
        return None


def _col(key: str, label: str, letter: str, *tokens: str) -> SheetColumn:
    return SheetColumn(key=key, label=label, letter=letter, tokens=tokens)


CLIENT_SHEET_SCHEMA = HeaderSchema(
    version=SCHEMA_VERSION,
    columns=(
        _col("form_emailer_status", "FormEmailer Status", "A", "formemailer", "form emailer"),
        _col("client_id", "Client ID", "B", "client id", "clientid", "client_id"),
        _col("invoice_status", "Invoice Status", "C", "invoice"),
        _col("estimate_status", "Estimate Status", "D", "estimate"),
        _col("status", "Customer Status", "E", "customer status", "status"),
        _col("responsible", "Responsable", "F", "responsable", "responsible"),
        _col("timestamp", "Timestamp", "G", "timestamp"),
        _col("date", "Date", "H", "date"),
        _col("channel", "Channel", "I", "channel"),
        _col("service_type", "Service Type", "J", "service type", "service"),
        _col("client_full_name", "Client Full Name", "K", "full name", "name"),
        _col("email", "E-mail", "L", "e-mail", "email"),
        _col("address", "Address", "M", "address"),
        _col("correo", "Correo", "N", "correo"),
        _col("phone_number", "Customer Phone Number", "O", "phone"),
        _col("customer_type", "Customer Type", "P", "customer type", "type"),
        _col("technical_description", "Technical Description", "Q", "description"),
        _col("price", "Price", "R", "price"),
        _col("company_name", "Company Name", "S", "company"),
        _col("project_address", "Project Address", "T", "project address"),
        _col("service_requested", "Service Requested", "U", "service requested", "requested"),
        _col("urgency_level", "Urgency Level", "V", "urgency"),
        _col("preferred_contact_method", "Preferred Contact Method", "W", "contact method", "preferred contact"),
        _col("additional_notes", "Additional Notes", "X", "notes"),
        _col("budget_range", "Budget Range", "Y", "budget"),
        _col("expected_timeline", "Expected Timeline", "Z", "timeline"),
        _col("special_requirements", "Special Requirements", "AA", "requirements"),
    ),
)

# Fields the write path may change in place, with their canonical column letter.
# Writes go to the column the live header binds, which may differ on a reordered sheet.
# Identity and contact columns are deliberately absent: edits there go through the sheet.
FIELD_COLUMNS = {
    "form_emailer_status": "A",
    "invoice_status": "C",
    "estimate_status": "D",
    "status": "E",
    "responsible": "F",
    "channel": "I",
    "service_type": "J",
    "customer_type": "P",
    "technical_description": "Q",
    "price": "R",
    "service_requested": "U",
    "urgency_level": "V",
    "preferred_contact_method": "W",
    "additional_notes": "X",
    "budget_range": "Y",
    "expected_timeline": "Z",
    "special_requirements": "AA",
}

_RECORD_KEYS = set(ClientRecord.model_fields)


def column_letter(index: int) -> str:
    """0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


class HeaderBinding(BaseModel):
    """Result of binding one header row: field key -> 0-based cell position."""
    model_config = ConfigDict(frozen=True)

    schema_version: int
    header: tuple[str, ...]
    positions: dict[str, int]

    def column_order(self) -> list[Optional[str]]:
        """Field key per header cell, None for cells no column claimed."""
        by_position = {pos: key for key, pos in self.positions.items()}
        return [by_position.get(i) for i in range(len(self.header))]

    def letter_for(self, key: str) -> str:
        if key not in self.positions:
            raise HeaderSchemaError(f"Column '{key}' is not bound in this sheet")
        return column_letter(self.positions[key])


def bind_headers(header_row: Sequence[str], schema: HeaderSchema = CLIENT_SHEET_SCHEMA) -> HeaderBinding:
    """Bind a header row to the schema. Raises HeaderSchemaError on ambiguity."""
    normalized = [str(h or "").strip().lower() for h in header_row]
    positions: dict[str, int] = {}
    claimed: set[int] = set()

    # Pass 1: exact labels
    for column in schema.columns:
        label = column.label.lower()
        for i, header in enumerate(normalized):
            if i not in claimed and header == label:
                positions[column.key] = i
                claimed.add(i)
                break

    # Pass 2: token containment over unclaimed headers
    for column in schema.columns:
        if column.key in positions:
            continue
        for token in column.tokens:
            candidates = [
                i for i, header in enumerate(normalized)
                if i not in claimed and header and token in header
            ]
            if len(candidates) > 1:
                names = ", ".join(repr(header_row[i]) for i in candidates)
                raise HeaderSchemaError(
                    f"Header schema v{schema.version}: '{column.key}' matches "
                    f"several headers ({names}) via '{token}'"
                )
            if candidates:
                positions[column.key] = candidates[0]
                claimed.add(candidates[0])
                break

    missing = [key for key in REQUIRED_COLUMNS if key not in positions]
    if missing:
        raise HeaderSchemaError(
            f"Header schema v{schema.version}: no header for required column(s) {', '.join(missing)}"
        )

    unbound = [header_row[i] for i in range(len(header_row)) if i not in claimed and normalized[i]]
    if unbound:
        logger.debug("Unbound sheet headers ignored: %s", unbound)

    return HeaderBinding(
        schema_version=schema.version,
        header=tuple(str(h or "") for h in header_row),
        positions=positions,
    )


def is_example_name(name: str) -> bool:
    lowered = name.lower()
    return any(pattern in lowered for pattern in EXAMPLE_NAME_PATTERNS)


def parse_sheet_timestamp(value: str) -> Optional[datetime]:
    """Lenient parse of form timestamps ("1/15/2025 10:30:00", ISO, ...)."""
    if not value or not value.strip():
        return None
    try:
        return date_parser.parse(value)
    except (ValueError, OverflowError):
        return None


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    # The Sheets API drops trailing empty cells
    if index is None or index >= len(row):
        return ""
    value = row[index]
    return "" if value is None else str(value).strip()


def row_to_record(
    binding: Union[HeaderBinding, Sequence[str]],
    data_row: Sequence[str],
    row_index: Optional[int] = None,
) -> Optional[ClientRecord]:
    """
    Map one data row to a ClientRecord.

    Returns None for rows without a name and for template/example rows.
    Raises RowMappingError for rows with a name but no email, or with a
    status value outside the known set.
    """
    if not isinstance(binding, HeaderBinding):
        binding = bind_headers(binding)

    values = {key: _cell(data_row, pos) for key, pos in binding.positions.items()}
    position = row_index or 0

    name = values.get("client_full_name", "")
    if not name or is_example_name(name):
        return None

    email = values.get("email") or values.get("correo", "")
    if not email:
        raise RowMappingError(position, f"client '{name}' has no email")

    for status_field in ("status", "invoice_status", "estimate_status", "form_emailer_status"):
        raw = values.get(status_field, "")
        if raw and canonical_status(status_field, raw) is None:
            raise RowMappingError(position, f"unknown {status_field} '{raw}'")

    client_id = values.get("client_id", "")
    if not client_id:
        if row_index is None:
            raise RowMappingError(position, f"client '{name}' has no client id and no row position")
        client_id = synthetic_row_id(row_index)

    fields = {key: value for key, value in values.items() if key in _RECORD_KEYS}
    fields["client_id"] = client_id
    fields["email"] = email
    if not fields.get("project_address"):
        fields["project_address"] = values.get("address", "")
    fields["created_at"] = (
        parse_sheet_timestamp(values.get("timestamp", ""))
        or parse_sheet_timestamp(values.get("date", ""))
    )
    fields["sheet_row_index"] = row_index

    try:
        return ClientRecord.model_validate(fields)
    except PydanticValidationError as e:
        raise RowMappingError(position, str(e)) from e


def _derived(record: ClientRecord, key: str) -> str:
    if key == "timestamp":
        return record.created_at.strftime(SHEET_TIMESTAMP_FORMAT) if record.created_at else ""
    if key == "date":
        return record.created_at.strftime(SHEET_DATE_FORMAT) if record.created_at else ""
    if key == "address":
        return record.project_address
    return record.email  # correo


def record_to_row(record: ClientRecord, column_order: Sequence[Optional[str]]) -> list[str]:
    """
    Render a record as positional cells. Exactly one cell per entry in
    column_order; None entries become empty cells; unknown keys raise ValueError.
    """
    row: list[str] = []
    for key in column_order:
        if key is None:
            row.append("")
        elif key in DERIVED_COLUMNS:
            row.append(_derived(record, key))
        elif key in _RECORD_KEYS:
            value = getattr(record, key)
            row.append("" if value is None else str(value))
        else:
            raise ValueError(f"Unknown column key: {key}")
    return row
