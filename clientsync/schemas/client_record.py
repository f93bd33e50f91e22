"""
ClientRecord - the canonical client entity shared by the sheet, the database
and the HTTP API.

Field names are snake_case in Python and camelCase on the wire (aliases).
Blank input values fall back to the field default, so a form that submits
urgencyLevel="" gets "Medium" like one that omits it.
"""
import random
import string
import time
from datetime import datetime
from typing import Literal, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from clientsync.errors import ValidationError

DEFAULT_COMPANY = "IRIAS Ironworks"

CLIENT_STATUSES = (
    "New Lead",
    "Contacted",
    "Quoted",
    "Pending Inspection",
    "In Progress",
    "Completed",
    "Cancelled",
)
INVOICE_STATUSES = ("Pending", "Sent", "Paid")
ESTIMATE_STATUSES = ("Pending", "Sent", "Accepted", "Rejected")
FORM_EMAILER_STATUSES = ("Pending", "Sent", "Failed")

ClientStatus = Literal[
    "New Lead", "Contacted", "Quoted", "Pending Inspection", "In Progress", "Completed", "Cancelled"
]
InvoiceStatus = Literal["Pending", "Sent", "Paid"]
EstimateStatus = Literal["Pending", "Sent", "Accepted", "Rejected"]
FormEmailerStatus = Literal["Pending", "Sent", "Failed"]

_STATUS_CHOICES = {
    "status": CLIENT_STATUSES,
    "invoice_status": INVOICE_STATUSES,
    "estimate_status": ESTIMATE_STATUSES,
    "form_emailer_status": FORM_EMAILER_STATUSES,
}

REQUIRED_FIELDS = ("client_full_name", "email")

_BASE36 = string.digits + string.ascii_uppercase


def generate_client_id() -> str:
    """CLI + last 6 digits of the epoch-millis clock + 3 random base36 chars."""
    millis = str(int(time.time() * 1000))[-6:]
    suffix = "".join(random.choices(_BASE36, k=3))
    return f"CLI{millis}{suffix}"


def canonical_status(field: str, value: str) -> Optional[str]:
    """Return the canonical spelling of a status value, or None if unknown."""
    for choice in _STATUS_CHOICES[field]:
        if choice.lower() == value.strip().lower():
            return choice
    return None


class ClientRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    client_id: str = ""

    # Categorical
    company_name: str = Field(
        default=DEFAULT_COMPANY, validation_alias=AliasChoices("companyName", "company", "company_name")
    )
    service_type: str = ""
    urgency_level: str = "Medium"
    customer_type: str = "Residential"
    channel: str = "Website"
    responsible: str = Field(
        default="", validation_alias=AliasChoices("responsible", "responsable")
    )

    # Identity / contact
    client_full_name: str = ""
    email: str = ""
    phone_number: str = Field(
        default="",
        validation_alias=AliasChoices("phoneNumber", "customerPhoneNumber", "phone", "phone_number"),
    )
    project_address: str = Field(
        default="", validation_alias=AliasChoices("projectAddress", "address", "project_address")
    )

    # Free text
    technical_description: str = ""
    service_requested: str = ""
    price: str = ""
    budget_range: str = ""
    expected_timeline: str = ""
    preferred_contact_method: str = "Phone"
    additional_notes: str = ""
    special_requirements: str = ""

    # Workflow
    status: ClientStatus = "New Lead"
    invoice_status: InvoiceStatus = "Pending"
    estimate_status: EstimateStatus = "Pending"
    form_emailer_status: FormEmailerStatus = "Pending"

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    sheet_row_index: Optional[int] = None

    @model_validator(mode="before")
    @classmethod
    def _blank_to_default(cls, data):
        if isinstance(data, dict):
            return {
                key: value for key, value in data.items()
                if value is not None and not (isinstance(value, str) and not value.strip())
            }
        return data

    @field_validator("status", "invoice_status", "estimate_status", "form_emailer_status", mode="before")
    @classmethod
    def _canonical_status(cls, value, info):
        if isinstance(value, str):
            return canonical_status(info.field_name, value) or value
        return value

    @field_validator(
        "client_id", "client_full_name", "email", "phone_number", "price", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value):
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @property
    def has_synthetic_id(self) -> bool:
        return not self.client_id or self.client_id.upper().startswith("ROW-")

    def validate_required(self) -> "ClientRecord":
        """Raise ValidationError naming the first missing required field."""
        for field in REQUIRED_FIELDS:
            if not getattr(self, field).strip():
                raise ValidationError(field)
        return self

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# Fields set by the system, never by an update request
_READ_ONLY_FIELDS = {"client_id", "created_at", "updated_at", "sheet_row_index"}

# Legacy form/API names
_EXTRA_UPDATE_ALIASES = {
    "description": "technical_description",
    "customerStatus": "status",
    "urgency": "urgency_level",
    "serviceRequested": "service_requested",
}


def _update_aliases() -> dict[str, str]:
    aliases = dict(_EXTRA_UPDATE_ALIASES)
    for name, info in ClientRecord.model_fields.items():
        if name in _READ_ONLY_FIELDS:
            continue
        aliases[name] = name
        aliases[to_camel(name)] = name
        if isinstance(info.validation_alias, AliasChoices):
            for choice in info.validation_alias.choices:
                aliases[str(choice)] = name
    return aliases


UPDATE_ALIASES = _update_aliases()


def normalize_update_fields(data: dict) -> dict:
    """
    Translate an update payload (camelCase or snake_case keys) to record field
    names. Unknown or read-only keys raise ValidationError.
    """
    fields = {}
    for key, value in data.items():
        name = UPDATE_ALIASES.get(key)
        if name is None:
            raise ValidationError(key, f"Field cannot be updated: {key}")
        if value is None or (isinstance(value, str) and not value.strip()):
            if name in _STATUS_CHOICES or name in REQUIRED_FIELDS:
                raise ValidationError(key, f"Field cannot be blank: {key}")
            value = ""
        fields[name] = value
    return fields


def validate_update_fields(fields: dict) -> dict:
    """
    Check record-field values the way a stored ClientRecord would and return
    their canonical form ("quoted" -> "Quoted"). Blank values stay blank.
    Raises ValidationError naming the first bad field.
    """
    for name in fields:
        if name not in ClientRecord.model_fields or name in _READ_ONLY_FIELDS:
            raise ValidationError(name, f"Field cannot be updated: {name}")
    present = {
        name: value for name, value in fields.items()
        if value is not None and not (isinstance(value, str) and not value.strip())
    }
    try:
        checked = ClientRecord.model_validate(present)
    except PydanticValidationError as e:
        loc = e.errors()[0]["loc"]
        raise ValidationError(str(loc[0]) if loc else "updateData", str(e)) from e
    return {name: getattr(checked, name) if name in present else "" for name in fields}
