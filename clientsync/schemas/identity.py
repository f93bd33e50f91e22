"""
Client identity - the single way to name a client across both stores.

ById carries a stable business id (CLI...). ByRow is the fallback for sheet
rows that never received one and are addressed as "ROW-<n>". Identities are
resolved once at the API boundary and passed down unchanged.
"""
import re
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from clientsync.errors import IdentityConflictError, ValidationError

_ROW_ID = re.compile(r"^ROW-(\d+)$", re.IGNORECASE)

# Row 1 is the header row
FIRST_DATA_ROW = 2


class ById(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["id"] = "id"
    client_id: str

    def __str__(self) -> str:
        return self.client_id


class ByRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["row"] = "row"
    row_index: int = Field(ge=FIRST_DATA_ROW)

    def __str__(self) -> str:
        return synthetic_row_id(self.row_index)


ClientIdentity = Annotated[Union[ById, ByRow], Field(discriminator="kind")]


def synthetic_row_id(row_index: int) -> str:
    return f"ROW-{row_index}"


def parse_row_id(value: str) -> Optional[int]:
    """Return n for "ROW-<n>", else None."""
    match = _ROW_ID.match(value.strip())
    return int(match.group(1)) if match else None


def resolve_identity(
    client_id: Optional[str] = None,
    row_index: Optional[int] = None,
) -> Union[ById, ByRow]:
    """
    Resolve request input to exactly one identity.

    A business id together with a row index is rejected: the two could name
    different rows and there is no safe way to pick one.
    """
    client_id = (client_id or "").strip()

    if not client_id and row_index is None:
        raise ValidationError("clientId")

    if client_id:
        synthetic = parse_row_id(client_id)
        if synthetic is None:
            if row_index is not None:
                raise IdentityConflictError(
                    f"clientId {client_id} and rowIndex {row_index} both given"
                )
            return ById(client_id=client_id)
        if row_index is not None and row_index != synthetic:
            raise IdentityConflictError(
                f"clientId {client_id} disagrees with rowIndex {row_index}"
            )
        row_index = synthetic

    if row_index < FIRST_DATA_ROW:
        raise ValidationError("rowIndex", f"Row index must be >= {FIRST_DATA_ROW}")
    return ByRow(row_index=row_index)
