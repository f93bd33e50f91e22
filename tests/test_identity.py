"""
Tests for client identity resolution - ById / ByRow and the fail-closed rules.
"""
import pytest
from pydantic import TypeAdapter

from clientsync.errors import IdentityConflictError, ValidationError
from clientsync.schemas.identity import (
    ById,
    ByRow,
    ClientIdentity,
    parse_row_id,
    resolve_identity,
    synthetic_row_id,
)


class TestResolveIdentity:
    def test_business_id(self):
        assert resolve_identity("CLI123456ABC") == ById(client_id="CLI123456ABC")

    def test_strips_whitespace(self):
        assert resolve_identity("  CLI1  ") == ById(client_id="CLI1")

    def test_row_placeholder_becomes_by_row(self):
        assert resolve_identity("ROW-7") == ByRow(row_index=7)

    def test_row_placeholder_is_case_insensitive(self):
        assert resolve_identity("row-7") == ByRow(row_index=7)

    def test_row_index_alone(self):
        assert resolve_identity(row_index=4) == ByRow(row_index=4)

    def test_row_placeholder_with_matching_index(self):
        assert resolve_identity("ROW-4", 4) == ByRow(row_index=4)

    def test_business_id_and_row_index_rejected(self):
        """Both could name different rows; refuse rather than guess."""
        with pytest.raises(IdentityConflictError):
            resolve_identity("CLI1", 4)

    def test_row_placeholder_disagreeing_with_index_rejected(self):
        with pytest.raises(IdentityConflictError):
            resolve_identity("ROW-4", 5)

    def test_nothing_given(self):
        with pytest.raises(ValidationError) as exc:
            resolve_identity(None, None)
        assert exc.value.field == "clientId"

    def test_blank_id_counts_as_missing(self):
        with pytest.raises(ValidationError):
            resolve_identity("   ")

    def test_header_row_is_not_a_client(self):
        with pytest.raises(ValidationError):
            resolve_identity(row_index=1)
        with pytest.raises(ValidationError):
            resolve_identity("ROW-1")


class TestIdentityTypes:
    def test_str(self):
        assert str(ById(client_id="CLI9")) == "CLI9"
        assert str(ByRow(row_index=9)) == "ROW-9"

    def test_frozen(self):
        identity = ById(client_id="CLI9")
        with pytest.raises(Exception):
            identity.client_id = "CLI10"

    def test_discriminated_union(self):
        adapter = TypeAdapter(ClientIdentity)
        assert adapter.validate_python({"kind": "row", "row_index": 3}) == ByRow(row_index=3)
        assert adapter.validate_python({"kind": "id", "client_id": "X"}) == ById(client_id="X")

    def test_row_id_helpers(self):
        assert synthetic_row_id(12) == "ROW-12"
        assert parse_row_id("ROW-12") == 12
        assert parse_row_id("CLI12") is None
