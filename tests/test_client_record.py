"""
Tests for ClientRecord - defaults, aliases, status canonicalization, update payloads.
"""
import re
import pytest

from clientsync.errors import ValidationError
from clientsync.schemas.client_record import (
    DEFAULT_COMPANY,
    ClientRecord,
    canonical_status,
    generate_client_id,
    normalize_update_fields,
    validate_update_fields,
)


class TestDefaults:
    def test_defaults_applied(self):
        record = ClientRecord(client_full_name="Ana", email="a@x.com")
        assert record.company_name == DEFAULT_COMPANY
        assert record.urgency_level == "Medium"
        assert record.customer_type == "Residential"
        assert record.channel == "Website"
        assert record.preferred_contact_method == "Phone"
        assert record.status == "New Lead"
        assert record.invoice_status == "Pending"

    def test_blank_values_fall_back_to_defaults(self):
        record = ClientRecord.model_validate({"urgencyLevel": "", "channel": "  ", "status": None})
        assert record.urgency_level == "Medium"
        assert record.channel == "Website"
        assert record.status == "New Lead"


class TestAliases:
    def test_camel_case_input(self):
        record = ClientRecord.model_validate({
            "clientFullName": "Ana Ruiz",
            "email": "ana@example.com",
            "projectAddress": "1 Main",
            "phoneNumber": "555",
        })
        assert record.client_full_name == "Ana Ruiz"
        assert record.project_address == "1 Main"
        assert record.phone_number == "555"

    def test_legacy_names(self):
        record = ClientRecord.model_validate({
            "company": "Acme",
            "responsable": "Luis",
            "customerPhoneNumber": "555-1",
            "address": "2 Elm",
        })
        assert record.company_name == "Acme"
        assert record.responsible == "Luis"
        assert record.phone_number == "555-1"
        assert record.project_address == "2 Elm"

    def test_to_api_is_camel_case(self):
        data = ClientRecord(client_id="CLI1", client_full_name="Ana").to_api()
        assert data["clientId"] == "CLI1"
        assert data["clientFullName"] == "Ana"
        assert "client_full_name" not in data

    def test_numeric_phone_and_price_coerced(self):
        record = ClientRecord.model_validate({"phone": 5550100, "price": 1200})
        assert record.phone_number == "5550100"
        assert record.price == "1200"


class TestStatus:
    def test_status_case_canonicalized(self):
        assert ClientRecord(status="in progress").status == "In Progress"

    def test_unknown_status_rejected(self):
        with pytest.raises(Exception):
            ClientRecord(status="Maybe")

    def test_canonical_status(self):
        assert canonical_status("invoice_status", " paid ") == "Paid"
        assert canonical_status("estimate_status", "Paid") is None


class TestRequiredFields:
    def test_missing_name(self):
        with pytest.raises(ValidationError) as exc:
            ClientRecord(email="a@x.com").validate_required()
        assert exc.value.field == "client_full_name"

    def test_missing_email(self):
        with pytest.raises(ValidationError) as exc:
            ClientRecord(client_full_name="Ana").validate_required()
        assert exc.value.field == "email"


class TestClientId:
    def test_format(self):
        assert re.fullmatch(r"CLI\d{6}[0-9A-Z]{3}", generate_client_id())

    def test_synthetic(self):
        assert ClientRecord().has_synthetic_id
        assert ClientRecord(client_id="ROW-4").has_synthetic_id
        assert not ClientRecord(client_id="CLI1").has_synthetic_id


class TestNormalizeUpdateFields:
    def test_camel_and_snake_keys(self):
        fields = normalize_update_fields({"urgencyLevel": "High", "additional_notes": "gate"})
        assert fields == {"urgency_level": "High", "additional_notes": "gate"}

    def test_legacy_keys(self):
        fields = normalize_update_fields({"description": "rails", "customerStatus": "Quoted"})
        assert fields == {"technical_description": "rails", "status": "Quoted"}

    def test_read_only_key_rejected(self):
        with pytest.raises(ValidationError) as exc:
            normalize_update_fields({"clientId": "CLI2"})
        assert exc.value.field == "clientId"

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            normalize_update_fields({"favouriteColour": "red"})

    def test_blank_status_rejected(self):
        with pytest.raises(ValidationError):
            normalize_update_fields({"status": ""})

    def test_blank_free_text_clears(self):
        assert normalize_update_fields({"additionalNotes": None}) == {"additional_notes": ""}


class TestValidateUpdateFields:
    def test_statuses_become_canonical(self):
        fields = validate_update_fields({"status": "quoted", "invoice_status": "PAID"})
        assert fields == {"status": "Quoted", "invoice_status": "Paid"}

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError) as exc:
            validate_update_fields({"status": "Bogus"})
        assert exc.value.field == "status"

    def test_blank_stays_blank(self):
        """A cleared field is not replaced by the record default."""
        assert validate_update_fields({"urgency_level": "", "price": 2400}) == {
            "urgency_level": "", "price": "2400",
        }

    def test_read_only_field_rejected(self):
        with pytest.raises(ValidationError):
            validate_update_fields({"client_id": "CLI9"})
