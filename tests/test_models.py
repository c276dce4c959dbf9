"""Tests for pydantic models and change parsing."""

from __future__ import annotations

import time

import pytest
from pydantic import ValidationError

from pycrescent.exceptions import UnknownChangeError
from pycrescent.models.changes import DeleteChange, InsertChange, UpdateChange, parse_change
from pycrescent.models.event import EventRow
from pycrescent.models.user import User
from pycrescent.session import Session
from pycrescent.state.events import ChangeKind

# ------------------------------------------------------------------
# EventRow
# ------------------------------------------------------------------


class TestEventRow:
    SAMPLE_PAYLOAD: dict = {
        "id": "7b0b1f4e-3c2a-4d7e-9d55-0a1f2b3c4d5e",
        "name": "Spring Fest",
        "description": "Annual cultural festival",
        "venue": "Main Auditorium",
        "starts_at": "2026-03-14T10:00:00+00:00",
        "capacity": 300,
        "course_code": None,
    }

    def test_known_and_extra_columns(self) -> None:
        row = EventRow.model_validate(self.SAMPLE_PAYLOAD)

        assert row.id == self.SAMPLE_PAYLOAD["id"]
        assert row.name == "Spring Fest"
        assert row.attributes["venue"] == "Main Auditorium"
        assert row.attributes["capacity"] == 300
        assert row.raw == self.SAMPLE_PAYLOAD

    def test_integer_id_is_normalised(self) -> None:
        row = EventRow.model_validate({"id": 42, "name": "Hackathon"})
        assert row.id == "42"

    def test_missing_name_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EventRow.model_validate({"id": "e1"})

    def test_blank_id_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EventRow.model_validate({"id": "  ", "name": "Nameless"})

    def test_rows_are_frozen(self) -> None:
        row = EventRow(id="e1", name="Spring Fest")
        with pytest.raises(ValidationError):
            row.name = "Changed"  # type: ignore[misc]

    def test_equal_payloads_compare_equal(self) -> None:
        assert EventRow.model_validate(self.SAMPLE_PAYLOAD) == EventRow.model_validate(dict(self.SAMPLE_PAYLOAD))


# ------------------------------------------------------------------
# User / Session
# ------------------------------------------------------------------


class TestUser:
    def test_parse_provider_user(self) -> None:
        user = User.model_validate(
            {
                "id": "d0c1f1a2-0000-4000-8000-000000000001",
                "aud": "authenticated",
                "role": "authenticated",
                "email": "20231234@crescent.education",
                "phone": "",
                "created_at": "2025-09-01T08:00:00.000000Z",
                "user_metadata": {"first_name": "Asha"},
                "app_metadata": {"provider": "email"},
                "identities": [],
            }
        )

        assert user.phone is None
        assert user.registration_number == "20231234"
        assert user.user_metadata["first_name"] == "Asha"
        assert user.created_at is not None

    def test_registration_number_absent_for_non_numeric_email(self) -> None:
        assert User(id="u", email="admin@crescent.education").registration_number is None


class TestSession:
    def test_expiry_derived_from_expires_in(self) -> None:
        before = time.time()
        session = Session.model_validate({"access_token": "a", "refresh_token": "r", "expires_in": 3600})

        assert session.expires_at >= before + 3600
        assert not session.is_expired
        assert session.authorization == "Bearer a"

    def test_expired_session(self) -> None:
        session = Session(access_token="a", expires_at=time.time() - 5)
        assert session.is_expired

    def test_embedded_user_parsed(self) -> None:
        session = Session.model_validate(
            {
                "access_token": "a",
                "token_type": "bearer",
                "expires_in": 3600,
                "expires_at": 4102444800,
                "refresh_token": "r",
                "user": {"id": "u1", "email": "20231234@crescent.education"},
            }
        )
        assert session.user is not None
        assert session.user.id == "u1"
        assert session.expires_at == 4102444800

    def test_access_token_required(self) -> None:
        with pytest.raises(ValidationError):
            Session.model_validate({"refresh_token": "r"})


# ------------------------------------------------------------------
# parse_change
# ------------------------------------------------------------------


class TestParseChange:
    def test_insert_wire_shape(self) -> None:
        change = parse_change(
            {
                "schema": "public",
                "table": "events",
                "commit_timestamp": "2026-01-05T10:00:00Z",
                "type": "INSERT",
                "record": {"id": "e1", "name": "Spring Fest"},
                "old_record": None,
            }
        )

        assert isinstance(change, InsertChange)
        assert change.kind == ChangeKind.INSERT
        assert change.row.name == "Spring Fest"
        assert change.table == "events"
        assert change.commit_timestamp is not None

    def test_update_client_shape(self) -> None:
        change = parse_change({"eventType": "update", "new": {"id": "e1", "name": "Spring Fest 2"}, "old": {"id": "e1"}})

        assert isinstance(change, UpdateChange)
        assert change.row_id == "e1"

    def test_delete_uses_old_record_id(self) -> None:
        change = parse_change({"type": "DELETE", "record": None, "old_record": {"id": 17}})

        assert isinstance(change, DeleteChange)
        assert change.id == "17"

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(UnknownChangeError) as excinfo:
            parse_change({"type": "TRUNCATE"})
        assert excinfo.value.change_type == "TRUNCATE"

    def test_missing_type_rejected(self) -> None:
        with pytest.raises(UnknownChangeError):
            parse_change({"record": {"id": "e1", "name": "x"}})

    def test_delete_without_id_is_malformed(self) -> None:
        with pytest.raises(ValidationError):
            parse_change({"type": "DELETE", "old_record": {}})
