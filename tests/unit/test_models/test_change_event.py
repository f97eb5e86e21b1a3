"""Tests for ChangeEvent model."""

import pytest
from src.models.change_event import ChangeEvent


@pytest.mark.unit
def test_from_realtime_payload():
    payload = {
        "data": {
            "table": "appointments",
            "type": "UPDATE",
            "record": {"appointment_id": "appt-1", "status": "confirmed"},
            "old_record": {"appointment_id": "appt-1"},
            "commit_timestamp": "2024-12-09T12:00:00Z",
        },
        "ids": [1],
    }
    event = ChangeEvent.from_realtime("appointments", payload)

    assert event.table == "appointments"
    assert event.event_type == "UPDATE"
    assert event.record["status"] == "confirmed"
    assert event.commit_timestamp == "2024-12-09T12:00:00Z"


@pytest.mark.unit
def test_from_realtime_delete_uses_old_row():
    payload = {"data": {"eventType": "delete", "old": {"interaction_id": "int-1", "contact_id": "c1"}}}
    event = ChangeEvent.from_realtime("client_interactions", payload)

    assert event.table == "client_interactions"
    assert event.event_type == "DELETE"
    assert event.record == {}
    assert event.row == {"interaction_id": "int-1", "contact_id": "c1"}


@pytest.mark.unit
def test_from_realtime_tolerates_missing_fields():
    event = ChangeEvent.from_realtime("appointments", {})
    assert event.event_type == "UNKNOWN"
    assert event.row == {}
