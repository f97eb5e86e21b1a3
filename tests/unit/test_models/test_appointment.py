"""Tests for Appointment models."""

import pytest
from datetime import date, datetime
from pydantic import ValidationError
from src.models.appointment import (
    Appointment,
    AppointmentDetails,
    AppointmentStatus,
    AppointmentType,
)


def _appointment(**overrides):
    data = {
        "appointment_id": "appt-1",
        "agent_id": "agent-1",
        "contact_account_key": "account-1",
        "appointment_type": "consultation",
        "date": "2024-12-10",
        "time": "14:00",
    }
    data.update(overrides)
    return Appointment(**data)


@pytest.mark.unit
def test_appointment_defaults():
    appointment = _appointment()

    assert appointment.status == AppointmentStatus.SCHEDULED  # Default
    assert appointment.duration_minutes == 60  # Default
    assert appointment.appointment_type == AppointmentType.CONSULTATION
    assert appointment.date == date(2024, 12, 10)


@pytest.mark.unit
def test_appointment_time_accepts_postgres_seconds():
    """Postgres returns time columns as HH:MM:SS."""
    assert _appointment(time="09:30:00").time == "09:30"


@pytest.mark.unit
@pytest.mark.parametrize("bad_time", ["9am", "25:00", "12:60", ""])
def test_appointment_time_rejects_invalid(bad_time):
    with pytest.raises(ValidationError):
        _appointment(time=bad_time)


@pytest.mark.unit
def test_appointment_duration_must_be_positive():
    with pytest.raises(ValidationError):
        _appointment(duration_minutes=0)


@pytest.mark.unit
def test_appointment_reachability():
    assert _appointment().is_reachable
    assert _appointment(contact_account_key=None, contact_email_key="jane@example.com").is_reachable
    assert not _appointment(contact_account_key=None, contact_email_key=None).is_reachable


@pytest.mark.unit
def test_appointment_property_ref_prefers_address():
    assert _appointment(property_id="prop-9").property_ref == "prop-9"
    assert _appointment(property_id="prop-9", property_address="12 Elm St").property_ref == "12 Elm St"
    assert _appointment().property_ref is None


@pytest.mark.unit
def test_appointment_starts_at():
    assert _appointment(time="08:15").starts_at() == datetime(2024, 12, 10, 8, 15)


@pytest.mark.unit
def test_appointment_details_validation():
    details = AppointmentDetails(appointment_type="closing", date="2025-01-03", time=" 16:45 ")
    assert details.time == "16:45"
    assert details.duration_minutes == 60

    with pytest.raises(ValidationError):
        AppointmentDetails(appointment_type="brunch", date="2025-01-03", time="16:45")
