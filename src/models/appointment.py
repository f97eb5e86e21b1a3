"""Appointment models - scheduled meetings between an agent and a contact."""

import datetime
import re
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator


_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class AppointmentType(str, Enum):
    """Kinds of appointment an agent can schedule."""
    PROPERTY_SHOWING = "property_showing"
    CONSULTATION = "consultation"
    CONTRACT_REVIEW = "contract_review"
    CLOSING = "closing"
    FOLLOW_UP = "follow_up"


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Appointment(BaseModel):
    """Appointment record (appointments table)."""
    appointment_id: str = Field(..., description="Appointment ID (text)")
    agent_id: str = Field(..., description="Owning agent ID")
    contact_account_key: Optional[str] = Field(
        None,
        description="Authenticated account ID of the contact, if resolvable at creation"
    )
    contact_email_key: Optional[str] = Field(None, description="Normalized contact email (fallback key)")
    contact_name: Optional[str] = Field(None, description="Contact name at scheduling time")
    contact_phone: Optional[str] = Field(None, description="Contact phone at scheduling time")
    appointment_type: AppointmentType = Field(..., description="Appointment type")
    date: datetime.date = Field(..., description="Appointment date")
    time: str = Field(..., description="Start time, HH:MM")
    duration_minutes: int = Field(default=60, gt=0, description="Duration in minutes")
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED, description="Lifecycle status")
    notes: Optional[str] = Field(None, description="Free-form notes")
    property_id: Optional[str] = Field(None, description="Referenced property listing ID")
    property_address: Optional[str] = Field(None, description="Property address or meeting location")
    inquiry_id: Optional[str] = Field(None, description="Property inquiry this appointment was scheduled from")
    created_at: Optional[datetime.datetime] = None
    updated_at: Optional[datetime.datetime] = None

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        value = value.strip()
        # Postgres time columns come back as HH:MM:SS
        if len(value) == 8 and value[5] == ":":
            value = value[:5]
        if not _TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM")
        return value

    @property
    def is_reachable(self) -> bool:
        """Whether any contact key can locate this appointment."""
        return bool(self.contact_account_key or self.contact_email_key)

    @property
    def property_ref(self) -> Optional[str]:
        return self.property_address or self.property_id

    def starts_at(self) -> datetime.datetime:
        """Scheduled start as a naive datetime."""
        hour, minute = (int(part) for part in self.time.split(":"))
        return datetime.datetime.combine(self.date, datetime.time(hour, minute))


class AppointmentDetails(BaseModel):
    """Caller-supplied fields for scheduling a new appointment."""
    appointment_type: AppointmentType
    date: datetime.date
    time: str
    duration_minutes: int = Field(default=60, gt=0)
    property_id: Optional[str] = None
    property_address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        value = value.strip()
        if not _TIME_PATTERN.match(value):
            raise ValueError("time must be HH:MM")
        return value


class AppointmentResult(BaseModel):
    """Outcome of a successful create or transition, with non-fatal warnings."""
    appointment: Appointment
    warnings: list[str] = Field(default_factory=list)
    notifications_sent: int = 0


class AppointmentStats(BaseModel):
    """Dashboard counters for an agent's appointment book."""
    today: int = 0
    week: int = 0
    confirmed: int = 0
    pending: int = 0
