"""Activity model - the source-agnostic shape used to merge a contact's history."""

from enum import Enum
from typing import Optional, Any
from datetime import datetime
from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Record types that feed the activity timeline."""
    APPOINTMENT = "appointment"
    INTERACTION = "interaction"
    NOTE = "note"


# Lower sorts first among activities sharing a timestamp
SOURCE_PRECEDENCE: dict[SourceType, int] = {
    SourceType.APPOINTMENT: 0,
    SourceType.INTERACTION: 1,
    SourceType.NOTE: 2,
}


class Activity(BaseModel):
    """Normalized timeline entry. Derived, never persisted."""
    source_type: SourceType = Field(..., description="appointment, interaction, note")
    id: str = Field(..., description="ID of the source record")
    timestamp: datetime = Field(..., description="Ordering timestamp (timezone-aware)")
    title: str = Field(default="", description="Display title")
    body: Optional[str] = Field(None, description="Display body")
    status: Optional[str] = Field(None, description="Outcome or appointment status")
    extra: dict[str, Any] = Field(default_factory=dict, description="Source-specific details")
