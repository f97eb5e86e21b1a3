"""Interaction and note models - append-only touchpoints keyed by contact_id."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class Interaction(BaseModel):
    """Logged non-appointment touchpoint (client_interactions table)."""
    interaction_id: str = Field(..., description="Interaction ID (text)")
    contact_id: str = Field(..., description="Contact ID (text FK)")
    agent_id: Optional[str] = Field(None, description="Agent who logged the interaction")
    interaction_type: str = Field(..., description="call, email, meeting, property_viewing, ...")
    subject: Optional[str] = None
    content: Optional[str] = None
    outcome: Optional[str] = None
    duration_minutes: Optional[int] = Field(None, ge=0)
    created_at: datetime = Field(..., description="When the interaction was logged")
    next_follow_up: Optional[datetime] = None


class Note(BaseModel):
    """Freeform annotation on a contact (client_notes table)."""
    note_id: str = Field(..., description="Note ID (text)")
    contact_id: str = Field(..., description="Contact ID (text FK)")
    agent_id: Optional[str] = None
    note_type: str = Field(default="general", description="general, preference, follow_up, ...")
    content: str = Field(..., description="Note body")
    created_at: datetime
