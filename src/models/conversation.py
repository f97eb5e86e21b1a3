"""Conversation models - messaging threads keyed by the contact's account."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class Message(BaseModel):
    """Single message within a conversation."""
    message_id: str
    content: str = ""
    sender_id: Optional[str] = None
    created_at: datetime


class Conversation(BaseModel):
    """Messaging thread (conversations table with nested messages)."""
    conversation_id: str
    client_id: str = Field(..., description="Authenticated account ID of the contact")
    agent_id: Optional[str] = None
    subject: Optional[str] = None
    status: str = "active"
    created_at: datetime
    last_message_at: Optional[datetime] = None
    messages: list[Message] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    """Conversation as surfaced next to a contact timeline."""
    conversation_id: str
    subject: str
    status: str
    created_at: datetime
    last_message_at: Optional[datetime] = None
    message_count: int = 0
    latest_message_at: Optional[datetime] = None
    recent_messages: list[Message] = Field(default_factory=list)
