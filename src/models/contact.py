"""Contact model - an agent's client or lead (clients table)."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class ContactStatus(str, Enum):
    """Contact lifecycle status."""
    LEAD = "lead"
    ACTIVE = "active"
    PAST_CLIENT = "past_client"
    INACTIVE = "inactive"


class Contact(BaseModel):
    """Contact model - may or may not correspond to a registered account."""
    contact_id: str = Field(..., description="Contact record ID (owned by the agent)")
    agent_id: str = Field(..., description="Owning agent ID")
    linked_account_id: Optional[str] = Field(
        None,
        description="Authenticated account ID, set only once the contact has registered"
    )
    name: str = Field(..., description="Full name")
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    status: ContactStatus = Field(default=ContactStatus.LEAD, description="lead, active, past_client, inactive")
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ResolvedKeys(BaseModel):
    """Candidate identifiers under which a contact's related records may be filed."""
    primary_account_key: Optional[str] = Field(None, description="Linked account ID (preferred)")
    contact_record_key: str = Field(..., description="Contact record ID")
    email_key: Optional[str] = Field(None, description="Lowercased, trimmed email")

    def candidates(self) -> list[str]:
        """Non-null keys in priority order, without duplicates."""
        keys: list[str] = []
        for key in (self.primary_account_key, self.contact_record_key, self.email_key):
            if key and key not in keys:
                keys.append(key)
        return keys
