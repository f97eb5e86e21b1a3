"""Change event models - realtime notifications from the database."""

from typing import Optional, Any
from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """Row-level change delivered by the event bus."""
    table: str = Field(..., description="Table the change happened on")
    event_type: str = Field(..., description="INSERT, UPDATE or DELETE")
    record: dict[str, Any] = Field(default_factory=dict, description="Row after the change")
    old_record: dict[str, Any] = Field(default_factory=dict, description="Row before the change")
    commit_timestamp: Optional[str] = None

    @property
    def row(self) -> dict[str, Any]:
        """Best available view of the row (old values for deletes)."""
        return self.record or self.old_record

    @classmethod
    def from_realtime(cls, table: str, payload: dict) -> "ChangeEvent":
        """Build from a Supabase realtime postgres_changes payload."""
        data = payload.get("data", payload) if isinstance(payload, dict) else {}
        return cls(
            table=data.get("table") or table,
            event_type=(data.get("type") or data.get("eventType") or "UNKNOWN").upper(),
            record=data.get("record") or data.get("new") or {},
            old_record=data.get("old_record") or data.get("old") or {},
            commit_timestamp=data.get("commit_timestamp"),
        )
