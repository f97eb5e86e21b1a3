"""Timeline models - aggregated history returned for one contact."""

from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from src.models.activity import Activity
from src.models.contact import ResolvedKeys
from src.models.conversation import ConversationSummary
from src.models.interaction import Note
from src.services.activity_normalizer import normalize_note, sort_activities


class SourceDiagnostic(BaseModel):
    """A timeline source that failed and was degraded to an empty collection."""
    source: str = Field(..., description="appointments, interactions, notes, conversations")
    error_type: str
    error: str


class Timeline(BaseModel):
    """Merged history for a contact, as seen by one agent."""
    contact_id: str
    agent_id: str
    resolved_keys: ResolvedKeys
    interactions: list[Activity] = Field(
        default_factory=list,
        description="Interactions and appointments, newest first"
    )
    notes: list[Note] = Field(default_factory=list, description="Notes, newest first")
    conversations: list[ConversationSummary] = Field(default_factory=list)
    diagnostics: list[SourceDiagnostic] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_partial(self) -> bool:
        """True when at least one source failed ("some activity may be missing")."""
        return bool(self.diagnostics)

    @property
    def failed_sources(self) -> list[str]:
        return [d.source for d in self.diagnostics]

    @property
    def conversation_count(self) -> int:
        return len(self.conversations)

    @property
    def last_message_at(self) -> Optional[datetime]:
        stamps = [c.latest_message_at for c in self.conversations if c.latest_message_at]
        return max(stamps) if stamps else None

    @property
    def last_activity_at(self) -> Optional[datetime]:
        """Most recent activity across interactions, appointments and notes."""
        feed = self.activity_feed()
        return feed[0].timestamp if feed else None

    def activity_feed(self) -> list[Activity]:
        """Interactions, appointments and notes merged into one feed."""
        return sort_activities(self.interactions + [normalize_note(note) for note in self.notes])
