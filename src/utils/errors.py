"""Error handling utilities."""

from typing import Optional


class PickFirstError(Exception):
    """Base exception for the PickFirst CRM core."""
    pass


class NotFoundError(PickFirstError):
    """Contact or appointment does not exist (or is not visible to the agent)."""
    pass


class SupabaseError(PickFirstError):
    """Supabase operation error."""
    pass


class PersistenceError(SupabaseError):
    """A write to a store failed; the operation was aborted."""
    pass


class InvalidTransitionError(PickFirstError):
    """Appointment status transition rejected (self-transition or unknown status)."""
    pass


class AppointmentValidationError(PickFirstError):
    """Appointment input rejected before persistence."""
    pass


class NotificationDispatchFailure(PickFirstError):
    """Notification could not be delivered. Never reverses the triggering operation."""

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind


class PartialAggregationFailure(PickFirstError):
    """One timeline source failed; the timeline degrades instead of failing."""

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"{source} query failed: {cause}")
        self.source = source
        self.cause = cause
