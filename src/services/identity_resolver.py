"""Contact identity resolution - map a contact to every key its records may be filed under.

Appointments and conversations are keyed by the authenticated account id,
interactions and notes by the contact record id, and older appointments were
filed under the raw contact id or only the email address. Resolution is kept
a pure function so it can be tested apart from any store.
"""

from typing import Any, Iterable, Mapping, Optional

from src.models.contact import Contact, ResolvedKeys


# Row columns that may hold a contact key, across appointments/interactions/notes
KEY_COLUMNS = ("contact_account_key", "contact_email_key", "contact_id", "client_id")

# Columns the appointments table files a contact key under
APPOINTMENT_KEY_COLUMNS = ("contact_account_key", "contact_email_key")


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and trim an email address; blank becomes None."""
    if not email:
        return None
    normalized = email.strip().lower()
    return normalized or None


def resolve_keys(contact: Contact) -> ResolvedKeys:
    """Resolve the keys for a contact. Absent fields yield None entries."""
    return ResolvedKeys(
        primary_account_key=contact.linked_account_id or None,
        contact_record_key=contact.contact_id,
        email_key=normalize_email(contact.email),
    )


def appointment_lookup_keys(contact: Contact) -> list[str]:
    """Keys to OR together when querying the appointment store.

    Priority order: linked account id, contact record id (legacy filing),
    normalized email.
    """
    return resolve_keys(contact).candidates()


def record_matches_keys(
    record: Mapping[str, Any],
    keys: Iterable[str],
    columns: Iterable[str] = KEY_COLUMNS,
) -> bool:
    """Whether a raw row is filed under any of the given keys.

    Email keys match case-insensitively; other keys match exactly.
    """
    exact = set()
    emails = set()
    for key in keys:
        if not key:
            continue
        if "@" in key:
            emails.add(key.strip().lower())
        exact.add(key)
    if not exact:
        return False
    for column in columns:
        value = record.get(column)
        if not value:
            continue
        value = str(value)
        if value in exact:
            return True
        if emails and value.strip().lower() in emails:
            return True
    return False


def dedupe_by_id(records: Iterable[Any], attr: str) -> list[Any]:
    """Drop later records whose `attr` value was already seen, keeping order."""
    seen: set[str] = set()
    unique = []
    for record in records:
        key = getattr(record, attr)
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique
