"""Display-name extraction shared by every identity strategy."""

from __future__ import annotations

from typing import Iterator, Optional

from timekeeper.models import SubjectRecord

# Values the API uses in place of a missing name
SENTINELS = frozenset({"unknown", "null", "undefined"})


def _candidates(record: SubjectRecord) -> Iterator[tuple[str, Optional[str]]]:
    yield "name", record.name
    yield "displayName", record.display_name
    yield "fullName", record.full_name
    yield "username", record.username
    if record.first_name and record.last_name:
        yield "firstName+lastName", f"{record.first_name.strip()} {record.last_name.strip()}"
    yield "firstName", record.first_name
    yield "lastName", record.last_name
    if record.email:
        yield "email", record.email.split("@", 1)[0]


def is_usable_name(value: Optional[str]) -> bool:
    if not isinstance(value, str):
        return False
    value = value.strip()
    return bool(value) and value.lower() not in SENTINELS


def extract_name(record: SubjectRecord) -> Optional[tuple[str, str]]:
    """Return ``(name, source_field)`` for the first usable candidate, or None.

    Candidates, in order: name, displayName, fullName, username,
    firstName + lastName, firstName, lastName, the email local-part.
    """
    for field_name, value in _candidates(record):
        if is_usable_name(value):
            return value.strip(), field_name
    return None


def extract_email(record: SubjectRecord) -> Optional[str]:
    if record.email and "@" in record.email and is_usable_name(record.email):
        return record.email.strip()
    return None
