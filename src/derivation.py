"""Age and event-date derivation for patient records."""
from datetime import date, datetime
from typing import Any, Iterable, Optional, Set

from src.models import Patient, TimelineEvent


# Event types that count as a visit for last-visit filtering and sorting
VISIT_EVENT_TYPES = frozenset({"appointment", "note"})


def parse_date(value: Any) -> Optional[date]:
    """Parse a date-like value.

    Args:
        value: A date, datetime, or ISO-8601 date/datetime string

    Returns:
        The calendar date, or None if the value can't be parsed
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def compute_age(birth_date: date, as_of: Optional[date] = None) -> int:
    """Compute calendar age in whole years.

    Args:
        birth_date: Date of birth
        as_of: Reference date (default: today)

    Returns:
        Age in years; one less than the year difference if the birthday
        hasn't happened yet in the as-of year
    """
    as_of = as_of or date.today()
    age = as_of.year - birth_date.year
    if (as_of.month, as_of.day) < (birth_date.month, birth_date.day):
        age -= 1
    return age


def patient_age(patient: Patient, as_of: Optional[date] = None) -> Optional[int]:
    """Derive a patient's age.

    Uses the birth date when it parses, otherwise the nominal age on the
    record. Returns None when neither is usable.
    """
    birth_date = parse_date(patient.dob)
    if birth_date is not None:
        return compute_age(birth_date, as_of)

    if isinstance(patient.age, bool):
        return None
    if isinstance(patient.age, (int, float)) and patient.age >= 0:
        return int(patient.age)
    return None


def most_recent_relevant_date(
    events: Iterable[TimelineEvent],
    relevant_types: Optional[Set[str]] = VISIT_EVENT_TYPES,
) -> Optional[date]:
    """Find the latest date among events of the relevant types.

    Args:
        events: Patient timeline events
        relevant_types: Event types to consider; None means every type

    Returns:
        The most recent date, or None if no relevant event has a usable date
    """
    latest: Optional[date] = None
    for event in events or ():
        if relevant_types is not None and event.type not in relevant_types:
            continue
        event_date = parse_date(event.date)
        if event_date is not None and (latest is None or event_date > latest):
            latest = event_date
    return latest
