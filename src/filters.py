"""Predicate filters for the advanced search panel and the patient list view."""
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

from src.derivation import most_recent_relevant_date, patient_age
from src.models import (
    DEFAULT_AGE_RANGE,
    DEFAULT_RISK_THRESHOLDS,
    FilterConfig,
    IndexEntry,
    ListFilters,
    Patient,
    RiskThresholds,
)


Predicate = Callable[[Patient], bool]


def split_conditions(condition: Optional[str]) -> List[str]:
    """Split a comma-separated condition label into lower-cased parts."""
    if not condition:
        return []
    return [part.strip().lower() for part in condition.split(",") if part.strip()]


def age_in_range(
    patient: Patient,
    age_range,
    as_of: date,
    full_range: Tuple[int, int] = DEFAULT_AGE_RANGE,
) -> bool:
    """Check the inclusive age range.

    A patient with no usable age only passes when the range is full_range.
    """
    age = patient_age(patient, as_of)
    if age is None:
        return tuple(age_range) == tuple(full_range)
    return age_range[0] <= age <= age_range[1]


def has_any_condition(patient: Patient, selected: Sequence[str]) -> bool:
    if not selected:
        return True
    held = split_conditions(patient.condition)
    return any(label.strip().lower() in held for label in selected)


def last_visit_in_range(patient: Patient, start: Optional[date], end: Optional[date]) -> bool:
    if start is None and end is None:
        return True

    last_visit = most_recent_relevant_date(patient.timeline)
    if last_visit is None:
        return False
    if start is not None and last_visit < start:
        return False
    if end is not None and last_visit > end:
        return False
    return True


def matches_insurance(patient: Patient, insurance: Optional[str]) -> bool:
    return not insurance or patient.insurance == insurance


def matches_risk_level(patient: Patient, level: str, thresholds: RiskThresholds) -> bool:
    return level == "all" or thresholds.bucket(patient.risk) == level


def advanced_predicates(
    filters: FilterConfig,
    as_of: date,
    thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS,
    full_age_range: Tuple[int, int] = DEFAULT_AGE_RANGE,
) -> List[Predicate]:
    """Build the advanced panel's predicates, in evaluation order."""
    return [
        lambda p: age_in_range(p, filters.age_range, as_of, full_age_range),
        lambda p: has_any_condition(p, filters.conditions),
        lambda p: last_visit_in_range(p, filters.last_visit_start, filters.last_visit_end),
        lambda p: matches_insurance(p, filters.insurance),
        lambda p: matches_risk_level(p, filters.risk_level, thresholds),
    ]


def apply_filters(
    patients: Sequence[Patient],
    filters: FilterConfig,
    as_of: date,
    thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS,
    full_age_range: Tuple[int, int] = DEFAULT_AGE_RANGE,
) -> List[Patient]:
    """Run the advanced filter pipeline.

    Args:
        patients: Candidate patients
        filters: Active configuration (the text query is ignored here)
        as_of: Reference date for age derivation
        thresholds: Risk bucket boundaries
        full_age_range: The untouched age range; patients of unknown age pass only this

    Returns:
        Patients passing every predicate, in input order
    """
    predicates = advanced_predicates(filters, as_of, thresholds, full_age_range)
    return [p for p in patients if all(check(p) for check in predicates)]


# ============================================================================
# List view
# ============================================================================

def matches_text(entry: IndexEntry, query: str) -> bool:
    """Text match used by the list view.

    A single word matches as a substring of name, condition, phone or email.
    Several words must each occur somewhere in the indexed text.
    """
    tokens = query.lower().split()
    if not tokens:
        return True

    if len(tokens) == 1:
        patient = entry.patient
        fields = (patient.name, patient.condition, patient.phone, patient.email)
        return any(tokens[0] in value.lower() for value in fields if value)

    return all(token in entry.text for token in tokens)


def apply_list_filters(
    index: Sequence[IndexEntry],
    filters: ListFilters,
    query: str,
    thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS,
) -> List[Patient]:
    """Run the list view's filters over an index.

    Args:
        index: Search index for the working set
        filters: List view filter state
        query: Effective (debounced) search text
        thresholds: Risk bucket boundaries

    Returns:
        Matching patients, in index order
    """
    results = []
    for entry in index:
        patient = entry.patient
        if not matches_text(entry, query):
            continue
        if not matches_risk_level(patient, filters.filter_risk, thresholds):
            continue
        if filters.filter_condition != "all" and patient.condition != filters.filter_condition:
            continue
        results.append(patient)
    return results
