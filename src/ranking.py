"""Ordering of search results and list view patients."""
import locale
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from src.derivation import most_recent_relevant_date, patient_age
from src.models import Patient, SearchResult


def collation_key(text: Optional[str]) -> str:
    """Case-insensitive sort key ordered by the process locale's collation (LC_COLLATE)."""
    return locale.strxfrm((text or "").casefold())


def _name_key(patient: Patient, today: date) -> str:
    return collation_key(patient.name)


def _age_key(patient: Patient, today: date) -> int:
    age = patient_age(patient, today)
    return age if age is not None else -1


def _last_visit_key(patient: Patient, today: date) -> date:
    return most_recent_relevant_date(patient.timeline) or date.min


def _risk_key(patient: Patient, today: date) -> float:
    return patient.risk or 0


def _condition_key(patient: Patient, today: date) -> str:
    return collation_key(patient.condition)


SORT_KEY_FUNCS: Dict[str, Callable[[Patient, date], Any]] = {
    "name": _name_key,
    "age": _age_key,
    "last_visit": _last_visit_key,
    "risk": _risk_key,
    "condition": _condition_key,
}


def rank_results(
    results: Sequence[SearchResult],
    sort_by: str = "name",
    sort_order: str = "asc",
    today: Optional[date] = None,
) -> List[SearchResult]:
    """Order scored results.

    Drops zero-score results, then sorts by score (highest first) and breaks
    ties with the selected key. Python's sort is stable, so results with equal
    keys keep their input order.

    Args:
        results: Scored results
        sort_by: Secondary key, one of SORT_KEY_FUNCS
        sort_order: "asc" or "desc" for the secondary key
        today: Reference date for age derivation

    Returns:
        New list of ranked results
    """
    today = today or date.today()
    key_func = SORT_KEY_FUNCS.get(sort_by, _name_key)

    ranked = [r for r in results if r.score > 0]
    ranked.sort(key=lambda r: key_func(r.patient, today), reverse=(sort_order == "desc"))
    ranked.sort(key=lambda r: r.score, reverse=True)
    return ranked


def sort_patients(patients: Sequence[Patient], sort_by: str = "name") -> List[Patient]:
    """Order patients for the list view.

    Args:
        patients: Filtered patients
        sort_by: "name" (A-Z), "risk" (highest first) or "recent" (latest
            event of any type first)

    Returns:
        New sorted list
    """
    if sort_by == "risk":
        return sorted(patients, key=lambda p: p.risk or 0, reverse=True)
    if sort_by == "recent":
        return sorted(
            patients,
            key=lambda p: most_recent_relevant_date(p.timeline, None) or date.min,
            reverse=True,
        )
    return sorted(patients, key=lambda p: collation_key(p.name))
