"""Patient search: text index, relevance scoring and search strategies."""
from datetime import date
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple
import re

from src.filters import apply_filters, apply_list_filters
from src.models import (
    DEFAULT_AGE_RANGE,
    DEFAULT_RISK_THRESHOLDS,
    FilterConfig,
    IndexEntry,
    ListFilters,
    Patient,
    RiskThresholds,
    SearchResult,
)
from src.ranking import rank_results, sort_patients


# Per-field relevance weights for the ranked search
NAME_WEIGHT = 100
NAME_PREFIX_BONUS = 50
ID_WEIGHT = 80
CONDITION_WEIGHT = 60
PHONE_WEIGHT = 40
EMAIL_WEIGHT = 30


def build_search_index(patients: Sequence[Patient]) -> List[IndexEntry]:
    """Build the searchable text for each patient.

    Args:
        patients: Working set of patients

    Returns:
        One entry per patient holding name, condition, email, phone and id
        joined by spaces and lower-cased. Missing fields are skipped.
    """
    index = []
    for patient in patients:
        parts = [patient.name, patient.condition, patient.email, patient.phone, patient.id]
        text = " ".join(part for part in parts if part).lower()
        index.append(IndexEntry(id=patient.id, text=text, patient=patient))
    return index


class SearchIndexCache:
    """Rebuilds the search index only when the patient list object changes."""

    def __init__(self):
        self._source: Optional[Sequence[Patient]] = None
        self._index: List[IndexEntry] = []

    def get(self, patients: Sequence[Patient]) -> List[IndexEntry]:
        if patients is not self._source:
            self._index = build_search_index(patients)
            self._source = patients
        return self._index


def _digits(text: str) -> str:
    return re.sub(r"\D", "", text)


def score_patient(patient: Patient, query: str) -> Tuple[int, Tuple[str, ...]]:
    """Score how well a patient matches a free-text query.

    Each field is checked on its own and the weights add up, so a patient
    matching on name and condition outranks one matching on name only.
    A blank query gives every patient a score of 1 with no matched fields.

    Args:
        patient: Patient to score
        query: Raw query text

    Returns:
        Tuple of (score, matched field names)
    """
    if not query or not query.strip():
        return 1, ()

    term = query.lower()
    score = 0
    matched: List[str] = []

    name = (patient.name or "").lower()
    if term in name:
        score += NAME_WEIGHT
        matched.append("name")
        if name.startswith(term):
            score += NAME_PREFIX_BONUS

    if patient.id and term in patient.id.lower():
        score += ID_WEIGHT
        matched.append("id")

    if patient.condition and term in patient.condition.lower():
        score += CONDITION_WEIGHT
        matched.append("condition")

    query_digits = _digits(term)
    if patient.phone and query_digits and query_digits in _digits(patient.phone):
        score += PHONE_WEIGHT
        matched.append("phone")

    if patient.email and term in patient.email.lower():
        score += EMAIL_WEIGHT
        matched.append("email")

    return score, tuple(matched)


class SearchStrategy(Protocol):
    """Protocol for patient search strategies to allow extensibility."""

    def search(self, patients: Sequence[Patient], filters: Any, query: str) -> list:
        """Search patients.

        Args:
            patients: Working set of patients
            filters: Strategy-specific filter state
            query: Effective (debounced) query text

        Returns:
            Matching items in display order
        """
        ...


class RankedSearch:
    """Advanced panel search: filter, score with field weights, then rank.

    Text matching is a weighted OR over fields; patients scoring 0 are
    dropped.
    """

    def __init__(
        self,
        thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS,
        clock: Callable[[], date] = date.today,
        full_age_range: Tuple[int, int] = DEFAULT_AGE_RANGE,
    ):
        self.thresholds = thresholds
        self.clock = clock
        self.full_age_range = full_age_range

    def search(self, patients: Sequence[Patient], filters: FilterConfig, query: str) -> List[SearchResult]:
        today = self.clock()
        candidates = apply_filters(patients, filters, today, self.thresholds, self.full_age_range)

        scored = []
        for patient in candidates:
            score, fields = score_patient(patient, query)
            scored.append(SearchResult(patient=patient, score=score, matched_fields=fields))

        return rank_results(scored, filters.sort_by, filters.sort_order, today)


class ListSearch:
    """List view search: token match and simple filters, then sort. No scoring."""

    def __init__(self, thresholds: RiskThresholds = DEFAULT_RISK_THRESHOLDS):
        self.thresholds = thresholds
        self._index_cache = SearchIndexCache()

    def search(self, patients: Sequence[Patient], filters: ListFilters, query: str) -> List[Patient]:
        index = self._index_cache.get(patients)
        matched = apply_list_filters(index, filters, query.strip(), self.thresholds)
        return sort_patients(matched, filters.sort_by)
