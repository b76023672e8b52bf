"""Data model for patient records, filter configuration and search results."""
from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Any, Dict, Optional, Tuple


SORT_KEYS = ("name", "age", "last_visit", "risk", "condition")
SORT_ORDERS = ("asc", "desc")
RISK_LEVELS = ("all", "low", "medium", "high")
LIST_SORT_KEYS = ("name", "risk", "recent")

DEFAULT_AGE_RANGE: Tuple[int, int] = (0, 120)


@dataclass(frozen=True)
class TimelineEvent:
    """A dated entry in a patient's history (appointment, note, lab, ...)."""
    date: str
    type: str
    title: Optional[str] = None


@dataclass(frozen=True)
class Patient:
    """Patient record as supplied by the surrounding application.

    The search core only reads these; every field except ``id`` and ``name``
    may be missing.
    """
    id: str
    name: str
    condition: Optional[str] = None
    dob: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    risk: Optional[float] = None
    insurance: Optional[str] = None
    timeline: Tuple[TimelineEvent, ...] = ()


@dataclass(frozen=True)
class RiskThresholds:
    """Bucket boundaries for risk scores.

    ``risk < low_below`` is low, ``risk >= high_from`` is high, anything in
    between is medium.
    """
    low_below: float = 40
    high_from: float = 60

    def bucket(self, risk: Optional[float]) -> str:
        score = risk or 0
        if score < self.low_below:
            return "low"
        if score >= self.high_from:
            return "high"
        return "medium"


DEFAULT_RISK_THRESHOLDS = RiskThresholds()
# Alternate convention used by older advanced-search screens. Opt-in only.
WIDE_RISK_THRESHOLDS = RiskThresholds(low_below=30, high_from=70)


@dataclass(frozen=True)
class FilterConfig:
    """Filter and sort configuration of the advanced search panel."""
    query: str = ""
    age_range: Tuple[int, int] = DEFAULT_AGE_RANGE
    conditions: Tuple[str, ...] = ()
    last_visit_start: Optional[date] = None
    last_visit_end: Optional[date] = None
    insurance: Optional[str] = None
    sort_by: str = "name"
    sort_order: str = "asc"
    risk_level: str = "all"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dict (dates as ISO strings)."""
        data = asdict(self)
        data["age_range"] = list(self.age_range)
        data["conditions"] = list(self.conditions)
        data["last_visit_start"] = self.last_visit_start.isoformat() if self.last_visit_start else None
        data["last_visit_end"] = self.last_visit_end.isoformat() if self.last_visit_end else None
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Optional["FilterConfig"]:
        """Rebuild a config from ``to_dict`` output.

        Args:
            data: Decoded JSON value

        Returns:
            FilterConfig, or None if the value is not a usable snapshot
        """
        if not isinstance(data, dict):
            return None

        try:
            age_range = data.get("age_range", list(DEFAULT_AGE_RANGE))
            low, high = (int(age_range[0]), int(age_range[1]))
            conditions = tuple(str(c) for c in data.get("conditions") or [])
            start = data.get("last_visit_start")
            end = data.get("last_visit_end")
            return cls(
                query=str(data.get("query") or ""),
                age_range=(low, high),
                conditions=conditions,
                last_visit_start=date.fromisoformat(start) if start else None,
                last_visit_end=date.fromisoformat(end) if end else None,
                insurance=data.get("insurance") or None,
                sort_by=data.get("sort_by") if data.get("sort_by") in SORT_KEYS else "name",
                sort_order=data.get("sort_order") if data.get("sort_order") in SORT_ORDERS else "asc",
                risk_level=data.get("risk_level") if data.get("risk_level") in RISK_LEVELS else "all",
            )
        except (TypeError, ValueError, IndexError, OverflowError):
            return None


DEFAULT_FILTERS = FilterConfig()


@dataclass(frozen=True)
class SavedSearch:
    """A named snapshot of a FilterConfig."""
    name: str
    filters: FilterConfig

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, **self.filters.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SavedSearch"]:
        if not isinstance(data, dict) or not data.get("name"):
            return None
        filters = FilterConfig.from_dict(data)
        if filters is None:
            return None
        return cls(name=str(data["name"]), filters=filters)


@dataclass(frozen=True)
class ListFilters:
    """Filter state of the plain patient list view."""
    search_query: str = ""
    filter_risk: str = "all"
    filter_condition: str = "all"
    sort_by: str = "name"


DEFAULT_LIST_FILTERS = ListFilters()


@dataclass(frozen=True)
class IndexEntry:
    """Pre-computed lower-cased searchable text for one patient."""
    id: str
    text: str
    patient: Patient


@dataclass(frozen=True)
class SearchResult:
    """A patient paired with its relevance score and the fields that matched."""
    patient: Patient
    score: int
    matched_fields: Tuple[str, ...] = field(default_factory=tuple)
