"""Search state for the advanced search panel and the patient list view.

Both classes own their filter configuration and derived result list. Callers
change state only through the mutation methods; every change re-runs the
search synchronously, except typed query text, which takes effect after the
debounce period.
"""
import json
import sys
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from src.config import SearchConfig
from src.debounce import Debouncer
from src.derivation import parse_date
from src.kv_store import KeyValueStore
from src.models import (
    DEFAULT_LIST_FILTERS,
    LIST_SORT_KEYS,
    RISK_LEVELS,
    SORT_KEYS,
    SORT_ORDERS,
    FilterConfig,
    ListFilters,
    Patient,
    SavedSearch,
    SearchResult,
)
from src.search import ListSearch, RankedSearch, SearchStrategy


# Persistence keys
HISTORY_KEY = "searchHistory"
SAVED_SEARCHES_KEY = "savedSearches"

QUICK_FILTERS = ("recent_visits", "high_risk", "elderly")

Listener = Callable[[list], None]


def _to_int(value: Any) -> int:
    """Coerce form input to an int, falling back to 0."""
    if isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


class _QueryState(ABC):
    """Shared plumbing: working set, debounced query and change listeners."""

    def __init__(self, patients: Sequence[Patient], debounce_ms: int):
        self._patients = patients
        self._effective_query = ""
        self._results: list = []
        self._listeners: List[Listener] = []
        self._debouncer = Debouncer(debounce_ms, self._on_query_settled)

    @property
    def patients(self) -> Sequence[Patient]:
        return self._patients

    @property
    def effective_query(self) -> str:
        """The query text the current results were computed with."""
        return self._effective_query

    @property
    def total_count(self) -> int:
        return len(self._patients)

    @property
    def result_count(self) -> int:
        return len(self._results)

    def set_patients(self, patients: Sequence[Patient]) -> None:
        """Replace the working set (after records were added, removed or edited)."""
        self._patients = patients
        self._refresh()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback receiving the new results after every recompute.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def flush_query(self) -> None:
        """Apply a pending typed query now instead of waiting for the debounce."""
        self._debouncer.flush()

    def close(self) -> None:
        """Drop any pending query update."""
        self._debouncer.cancel()

    def _push_query(self, query: str, immediate: bool) -> None:
        if immediate:
            self._debouncer.cancel()
            self._effective_query = query
        else:
            self._debouncer.push(query)

    def _on_query_settled(self, query: str) -> None:
        self._effective_query = query
        self._refresh()

    @abstractmethod
    def _compute(self) -> list:
        """Re-run the search for the current state."""

    def _refresh(self) -> None:
        self._results = self._compute()
        for listener in list(self._listeners):
            listener(self._results)


class SearchStateStore(_QueryState):
    """State of the advanced search panel: filters, ranked results, saved searches and history."""

    def __init__(
        self,
        patients: Sequence[Patient],
        kv_store: KeyValueStore,
        config: Optional[SearchConfig] = None,
        clock: Callable[[], date] = date.today,
        strategy: Optional[SearchStrategy] = None,
    ):
        """Initialize the store and load persisted history and saved searches.

        Args:
            patients: Working set of patients
            kv_store: Persistence for history and saved searches
            config: Search tunables (default: SearchConfig())
            clock: Returns today's date; used for ages and quick filters
            strategy: Search strategy (default: RankedSearch)
        """
        self.config = config or SearchConfig()
        super().__init__(patients, self.config.debounce_ms)
        self._kv = kv_store
        self._clock = clock
        self._strategy = strategy or RankedSearch(
            self.config.risk_thresholds, clock, self.config.full_age_range
        )
        self._defaults = self.config.default_filters
        self._filters = self._defaults
        self._history: List[str] = self._load_history()
        self._saved: List[SavedSearch] = self._load_saved_searches()
        self._refresh()

    @property
    def filters(self) -> FilterConfig:
        return self._filters

    @property
    def results(self) -> List[SearchResult]:
        return list(self._results)

    @property
    def search_history(self) -> List[str]:
        return list(self._history)

    @property
    def saved_searches(self) -> List[SavedSearch]:
        return list(self._saved)

    @property
    def has_active_filters(self) -> bool:
        """True when anything differs from the defaults, typed query included."""
        return self._filters != self._defaults

    @property
    def available_conditions(self) -> List[str]:
        """Distinct condition labels in the working set, for the condition picker."""
        labels: Dict[str, str] = {}
        for patient in self._patients:
            for part in (patient.condition or "").split(","):
                label = part.strip()
                if label and label.lower() not in labels:
                    labels[label.lower()] = label
        return sorted(labels.values(), key=str.casefold)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_filter(self, **changes: Any) -> FilterConfig:
        """Merge changes into the current filters.

        Values are coerced to safe ones: non-numeric ages become 0, ages are
        clamped to [0, max_age], reversed ranges are swapped, unknown enum
        values fall back to their default and date strings are parsed.

        Raises:
            ValueError: If a change names a field FilterConfig doesn't have
        """
        valid = {f.name for f in fields(FilterConfig)}
        unknown = set(changes) - valid
        if unknown:
            raise ValueError(f"Unknown filter field(s): {', '.join(sorted(unknown))}")

        coerced = {name: self._coerce(name, value) for name, value in changes.items()}
        self._set_filters(self._validated(replace(self._filters, **coerced)))
        return self._filters

    def reset_filters(self) -> None:
        self._set_filters(self._defaults, immediate=True)

    def save_search(self, name: str) -> SavedSearch:
        """Snapshot the current filters under a name and persist the list."""
        snapshot = SavedSearch(name=name, filters=self._filters)
        self._saved.append(snapshot)
        self._persist(SAVED_SEARCHES_KEY, [s.to_dict() for s in self._saved])
        return snapshot

    def load_search(self, snapshot: Union[SavedSearch, FilterConfig]) -> None:
        """Replace the current filters wholesale with a saved snapshot."""
        filters = snapshot.filters if isinstance(snapshot, SavedSearch) else snapshot
        self._set_filters(self._validated(filters), immediate=True)

    def find_saved_search(self, name: str) -> Optional[SavedSearch]:
        """Return the most recently saved search with this name."""
        for saved in reversed(self._saved):
            if saved.name == name:
                return saved
        return None

    def add_to_history(self, query: str) -> None:
        """Put a query at the front of the history, dropping older duplicates.

        Blank queries are ignored.
        """
        if not query or not query.strip():
            return
        self._history = [query] + [q for q in self._history if q != query]
        self._history = self._history[:self.config.history_limit]
        self._persist(HISTORY_KEY, self._history)

    def apply_quick_filter(self, name: str) -> FilterConfig:
        """Apply one of the pre-canned filters in QUICK_FILTERS.

        Raises:
            ValueError: If the name is not a known quick filter
        """
        if name == "recent_visits":
            today = self._clock()
            start = today - timedelta(days=self.config.recent_visit_days)
            return self.update_filter(last_visit_start=start, last_visit_end=today)
        if name == "high_risk":
            return self.update_filter(risk_level="high")
        if name == "elderly":
            return self.update_filter(age_range=(self.config.elderly_min_age, self.config.max_age))
        raise ValueError(f"Unknown quick filter: {name}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _compute(self) -> List[SearchResult]:
        return self._strategy.search(self._patients, self._filters, self._effective_query)

    def _set_filters(self, new: FilterConfig, immediate: bool = False) -> None:
        old = self._filters
        self._filters = new

        if new.query != old.query or immediate:
            self._push_query(new.query, immediate)
            # Only the query changed: results update when it settles
            if not immediate and replace(old, query=new.query) == new:
                return

        self._refresh()

    def _coerce(self, name: str, value: Any) -> Any:
        if name == "query":
            return "" if value is None else str(value)
        if name == "age_range":
            try:
                low, high = value
            except (TypeError, ValueError):
                return self._defaults.age_range
            return (_to_int(low), _to_int(high))
        if name == "conditions":
            if value is None:
                return ()
            if isinstance(value, str):
                value = [value]
            return tuple(str(c).strip() for c in value if c and str(c).strip())
        if name in ("last_visit_start", "last_visit_end"):
            return parse_date(value)
        if name == "insurance":
            return str(value) if value else None
        if name == "sort_by":
            return value if value in SORT_KEYS else "name"
        if name == "sort_order":
            return value if value in SORT_ORDERS else "asc"
        if name == "risk_level":
            return value if value in RISK_LEVELS else "all"
        return value

    def _validated(self, filters: FilterConfig) -> FilterConfig:
        max_age = self.config.max_age
        low, high = (min(max(age, 0), max_age) for age in filters.age_range)
        if low > high:
            low, high = high, low

        start, end = filters.last_visit_start, filters.last_visit_end
        if start and end and start > end:
            start, end = end, start

        return replace(filters, age_range=(low, high), last_visit_start=start, last_visit_end=end)

    def _persist(self, key: str, items: list) -> None:
        try:
            self._kv.set(key, json.dumps(items))
        except Exception as e:
            print(f"[SearchState] Could not persist {key}: {e}", file=sys.stderr)

    def _load_list(self, key: str) -> list:
        try:
            raw = self._kv.get(key)
        except Exception as e:
            print(f"[SearchState] Could not read {key}: {e}", file=sys.stderr)
            return []

        if raw is None:
            return []

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            print(f"[SearchState] Ignoring malformed {key}: {e}", file=sys.stderr)
            return []

        if not isinstance(data, list):
            print(f"[SearchState] Ignoring malformed {key}: expected a list", file=sys.stderr)
            return []
        return data

    def _load_history(self) -> List[str]:
        history = [q for q in self._load_list(HISTORY_KEY) if isinstance(q, str) and q.strip()]
        return history[:self.config.history_limit]

    def _load_saved_searches(self) -> List[SavedSearch]:
        saved = []
        for entry in self._load_list(SAVED_SEARCHES_KEY):
            snapshot = SavedSearch.from_dict(entry)
            if snapshot is not None:
                saved.append(snapshot)
        return saved


class PatientListSearch(_QueryState):
    """State of the plain patient list: word search, risk/condition filters and sort."""

    def __init__(
        self,
        patients: Sequence[Patient],
        config: Optional[SearchConfig] = None,
        strategy: Optional[SearchStrategy] = None,
    ):
        self.config = config or SearchConfig()
        super().__init__(patients, self.config.debounce_ms)
        self._strategy = strategy or ListSearch(self.config.risk_thresholds)
        self._filter_state = DEFAULT_LIST_FILTERS
        self._refresh()

    @property
    def filter_state(self) -> ListFilters:
        return self._filter_state

    @property
    def results(self) -> List[Patient]:
        return list(self._results)

    @property
    def unique_conditions(self) -> List[str]:
        """Distinct condition values, sorted, for the condition dropdown."""
        return sorted({p.condition for p in self._patients if p.condition})

    def update_filter(self, **changes: Any) -> ListFilters:
        """Merge changes into the list filters.

        Raises:
            ValueError: If a change names a field ListFilters doesn't have
        """
        valid = {f.name for f in fields(ListFilters)}
        unknown = set(changes) - valid
        if unknown:
            raise ValueError(f"Unknown filter field(s): {', '.join(sorted(unknown))}")

        if "search_query" in changes:
            changes["search_query"] = str(changes["search_query"] or "")
        if "filter_risk" in changes and changes["filter_risk"] not in RISK_LEVELS:
            changes["filter_risk"] = "all"
        if "filter_condition" in changes:
            changes["filter_condition"] = str(changes["filter_condition"] or "all")
        if "sort_by" in changes and changes["sort_by"] not in LIST_SORT_KEYS:
            changes["sort_by"] = "name"

        old = self._filter_state
        self._filter_state = replace(old, **changes)

        if self._filter_state.search_query != old.search_query:
            self._push_query(self._filter_state.search_query, immediate=False)
            if replace(old, search_query=self._filter_state.search_query) == self._filter_state:
                return self._filter_state

        self._refresh()
        return self._filter_state

    def clear_filters(self) -> None:
        self._filter_state = DEFAULT_LIST_FILTERS
        self._push_query("", immediate=True)
        self._refresh()

    def _compute(self) -> List[Patient]:
        return self._strategy.search(self._patients, self._filter_state, self._effective_query)
