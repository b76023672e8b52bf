"""Configuration for the patient search core and MCP server."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from src.models import FilterConfig, RiskThresholds


@dataclass
class SearchConfig:
    """Tunables for query handling, history and quick filters."""
    # Query handling
    debounce_ms: int = 300  # Quiet period before a typed query takes effect
    history_limit: int = 10  # Max recent queries kept

    # Risk buckets: low < risk_low_below <= medium < risk_high_from <= high
    risk_low_below: float = 40
    risk_high_from: float = 60

    # Quick filters and age bounds
    recent_visit_days: int = 30
    elderly_min_age: int = 65
    max_age: int = 120

    @property
    def risk_thresholds(self) -> RiskThresholds:
        return RiskThresholds(low_below=self.risk_low_below, high_from=self.risk_high_from)

    @property
    def full_age_range(self) -> Tuple[int, int]:
        return (0, self.max_age)

    @property
    def default_filters(self) -> FilterConfig:
        """Untouched filter state; the age range spans 0 to max_age."""
        return FilterConfig(age_range=self.full_age_range)

    @classmethod
    def from_env(cls) -> "SearchConfig":
        """Create config from environment variables."""
        return cls(
            debounce_ms=int(os.environ.get("PATIENT_SEARCH_DEBOUNCE_MS", "300")),
            history_limit=int(os.environ.get("PATIENT_SEARCH_HISTORY_LIMIT", "10")),
            risk_low_below=float(os.environ.get("PATIENT_SEARCH_RISK_LOW", "40")),
            risk_high_from=float(os.environ.get("PATIENT_SEARCH_RISK_HIGH", "60")),
        )


@dataclass
class Config:
    """Main configuration for the patient search MCP server."""
    search: SearchConfig = field(default_factory=SearchConfig.from_env)
    store_db_path: Optional[Path] = None  # None = use default
    patients_path: Optional[Path] = None  # JSON file with the patient list

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        db_path_str = os.environ.get("PATIENT_SEARCH_STORE_DB")
        patients_str = os.environ.get("PATIENT_SEARCH_PATIENTS")

        return cls(
            search=SearchConfig.from_env(),
            store_db_path=Path(db_path_str) if db_path_str else None,
            patients_path=Path(patients_str) if patients_str else None,
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
