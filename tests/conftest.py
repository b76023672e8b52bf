"""Shared fixtures for tests."""
import json
import pytest
from datetime import date

from src.config import SearchConfig
from src.kv_store import MemoryKeyValueStore
from src.models import Patient, TimelineEvent
from src.search_state import SearchStateStore


TODAY = date(2026, 10, 18)


SAMPLE_PATIENTS = [
    {
        "id": "1",
        "name": "John Doe",
        "dob": "1980-05-10",
        "age": 45,
        "condition": "Diabetes",
        "risk": 65,
        "phone": "(555) 123-4567",
        "email": "john.doe@example.com",
        "insurance": {"provider": "Aetna"},
        "timeline": [
            {"date": "2026-10-01", "type": "appointment", "title": "Follow-up"},
            {"date": "2026-03-12", "type": "note"},
        ],
    },
    {
        "id": "2",
        "name": "Jane Smith",
        "dob": "1993-11-20",
        "age": 32,
        "condition": "Hypertension",
        "risk": 45,
        "phone": "555-987-6543",
        "email": "jane.smith@example.com",
        "insurance": {"provider": "Cigna"},
        "timeline": [
            {"date": "2026-06-15", "type": "note"},
            {"date": "2026-10-10", "type": "lab"},
        ],
    },
    {
        "id": "3",
        "name": "Bob Johnson",
        "dob": "1955-01-02",
        "age": 28,
        "condition": "Diabetes",
        "risk": 75,
        "phone": "555-222-0000",
        "email": "bob.johnson@example.com",
        "insurance": {"provider": "Aetna"},
        "timeline": [
            {"date": "2025-12-01", "type": "appointment"},
        ],
    },
]


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def patients():
    """John Doe (46, risk 65), Jane Smith (32, risk 45), Bob Johnson (71, risk 75) as of TODAY."""
    return [
        Patient(
            id="1",
            name="John Doe",
            dob="1980-05-10",
            age=45,
            condition="Diabetes",
            risk=65,
            phone="(555) 123-4567",
            email="john.doe@example.com",
            insurance="Aetna",
            timeline=(
                TimelineEvent(date="2026-10-01", type="appointment", title="Follow-up"),
                TimelineEvent(date="2026-03-12", type="note"),
            ),
        ),
        Patient(
            id="2",
            name="Jane Smith",
            dob="1993-11-20",
            age=32,
            condition="Hypertension",
            risk=45,
            phone="555-987-6543",
            email="jane.smith@example.com",
            insurance="Cigna",
            timeline=(
                TimelineEvent(date="2026-06-15", type="note"),
                TimelineEvent(date="2026-10-10", type="lab"),
            ),
        ),
        Patient(
            id="3",
            name="Bob Johnson",
            dob="1955-01-02",
            age=28,
            condition="Diabetes",
            risk=75,
            phone="555-222-0000",
            email="bob.johnson@example.com",
            insurance="Aetna",
            timeline=(TimelineEvent(date="2025-12-01", type="appointment"),),
        ),
    ]


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest.fixture
def search_config():
    """Config without debounce, so query changes apply synchronously."""
    return SearchConfig(debounce_ms=0)


@pytest.fixture
def store(patients, kv_store, search_config):
    """Advanced search state over the sample patients."""
    s = SearchStateStore(patients, kv_store, search_config, clock=lambda: TODAY)
    yield s
    s.close()


@pytest.fixture
def patients_path(tmp_path):
    """Create a temporary patients JSON file with sample data."""
    path = tmp_path / "patients.json"
    path.write_text(json.dumps(SAMPLE_PATIENTS, indent=2))
    return path


@pytest.fixture
def store_db_path(tmp_path):
    """Return path for a temporary key-value database."""
    return tmp_path / "test_store.db"
