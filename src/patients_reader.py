"""Load patient records from a JSON export."""
import json
import math
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.models import Patient, TimelineEvent


def load_patients_file(patients_path: Path) -> Any:
    """Load the patients JSON file.

    Args:
        patients_path: Path to a JSON file

    Returns:
        Parsed JSON data

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file is malformed
    """
    if not patients_path.exists():
        raise FileNotFoundError(f"Patients file not found at {patients_path}")

    with open(patients_path, "r", encoding="utf-8") as f:
        return json.load(f)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _number(value: Any) -> Optional[float]:
    """Finite number from a JSON value, or None (NaN and infinities included)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_patient(data: Dict[str, Any]) -> Optional[Patient]:
    """Build a Patient from one JSON object.

    Args:
        data: Patient dict as exported by the records API

    Returns:
        Patient, or None if the entry has no id
    """
    if not isinstance(data, dict) or not data.get("id"):
        return None

    # The API nests the provider name: {"insurance": {"provider": "..."}}
    insurance = data.get("insurance")
    if isinstance(insurance, dict):
        insurance = insurance.get("provider")

    timeline = []
    for event in data.get("timeline") or []:
        if isinstance(event, dict) and event.get("date"):
            timeline.append(TimelineEvent(
                date=str(event["date"]),
                type=str(event.get("type", "")),
                title=_text(event.get("title")),
            ))

    age = _number(data.get("age"))

    return Patient(
        id=str(data["id"]),
        name=str(data.get("name") or ""),
        condition=_text(data.get("condition")),
        dob=_text(data.get("dob")),
        age=int(age) if age is not None else None,
        phone=_text(data.get("phone")),
        email=_text(data.get("email")),
        address=_text(data.get("address")),
        risk=_number(data.get("risk")),
        insurance=_text(insurance),
        timeline=tuple(timeline),
    )


def read_patients(patients_path: Path) -> List[Patient]:
    """Read all patients from a JSON file.

    Accepts either a top-level array or an object with a "patients" array.
    Entries without an id are skipped.

    Args:
        patients_path: Path to the JSON file

    Returns:
        List of patients in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file is malformed
    """
    data = load_patients_file(patients_path)
    if isinstance(data, dict):
        data = data.get("patients", [])

    patients = []
    for entry in data if isinstance(data, list) else []:
        patient = parse_patient(entry)
        if patient is not None:
            patients.append(patient)

    return patients
