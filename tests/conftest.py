"""Shared fixtures for the reconciler test suite."""

import json
from datetime import datetime, timezone

import pytest

from ontop.domain.patient_record import PatientRecord
from ontop.domain.services.record_merger import IdentifierFactory


def build_record(identifier: str, **fields) -> PatientRecord:
    """Build a source record with sensible defaults for unspecified fields."""
    defaults = {
        "name": f"Patient {identifier}",
        "date_of_birth": "1980-01-01",
        "gender": "male",
        "zip_code": "94110",
        "providers": "eCW",
        "provider_url": "https://ecw.example.com",
        "treatment_date": "2024-03-05",
        "start_time": "2024-03-05T09:00:00Z",
        "end_time": "2024-03-05T10:00:00Z",
        "features": "checkup",
    }
    defaults.update(fields)
    return PatientRecord(identifier=identifier, **defaults)


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def fixed_now():
    return datetime(2025, 6, 15, 12, 30, 45, 123000, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock(fixed_now):
    return lambda: fixed_now


@pytest.fixture
def scripted_ids():
    """IdentifierFactory whose draws follow a fixed character script."""
    def _factory(*identifiers: str) -> IdentifierFactory:
        characters = iter("".join(identifiers))
        return IdentifierFactory(choice=lambda digits: next(characters))
    return _factory


@pytest.fixture
def scenario_dataset():
    """The eCW/AMD John Doe scenario, in wire format."""
    return {
        "eCW": [
            {
                "userID": "",
                "patientID": "1",
                "patientName": "John Doe",
                "patientDOB": "1980-01-01",
                "patientGender": "male",
                "patientZipCode": "94110",
                "providers": "eCW",
                "providerURL": "https://ecw.example.com",
                "treatmentDate": "2024-03-05",
                "startTime": "2024-03-05T09:00:00Z",
                "endTime": "2024-03-05T09:30:00Z",
                "features": "diabetes",
            }
        ],
        "AMD": [
            {
                "userID": "",
                "patientID": "2",
                "patientName": "Jon Doe",
                "patientDOB": "1980-01-01",
                "patientGender": "male",
                "patientZipCode": "94110",
                "providers": "AMD",
                "providerURL": "https://amd.example.com",
                "treatmentDate": "2024-03-10",
                "startTime": "2024-03-10T14:00:00Z",
                "endTime": "2024-03-10T14:45:00Z",
                "features": "hypertension",
            }
        ],
        "Quest": [],
        "Behavidance": [],
    }


@pytest.fixture
def dataset_file(tmp_path, scenario_dataset):
    path = tmp_path / "patients.json"
    path.write_text(json.dumps(scenario_dataset), encoding="utf-8")
    return path
