"""Domain layer for Ontop-Health.

This module contains the patient record schema and the reconciliation core.
All domain models are pure Python with no external dependencies beyond
Pydantic and pandas.
"""

from .enums import ALL_PLATFORMS, PlatformMatchMode, SourceName
from .patient_record import PatientRecord, WIRE_FIELDS

__all__ = [
    "ALL_PLATFORMS",
    "PlatformMatchMode",
    "SourceName",
    "PatientRecord",
    "WIRE_FIELDS",
]
