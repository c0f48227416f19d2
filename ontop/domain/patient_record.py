"""Patient Record Schema.

This module defines the canonical record shared by all four data sources and
by the composite records produced when an operator merges duplicates.

Architecture:
    - Pure domain model with zero infrastructure dependencies
    - Records are immutable once constructed (frozen Pydantic model)
    - Python field names are snake_case; the wire names used by the JSON
      dataset, imports and exports are kept as aliases
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PatientRecord(BaseModel):
    """A patient record as delivered by one source, or a merged composite.

    Every field is a raw string. Dates and timestamps are kept exactly as the
    source sent them; comparison goes through the date normalizer instead.

    Parameters:
        composite_identifier: Synthesized identifier, empty for source records (``userID``)
        identifier: Source-local patient identifier (``patientID``)
        name: Patient name (``patientName``)
        date_of_birth: Date of birth in whatever format the source used (``patientDOB``)
        gender: Patient gender (``patientGender``)
        zip_code: ZIP/postal code (``patientZipCode``)
        providers: Comma-joined source names the record is attributed to
        provider_url: Comma-joined provider URLs (``providerURL``)
        treatment_date: Raw treatment date (``treatmentDate``)
        start_time: Raw treatment start timestamp (``startTime``)
        end_time: Raw treatment end timestamp (``endTime``)
        features: Freeform comma-joined tags
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    composite_identifier: str = Field("", alias="userID", description="Synthesized composite identifier")
    identifier: str = Field(..., alias="patientID", description="Source-local patient identifier")
    name: str = Field("", alias="patientName")
    date_of_birth: str = Field("", alias="patientDOB")
    gender: str = Field("", alias="patientGender")
    zip_code: str = Field("", alias="patientZipCode")
    providers: str = Field("", alias="providers")
    provider_url: str = Field("", alias="providerURL")
    treatment_date: str = Field("", alias="treatmentDate")
    start_time: str = Field("", alias="startTime")
    end_time: str = Field("", alias="endTime")
    features: str = Field("", alias="features")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_to_string(cls, v: Any) -> Any:
        """Coerce scalar values to strings; ``None`` becomes the empty string.

        Sources frequently send ZIP codes and identifiers as numbers. Nested
        structures are left alone so that validation rejects them.
        """
        if v is None:
            return ""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("identifier")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        """Require a non-blank identifier; dedup is keyed on it."""
        if not v.strip():
            raise ValueError("patientID must be a non-empty string")
        return v

    @property
    def is_composite(self) -> bool:
        return bool(self.composite_identifier)

    def to_wire(self) -> dict:
        """Serialize using wire names, in declaration order."""
        return self.model_dump(by_alias=True)


# Wire names in declaration order; used as the CSV header
WIRE_FIELDS: tuple[str, ...] = tuple(
    field.alias or name for name, field in PatientRecord.model_fields.items()
)
