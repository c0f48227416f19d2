"""Query Engine.

Evaluates a conjunctive multi-field filter over the union of all source
buckets and partitions the matches back by source.

Architecture:
    - Pure domain service; reads the SourceStore, never mutates it
    - Uses pandas vectorized string operations over a frame built from the
      store, then maps matching rows back to the original record objects
    - A record whose providers name several sources lands in several buckets
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ontop.domain.enums import ALL_PLATFORMS, PlatformMatchMode, SourceName
from ontop.domain.patient_record import PatientRecord
from ontop.domain.services.date_normalizer import EMPTY_DATE, normalize_date
from ontop.domain.services.source_store import SourceStore

logger = logging.getLogger(__name__)


class SearchCriteria(BaseModel):
    """Search filter. Every field is optional; blank means "no constraint".

    Parameters:
        name: Case-insensitive substring of the patient name
        dob: Date of birth, compared after normalization
        gender: Case-insensitive exact gender
        zip: Case-sensitive substring of the ZIP code
        platform: Source name to restrict to, or "All"
        start_date: Inclusive lower bound on the treatment date
        end_date: Inclusive upper bound on the treatment date
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = ""
    dob: str = ""
    gender: str = ""
    zip: str = ""
    platform: str = ALL_PLATFORMS
    start_date: str = Field("", alias="startDate")
    end_date: str = Field("", alias="endDate")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_to_string(cls, v):
        """None means blank; numbers (a typed ZIP code, say) become text."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @field_validator("platform")
    @classmethod
    def default_platform(cls, v: str) -> str:
        return v.strip() or ALL_PLATFORMS

    @property
    def has_date_range(self) -> bool:
        """True when both bounds normalize; a single bound does not narrow."""
        return bool(normalize_date(self.start_date)) and bool(normalize_date(self.end_date))

    def is_vacuous(self) -> bool:
        return (
            not self.name
            and not normalize_date(self.dob)
            and not self.gender
            and not self.zip
            and self.platform == ALL_PLATFORMS
            and not self.has_date_range
        )


@dataclass
class PartitionedResult:
    """Search output: one ordered list of records per source."""

    buckets: dict[SourceName, list[PatientRecord]] = field(
        default_factory=lambda: {source: [] for source in SourceName}
    )

    def __getitem__(self, source) -> list[PatientRecord]:
        return self.buckets[SourceName.parse(source)]

    @property
    def total(self) -> int:
        """Number of bucket entries (a multi-source record counts once per bucket)."""
        return sum(len(records) for records in self.buckets.values())

    def is_empty(self) -> bool:
        return self.total == 0

    def all_records(self) -> list[PatientRecord]:
        """Flatten in canonical bucket order, keeping cross-bucket repeats."""
        flattened = []
        for source in SourceName:
            flattened.extend(self.buckets[source])
        return flattened

    def identifiers(self) -> dict[str, list[str]]:
        return {
            source.value: [record.identifier for record in self.buckets[source]]
            for source in SourceName
        }

    def to_dict(self) -> dict[str, list[dict]]:
        """Four-bucket JSON shape, identical to the initial dataset layout."""
        return {
            source.value: [record.to_wire() for record in self.buckets[source]]
            for source in SourceName
        }


def provider_matches(providers: pd.Series, platform: str, mode: PlatformMatchMode) -> pd.Series:
    """Boolean mask of rows whose providers string names ``platform``.

    SUBSTRING keeps the plain containment test, so "AMD2" matches "AMD".
    TOKEN compares against the comma-split, stripped provider list.
    """
    if mode == PlatformMatchMode.TOKEN:
        return providers.map(
            lambda value: platform in {token.strip() for token in value.split(",")}
        ).astype(bool)
    return providers.str.contains(platform, case=True, regex=False)


class QueryEngine:
    """Conjunctive search over a SourceStore.

    Example Usage:
        ```python
        engine = QueryEngine(store)
        result = engine.search(SearchCriteria(name="doe", platform="eCW"))
        result["eCW"]  # matching records attributed to eCW
        ```
    """

    def __init__(self, store: SourceStore, platform_match: PlatformMatchMode = PlatformMatchMode.SUBSTRING):
        self.store = store
        self.platform_match = PlatformMatchMode(platform_match)

    def _build_frame(self, records: list[PatientRecord]) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "name": [record.name for record in records],
                "date_of_birth": [record.date_of_birth for record in records],
                "gender": [record.gender for record in records],
                "zip_code": [record.zip_code for record in records],
                "providers": [record.providers for record in records],
                "treatment_date": [record.treatment_date for record in records],
            },
            dtype=object,
        )

    def match_mask(self, df: pd.DataFrame, criteria: SearchCriteria) -> pd.Series:
        """Evaluate every supplied criterion and AND the masks together."""
        mask = pd.Series(True, index=df.index)
        if criteria.is_vacuous():
            return mask

        if criteria.name:
            mask &= df["name"].str.lower().str.contains(criteria.name.lower(), regex=False)

        search_dob = normalize_date(criteria.dob)
        if search_dob != EMPTY_DATE:
            record_dob = df["date_of_birth"].map(normalize_date)
            mask &= (record_dob != EMPTY_DATE) & (record_dob == search_dob)

        if criteria.gender:
            mask &= df["gender"].str.lower() == criteria.gender.lower()

        if criteria.zip:
            mask &= df["zip_code"].str.contains(criteria.zip, case=True, regex=False)

        if criteria.platform != ALL_PLATFORMS:
            mask &= provider_matches(df["providers"], criteria.platform, self.platform_match)

        start = normalize_date(criteria.start_date)
        end = normalize_date(criteria.end_date)
        if start and end:
            treated = df["treatment_date"].map(normalize_date)
            mask &= (treated != EMPTY_DATE) & (treated >= start) & (treated <= end)

        return mask.astype(bool)

    def search(self, criteria: Optional[SearchCriteria] = None) -> PartitionedResult:
        """Run a search and partition the matches by source.

        Parameters:
            criteria: Filter to apply; None or an empty criteria matches everything

        Returns:
            PartitionedResult: Matches re-tested against each source name
        """
        criteria = criteria or SearchCriteria()
        candidates = self.store.all_records()
        result = PartitionedResult()

        if not candidates:
            logger.debug("Search over empty store")
            return result

        df = self._build_frame(candidates)
        mask = self.match_mask(df, criteria)
        matched = df[mask]

        if not matched.empty:
            for source in SourceName:
                in_bucket = provider_matches(matched["providers"], source.value, self.platform_match)
                rows = matched.index[in_bucket.to_numpy(dtype=bool)]
                result.buckets[source] = [candidates[i] for i in rows]

        logger.info(
            f"Search matched {int(mask.sum())} of {len(candidates)} record(s): "
            + ", ".join(f"{source.value}={len(records)}" for source, records in result.buckets.items())
        )
        return result
