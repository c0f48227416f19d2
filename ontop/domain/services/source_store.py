"""Source Store.

Holds the four independent per-source record buckets and enforces
identifier uniqueness inside each bucket on ingest.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Records are never mutated or removed once stored (except by reset())
    - Dedup scope is one bucket; the same identifier may live in two buckets
"""

import logging
from typing import Iterable, Optional, Union

from ontop.domain.enums import SourceName
from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import UnknownSourceError

logger = logging.getLogger(__name__)

SourceKey = Union[str, SourceName]


def resolve_source(name: SourceKey) -> SourceName:
    """Map a source name onto the closed SourceName set.

    Raises:
        UnknownSourceError: If the name is not one of the four sources
    """
    try:
        return SourceName.parse(name)
    except ValueError:
        raise UnknownSourceError(str(name)) from None


class SourceStore:
    """Four named, ordered record buckets with per-source dedup on ingest.

    Example Usage:
        ```python
        store = SourceStore()
        store.ingest("eCW", batch)   # returns number of records appended
        store.ingest("eCW", batch)   # 0, already loaded
        ```
    """

    def __init__(self):
        self._buckets: dict[SourceName, list[PatientRecord]] = {
            source: [] for source in SourceName
        }

    def ingest(self, source: SourceKey, batch: Iterable[PatientRecord]) -> int:
        """Append the records of a batch whose identifier is new to the bucket.

        Existing order is preserved and survivors keep their relative order.
        A repeated identifier inside the batch itself is also dropped after
        its first occurrence.

        Parameters:
            source: Source the batch is attributed to
            batch: Parsed records

        Returns:
            int: Number of records appended

        Raises:
            UnknownSourceError: If source is not one of the four sources
        """
        bucket_name = resolve_source(source)
        bucket = self._buckets[bucket_name]
        seen = {record.identifier for record in bucket}

        survivors = []
        received = 0
        for record in batch:
            received += 1
            if record.identifier in seen:
                continue
            seen.add(record.identifier)
            survivors.append(record)

        bucket.extend(survivors)

        skipped = received - len(survivors)
        logger.info(
            f"Ingested {len(survivors)} record(s) into {bucket_name.value} "
            f"({skipped} duplicate(s) skipped, bucket size {len(bucket)})"
        )
        return len(survivors)

    def records(self, source: SourceKey) -> list[PatientRecord]:
        """Records of one bucket, in ingest order (a copy of the list)."""
        return list(self._buckets[resolve_source(source)])

    def all_records(self) -> list[PatientRecord]:
        """Union of all buckets in canonical source order."""
        combined = []
        for source in SourceName:
            combined.extend(self._buckets[source])
        return combined

    def get(self, source: SourceKey, identifier: str) -> Optional[PatientRecord]:
        """Look up a record by its identifier within one bucket."""
        for record in self._buckets[resolve_source(source)]:
            if record.identifier == identifier:
                return record
        return None

    def identifiers(self) -> set[str]:
        """Every identifier held in any bucket."""
        return {record.identifier for record in self.all_records()}

    def counts(self) -> dict[str, int]:
        return {source.value: len(self._buckets[source]) for source in SourceName}

    def reset(self) -> None:
        """Empty every bucket."""
        for bucket in self._buckets.values():
            bucket.clear()
        logger.debug("Source store reset")

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._buckets.values())
