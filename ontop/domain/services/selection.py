"""Selection Set.

Tracks the records an operator has ticked for merging, in toggle order.
"""

import logging
from typing import Hashable, Iterator, Optional

from ontop.domain.patient_record import PatientRecord
from ontop.domain.services.source_store import SourceKey, resolve_source

logger = logging.getLogger(__name__)


class SelectionSet:
    """Ordered set of records pending merge.

    Membership is keyed on ``(source, identifier)`` when the caller says
    which bucket a record was picked from. Identifiers are unique within a
    bucket, so that pair names exactly one stored record. Records toggled
    without a source fall back to object identity. Either way two equal
    looking records from different buckets are distinct members.
    """

    def __init__(self):
        self._entries: list[tuple[Hashable, PatientRecord]] = []

    @staticmethod
    def _key(record: PatientRecord, source: Optional[SourceKey]) -> Hashable:
        if source is None:
            return ("id", id(record))
        return ("source", resolve_source(source), record.identifier)

    def toggle(self, record: PatientRecord, source: Optional[SourceKey] = None) -> bool:
        """Add the record if absent, remove it if present.

        Returns:
            bool: True if the record is now selected, False if it was removed
        """
        key = self._key(record, source)
        for index, (existing_key, _) in enumerate(self._entries):
            if existing_key == key:
                del self._entries[index]
                logger.debug(f"Deselected record {record.identifier}")
                return False
        self._entries.append((key, record))
        logger.debug(f"Selected record {record.identifier}")
        return True

    def contains(self, record: PatientRecord, source: Optional[SourceKey] = None) -> bool:
        key = self._key(record, source)
        return any(existing_key == key for existing_key, _ in self._entries)

    def records(self) -> list[PatientRecord]:
        """Selected records in toggle order."""
        return [record for _, record in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PatientRecord]:
        return iter(self.records())

    def __bool__(self) -> bool:
        return bool(self._entries)
