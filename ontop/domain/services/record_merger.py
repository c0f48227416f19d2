"""Record Merger.

Synthesizes one composite record from the records an operator selected
across sources, and issues the composite's short identifier.

Architecture:
    - Pure domain service; the clock and random source are injectable so
      merges are reproducible in tests
    - Field policy: identifiers, providers, provider URLs and features are
      concatenated without dedup; names are deduplicated in first-seen
      order; demographics come from the first selected record
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Sequence

from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import IdentifierExhaustedError
from ontop.domain.services.date_normalizer import normalize_date

logger = logging.getLogger(__name__)

HEX_DIGITS = "0123456789abcdef"
IDENTIFIER_LENGTH = 6
JOIN_SEPARATOR = ", "


def to_utc(moment: datetime) -> datetime:
    """Convert to UTC; a naive datetime is taken to be UTC already."""
    return moment.astimezone(timezone.utc) if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return to_utc(moment).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IdentifierFactory:
    """Issues six-character lowercase hex identifiers.

    Each character is drawn uniformly and independently. The factory
    remembers what it has issued and redraws on a repeat, so identifiers are
    unique within one session; nothing is checked across sessions.

    Parameters:
        choice: Function picking one character from a string (defaults to secrets.choice)
        max_attempts: Redraw limit before giving up
    """

    def __init__(self, choice: Optional[Callable[[str], str]] = None, max_attempts: int = 1000):
        self._choice = choice or secrets.choice
        self.max_attempts = max_attempts
        self._issued: set[str] = set()

    def draw(self) -> str:
        """One raw draw, with no uniqueness check."""
        return "".join(self._choice(HEX_DIGITS) for _ in range(IDENTIFIER_LENGTH))

    def issue(self, avoid: Iterable[str] = ()) -> str:
        """Draw an identifier not previously issued and not in ``avoid``.

        Raises:
            IdentifierExhaustedError: If no unused identifier turned up within max_attempts
        """
        taken = self._issued.union(avoid)
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.draw()
            if candidate not in taken:
                self._issued.add(candidate)
                if attempt > 1:
                    logger.debug(f"Composite identifier collision resolved after {attempt} draws")
                return candidate
        raise IdentifierExhaustedError(
            f"Could not draw an unused identifier in {self.max_attempts} attempts"
        )

    @property
    def issued(self) -> frozenset[str]:
        return frozenset(self._issued)

    def reset(self) -> None:
        self._issued.clear()


def distinct_in_order(values: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    return list(dict.fromkeys(values))


class RecordMerger:
    """Builds composite records from an ordered selection.

    Example Usage:
        ```python
        merger = RecordMerger()
        composite = merger.merge([ecw_record, amd_record])
        composite.identifier  # "1, 2"
        ```
    """

    def __init__(
        self,
        identifier_factory: Optional[IdentifierFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.identifier_factory = identifier_factory or IdentifierFactory()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def merge(self, selection: Sequence[PatientRecord], avoid_identifiers: Iterable[str] = ()) -> Optional[PatientRecord]:
        """Merge the selected records into one composite record.

        Parameters:
            selection: Records in selection order
            avoid_identifiers: Identifiers the new composite identifier must not reuse

        Returns:
            Optional[PatientRecord]: The composite, or None for an empty selection
        """
        if not selection:
            logger.info("Nothing to merge")
            return None

        first = selection[0]
        now = to_utc(self.clock())

        composite = PatientRecord(
            composite_identifier=self.identifier_factory.issue(avoid_identifiers),
            identifier=JOIN_SEPARATOR.join(record.identifier for record in selection),
            name=JOIN_SEPARATOR.join(distinct_in_order(record.name for record in selection)),
            date_of_birth=first.date_of_birth,
            gender=first.gender,
            zip_code=first.zip_code,
            providers=JOIN_SEPARATOR.join(record.providers for record in selection),
            provider_url=JOIN_SEPARATOR.join(record.provider_url for record in selection),
            treatment_date=normalize_date(now.date().isoformat()),
            start_time=format_timestamp(now),
            end_time=format_timestamp(now),
            features=JOIN_SEPARATOR.join(record.features for record in selection),
        )

        logger.info(
            f"Merged {len(selection)} record(s) into composite {composite.composite_identifier}"
        )
        return composite
