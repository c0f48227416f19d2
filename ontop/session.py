"""Reconciliation Session.

The session owns everything an operator works with: the four source buckets,
the current selection, the single outstanding composite record and the most
recent search. It is the one place where component errors are turned into
user-facing Results.

Architecture:
    - Application layer wiring domain services to import/export adapters
    - One re-entrant lock serializes every state change; ingest and the
      forced re-run of the last search happen inside the same critical section
    - File reading and parsing happen before the lock is taken, so a slow or
      broken file never blocks searches and never half-populates a bucket
"""

import asyncio
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ontop.adapters.exporters import (
    export_composite_json,
    export_partitioned_json,
    export_records_csv,
)
from ontop.adapters.ingesters import JSONBatchIngester, get_adapter
from ontop.adapters.ingesters.base import DEFAULT_MAX_BATCH_BYTES
from ontop.domain.enums import PlatformMatchMode, SourceName
from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import (
    InvalidCriteriaError,
    NoFileSelectedError,
    NothingToExportError,
    ReconciliationError,
    Result,
)
from ontop.domain.services import (
    IdentifierFactory,
    PartitionedResult,
    QueryEngine,
    RecordMerger,
    SearchCriteria,
    SelectionSet,
    SourceStore,
)
from ontop.domain.services.source_store import SourceKey, resolve_source
from ontop.infrastructure.config_manager import EngineConfig

logger = logging.getLogger(__name__)

NOTHING_TO_MERGE = "Nothing to merge"

PathLike = Union[str, Path]


class ReconciliationSession:
    """Explicit engine object holding all state of one operator session.

    Example Usage:
        ```python
        session = ReconciliationSession()
        session.load_dataset("patients.json")
        session.import_file("AMD", "amd_new.json")
        result = session.search(SearchCriteria(name="doe"))
        session.select("eCW", "1")
        session.select("AMD", "2")
        composite = session.merge().value
        session.export_csv()
        ```
    """

    def __init__(
        self,
        platform_match: PlatformMatchMode = PlatformMatchMode.SUBSTRING,
        identifier_factory: Optional[IdentifierFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES,
        composite_path: PathLike = "oonTop.json",
        csv_path: PathLike = "oonTop.csv",
        csv_delimiter: str = ",",
    ):
        self.store = SourceStore()
        self.engine = QueryEngine(self.store, platform_match=platform_match)
        self.selection = SelectionSet()
        self.merger = RecordMerger(identifier_factory=identifier_factory, clock=clock)
        self.max_batch_bytes = max_batch_bytes
        self.composite_path = Path(composite_path)
        self.csv_path = Path(csv_path)
        self.csv_delimiter = csv_delimiter

        self.composite: Optional[PatientRecord] = None
        self.last_criteria = SearchCriteria()
        self.last_result: Optional[PartitionedResult] = None
        self._pending_files: dict[SourceName, Path] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs) -> "ReconciliationSession":
        """Build a session from validated engine configuration."""
        return cls(
            platform_match=config.platform_match,
            max_batch_bytes=config.max_batch_bytes,
            composite_path=config.composite_export_path,
            csv_path=config.csv_export_path,
            csv_delimiter=config.csv_delimiter,
            **kwargs,
        )

    def reset(self) -> None:
        """Return to a freshly constructed state (issued identifiers are forgotten too)."""
        with self._lock:
            self.store.reset()
            self.selection.clear()
            self.merger.identifier_factory.reset()
            self.composite = None
            self.last_criteria = SearchCriteria()
            self.last_result = None
            self._pending_files.clear()
        logger.info("Session reset")

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def _refresh(self) -> PartitionedResult:
        self.last_result = self.engine.search(self.last_criteria)
        return self.last_result

    def ingest(self, source: SourceKey, batch: Iterable[PatientRecord]) -> Result[int]:
        """Ingest a parsed batch, then re-run the last search.

        Returns:
            Result[int]: Number of records appended
        """
        try:
            bucket = resolve_source(source)
            records = list(batch)
            with self._lock:
                appended = self.store.ingest(bucket, records)
                self._refresh()
        except ReconciliationError as e:
            logger.error(f"Ingest into {source} failed: {e}")
            return Result.failure_result(e)
        return Result.success_result(appended)

    def load_dataset(self, path: PathLike) -> Result[dict]:
        """Load the initial four-bucket dataset.

        A failure is logged and reported but is not fatal: the buckets stay
        as they were (empty at startup) and manual imports keep working.

        Returns:
            Result[dict]: Records appended per source
        """
        ingester = JSONBatchIngester(max_batch_bytes=self.max_batch_bytes)
        try:
            dataset = ingester.load_dataset(str(path))
        except ReconciliationError as e:
            logger.warning(f"Initial dataset unavailable, continuing with empty sources: {e}")
            return Result.failure_result(e)
        return self.load_dataset_records(dataset)

    def load_dataset_records(self, dataset: dict) -> Result[dict]:
        """Ingest an already parsed dataset (source name -> records)."""
        try:
            buckets = {resolve_source(name): list(records) for name, records in dataset.items()}
            with self._lock:
                appended = {
                    bucket.value: self.store.ingest(bucket, records)
                    for bucket, records in buckets.items()
                }
                self._refresh()
        except ReconciliationError as e:
            logger.error(f"Dataset ingest failed: {e}")
            return Result.failure_result(e)
        return Result.success_result(appended)

    def _parse_file(self, path: PathLike) -> list[PatientRecord]:
        adapter = get_adapter(str(path), max_batch_bytes=self.max_batch_bytes)
        return adapter.parse_batch(str(path))

    def import_file(self, source: SourceKey, path: PathLike) -> Result[int]:
        """Parse an import file and ingest it into one source bucket.

        A file that fails to parse leaves the store unchanged.

        Returns:
            Result[int]: Number of records appended
        """
        try:
            bucket = resolve_source(source)
            batch = self._parse_file(path)
        except ReconciliationError as e:
            logger.warning(f"Import of {path} into {source} rejected: {e}", extra={"platform": str(source)})
            return Result.failure_result(e)
        return self.ingest(bucket, batch)

    async def import_file_async(self, source: SourceKey, path: PathLike) -> Result[int]:
        """Read and parse off the event loop, then ingest atomically."""
        try:
            bucket = resolve_source(source)
            batch = await asyncio.to_thread(self._parse_file, path)
        except ReconciliationError as e:
            logger.warning(f"Import of {path} into {source} rejected: {e}", extra={"platform": str(source)})
            return Result.failure_result(e)
        return self.ingest(bucket, batch)

    def import_text(self, source: SourceKey, text: str, fmt: str = "json") -> Result[int]:
        """Parse file content already held in memory and ingest it."""
        try:
            bucket = resolve_source(source)
            adapter = get_adapter(f"upload.{fmt.lstrip('.')}", max_batch_bytes=self.max_batch_bytes)
            batch = adapter.parse_text(text, source=f"<{bucket.value} upload>")
        except ReconciliationError as e:
            logger.warning(f"Upload into {source} rejected: {e}", extra={"platform": str(source)})
            return Result.failure_result(e)
        return self.ingest(bucket, batch)

    def choose_file(self, source: SourceKey, path: Optional[PathLike]) -> Result[None]:
        """Remember the file picked for a source; replaces any unconsumed choice."""
        try:
            bucket = resolve_source(source)
        except ReconciliationError as e:
            return Result.failure_result(e)
        with self._lock:
            if path is None:
                self._pending_files.pop(bucket, None)
            else:
                self._pending_files[bucket] = Path(path)
        return Result.success_result(None)

    def pending_file(self, source: SourceKey) -> Optional[Path]:
        return self._pending_files.get(resolve_source(source))

    def load_chosen(self, source: SourceKey) -> Result[int]:
        """Import the file previously chosen for a source, consuming the choice."""
        try:
            bucket = resolve_source(source)
            with self._lock:
                path = self._pending_files.pop(bucket, None)
            if path is None:
                raise NoFileSelectedError(bucket.value)
        except ReconciliationError as e:
            logger.warning(str(e))
            return Result.failure_result(e)
        return self.import_file(bucket, path)

    # ------------------------------------------------------------------
    # Search and selection
    # ------------------------------------------------------------------

    def search(self, criteria: Optional[SearchCriteria] = None, **fields) -> PartitionedResult:
        """Run a search and remember it as the criteria re-run after each ingest.

        Criteria can be passed as a SearchCriteria or as keyword fields.
        Numeric field values are searched as text.

        Raises:
            InvalidCriteriaError: If a keyword field holds a non-scalar value
        """
        if criteria is None:
            try:
                criteria = SearchCriteria(**fields)
            except PydanticValidationError as e:
                fields_in_error = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
                raise InvalidCriteriaError(
                    f"Invalid search criteria: {fields_in_error}",
                    {"fields": fields_in_error},
                ) from e
        with self._lock:
            self.last_criteria = criteria
            return self._refresh()

    def toggle(self, record: PatientRecord, source: Optional[SourceKey] = None) -> bool:
        with self._lock:
            return self.selection.toggle(record, source)

    def is_selected(self, source: SourceKey, identifier: str) -> bool:
        """True if the stored record with this identifier in one bucket is selected."""
        try:
            bucket = resolve_source(source)
        except ReconciliationError:
            return False
        with self._lock:
            record = self.store.get(bucket, identifier)
            return record is not None and self.selection.contains(record, bucket)

    def select(self, source: SourceKey, identifier: str) -> Result[bool]:
        """Toggle the stored record with this identifier in one bucket.

        Returns:
            Result[bool]: True if now selected, False if deselected
        """
        try:
            bucket = resolve_source(source)
        except ReconciliationError as e:
            return Result.failure_result(e)

        with self._lock:
            record = self.store.get(bucket, identifier)
            if record is None:
                return Result.failure_result(
                    f"No record {identifier!r} in {bucket.value}",
                    error_type="RecordNotFound",
                    error_details={"platform": bucket.value, "identifier": identifier},
                )
            return Result.success_result(self.selection.toggle(record, bucket))

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge(self) -> Result[Optional[PatientRecord]]:
        """Merge the current selection into the session's composite record.

        An empty selection clears the composite and reports "Nothing to merge".
        A successful merge clears the selection exactly once.
        """
        with self._lock:
            if not self.selection:
                self.composite = None
                return Result.success_result(None, message=NOTHING_TO_MERGE)
            try:
                composite = self.merger.merge(
                    self.selection.records(),
                    avoid_identifiers=self.store.identifiers(),
                )
            except ReconciliationError as e:
                logger.error(f"Merge failed: {e}")
                return Result.failure_result(e)
            self.composite = composite
            self.selection.clear()
        return Result.success_result(composite)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def save_composite(self, path: Optional[PathLike] = None) -> Result[Path]:
        """Write the composite record as JSON."""
        with self._lock:
            composite = self.composite
        if composite is None:
            return Result.failure_result(NothingToExportError("No merged patient to save."))
        try:
            return Result.success_result(export_composite_json(composite, path or self.composite_path))
        except ReconciliationError as e:
            logger.error(str(e))
            return Result.failure_result(e)

    def records_for_export(self) -> list[PatientRecord]:
        """The composite alone if one exists, else the flattened last result.

        Raises:
            NothingToExportError: If there is neither
        """
        with self._lock:
            if self.composite is not None:
                return [self.composite]
            if self.last_result is not None and not self.last_result.is_empty():
                return self.last_result.all_records()
        raise NothingToExportError()

    def export_csv(self, path: Optional[PathLike] = None) -> Result[Path]:
        """Write the composite (preferred) or the current results as CSV."""
        try:
            records = self.records_for_export()
            written = export_records_csv(records, path or self.csv_path, delimiter=self.csv_delimiter)
        except ReconciliationError as e:
            logger.warning(f"CSV export skipped: {e}")
            return Result.failure_result(e)
        return Result.success_result(written)

    def export_results_json(self, path: PathLike) -> Result[Path]:
        """Write the last search result in the four-bucket layout."""
        with self._lock:
            result = self.last_result
        if result is None:
            return Result.failure_result(NothingToExportError())
        try:
            return Result.success_result(export_partitioned_json(result, path))
        except ReconciliationError as e:
            logger.error(str(e))
            return Result.failure_result(e)
