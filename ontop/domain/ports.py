"""Domain Ports - Result Type, Error Taxonomy and Adapter Contracts.

This module defines what the reconciliation core needs from the outside world
and how it reports failure. Following Hexagonal Architecture, the domain
declares the contracts; adapters under ``ontop.adapters`` fulfil them.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Components raise the exceptions below; the session converts them into
      Result objects at the operation boundary
    - Import adapters hand the core fully parsed batches, never raw bytes
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from ontop.domain.patient_record import PatientRecord

T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Every operator-facing session operation returns a Result so that failures
    surface as notices instead of crashing the session.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error message (only present if success=False)
        error_type: Name of the error class (MalformedBatchError, etc.)
        error_details: Additional error context (source, path, etc.)
        message: Optional neutral status for successful operations

    Example:
        ```python
        result = session.import_file("eCW", "ecw.json")
        if result.is_success():
            print(f"{result.value} records added")
        else:
            print(result.error)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None
    message: Optional[str] = None

    @classmethod
    def success_result(cls, value: T, message: Optional[str] = None) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value
            message: Optional status text (e.g. "Nothing to merge")

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None,
            message=message,
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (defaults to the exception class name)
            error_details: Additional context (source, path, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")
        if error_details is None and isinstance(error, ReconciliationError):
            error_details = error.details

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {},
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ReconciliationError(Exception):
    """Base exception for all reconciliation engine errors.

    Attributes:
        details: Structured context copied into failure Results
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class IngestionError(ReconciliationError):
    """Base exception for import failures.

    Raised when a batch cannot be turned into records. The store is never
    touched when this is raised.
    """
    pass


class MalformedBatchError(IngestionError):
    """Raised when a batch cannot be parsed or a record in it fails validation.

    The whole batch is rejected; there is no partial ingest.

    Attributes:
        source: The file or stream that failed
        record_index: Index of the first offending record, if known
    """

    def __init__(self, message: str, source: Optional[str] = None, record_index: Optional[int] = None):
        details = {"source": source}
        if record_index is not None:
            details["record_index"] = record_index
        super().__init__(message, details)
        self.source = source
        self.record_index = record_index


class SourceNotFoundError(IngestionError):
    """Raised when an import file cannot be found or read.

    Attributes:
        source: The path that was not found
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, {"source": source})
        self.source = source


class UnsupportedSourceError(IngestionError):
    """Raised when no import adapter handles the given file format.

    Attributes:
        source: The path that is unsupported
        adapter: The adapter that rejected it, if any
    """

    def __init__(self, message: str, source: Optional[str] = None, adapter: Optional[str] = None):
        super().__init__(message, {"source": source, "adapter": adapter})
        self.source = source
        self.adapter = adapter


class NoFileSelectedError(IngestionError):
    """Raised when an import is requested for a source with no chosen file."""

    def __init__(self, platform: str):
        super().__init__(f"No file selected for {platform}", {"platform": platform})
        self.platform = platform


class UnknownSourceError(ReconciliationError):
    """Raised when a source name is outside the fixed set of four."""

    def __init__(self, name: str):
        super().__init__(f"Unknown source: {name!r}", {"platform": name})
        self.name = name


class InvalidCriteriaError(ReconciliationError):
    """Raised when search criteria cannot be built from the given fields."""
    pass


class ExportError(ReconciliationError):
    """Raised when an export cannot be written."""
    pass


class NothingToExportError(ExportError):
    """Raised when there is neither a composite nor any search result to export."""

    def __init__(self, message: str = "No patients to export"):
        super().__init__(message)


class IdentifierExhaustedError(ReconciliationError):
    """Raised when no unused composite identifier could be drawn."""
    pass


# ============================================================================
# Adapter Contracts
# ============================================================================

class BatchIngestionPort(ABC):
    """Abstract contract for import adapters.

    An import adapter turns one file (or its text) into a complete list of
    validated PatientRecord objects. Parsing is all-or-nothing: any failure
    raises before a single record reaches the store, which keeps ingest
    atomic at batch granularity.

    Example Usage:
        ```python
        adapter = get_adapter("ecw_export.json")
        batch = adapter.parse_batch("ecw_export.json")
        store.ingest(SourceName.ECW, batch)
        ```
    """

    @abstractmethod
    def parse_batch(self, source: str) -> list[PatientRecord]:
        """Read and parse a whole file into records.

        Parameters:
            source: File path

        Returns:
            list[PatientRecord]: Every record of the batch, in file order

        Raises:
            SourceNotFoundError: If the file does not exist or cannot be read
            MalformedBatchError: If the content or any record is invalid
        """
        pass

    @abstractmethod
    def parse_text(self, text: str, source: Optional[str] = None) -> list[PatientRecord]:
        """Parse already-read file content into records.

        Raises:
            MalformedBatchError: If the content or any record is invalid
        """
        pass

    @abstractmethod
    def can_ingest(self, source: str) -> bool:
        """Check if this adapter can handle the given file."""
        pass

    def get_source_info(self, source: str) -> Optional[dict]:
        """Get metadata about the source (optional, adapter-specific).

        Returns None if metadata cannot be determined.
        """
        return None
