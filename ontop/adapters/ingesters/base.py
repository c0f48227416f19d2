"""Shared behaviour for file-based import adapters.

Reading, size limits and per-record validation are the same for every file
format; subclasses only turn text into a list of raw row dictionaries.

Security Impact:
    - Oversized files are rejected before they are read into memory
    - A single invalid record rejects the whole batch, so the store never
      sees a partially imported file
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import (
    BatchIngestionPort,
    MalformedBatchError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_BATCH_BYTES = 10 * 1024 * 1024


def validate_rows(rows: Iterable[Any], source: Optional[str] = None) -> list[PatientRecord]:
    """Validate raw rows into PatientRecord objects, all or nothing.

    Parameters:
        rows: Parsed row objects (dicts expected)
        source: File name used in error messages

    Returns:
        list[PatientRecord]: Validated records in input order

    Raises:
        MalformedBatchError: On the first row that is not a valid record
    """
    records = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise MalformedBatchError(
                f"Record {index} is a {type(row).__name__}, expected an object",
                source=source,
                record_index=index,
            )
        try:
            records.append(PatientRecord.model_validate(row))
        except PydanticValidationError as e:
            fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
            logger.warning(f"Rejected batch from {source or '<text>'}: record {index} invalid ({fields})")
            raise MalformedBatchError(
                f"Record {index} failed validation: {fields}",
                source=source,
                record_index=index,
            ) from e
    return records


class FileBatchIngester(BatchIngestionPort):
    """Base class for adapters reading one whole file per batch.

    Subclasses set ``extensions`` and ``adapter_name`` and implement
    ``parse_text``.
    """

    extensions: tuple[str, ...] = ()
    adapter_name = "file_ingester"

    def __init__(self, max_batch_bytes: int = DEFAULT_MAX_BATCH_BYTES, encoding: str = "utf-8"):
        """Initialize the ingester.

        Parameters:
            max_batch_bytes: Largest file accepted (default: 10MB)
            encoding: Text encoding of import files
        """
        self.max_batch_bytes = max_batch_bytes
        self.encoding = encoding

    def can_ingest(self, source: str) -> bool:
        if not source:
            return False
        return Path(source).suffix.lower() in self.extensions

    def get_source_info(self, source: str) -> Optional[dict]:
        try:
            source_path = Path(source)
            if source_path.exists():
                return {
                    'format': self.extensions[0].lstrip('.') if self.extensions else None,
                    'size': source_path.stat().st_size,
                    'encoding': self.encoding,
                    'exists': True,
                }
        except (OSError, ValueError):
            pass
        return None

    def read_text(self, source: str) -> str:
        """Read an import file, enforcing the size limit.

        Raises:
            SourceNotFoundError: If the file is missing or unreadable
            MalformedBatchError: If the file is too large or not valid text
        """
        path = Path(source)
        if not path.is_file():
            raise SourceNotFoundError(f"Import file not found: {source}", source=source)

        try:
            size = path.stat().st_size
            if size > self.max_batch_bytes:
                raise MalformedBatchError(
                    f"Import file is {size} bytes, limit is {self.max_batch_bytes}",
                    source=source,
                )
            return path.read_text(encoding=self.encoding)
        except UnicodeDecodeError as e:
            raise MalformedBatchError(f"Import file is not valid {self.encoding} text: {e}", source=source) from e
        except OSError as e:
            raise SourceNotFoundError(f"Cannot read import file {source}: {e}", source=source) from e

    def parse_batch(self, source: str) -> list[PatientRecord]:
        text = self.read_text(source)
        records = self.parse_text(text, source=source)
        logger.info(f"{self.adapter_name} parsed {len(records)} record(s) from {source}")
        return records
