"""JSON Import Adapter.

Reads a per-source import file (a JSON array of record objects) and the
initial four-bucket dataset (a JSON object keyed by source name).

Security Impact:
    - Malformed files are rejected as a whole and logged
    - Unknown dataset keys are logged and ignored, never ingested
"""

import json
import logging
from typing import Any, Optional

from ontop.adapters.ingesters.base import FileBatchIngester, validate_rows
from ontop.domain.enums import SourceName
from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import MalformedBatchError

logger = logging.getLogger(__name__)


def _loads(text: str, source: Optional[str]) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Rejected {source or '<text>'}: invalid JSON at line {e.lineno} column {e.colno}")
        raise MalformedBatchError(f"Failed to parse JSON: {e.msg} (line {e.lineno})", source=source) from e


class JSONBatchIngester(FileBatchIngester):
    """Import adapter for JSON arrays of patient records.

    Example Usage:
        ```python
        ingester = JSONBatchIngester()
        batch = ingester.parse_batch("ecw_new.json")
        ```
    """

    extensions = ('.json',)
    adapter_name = "json_ingester"

    def parse_text(self, text: str, source: Optional[str] = None) -> list[PatientRecord]:
        payload = _loads(text, source)
        if not isinstance(payload, list):
            raise MalformedBatchError(
                f"Expected a JSON array of records, got {type(payload).__name__}",
                source=source,
            )
        return validate_rows(payload, source=source)

    def parse_dataset_text(self, text: str, source: Optional[str] = None) -> dict[SourceName, list[PatientRecord]]:
        """Parse the initial dataset: an object with one array per source.

        Missing sources yield empty lists. Keys that do not name a source are
        skipped with a warning.

        Raises:
            MalformedBatchError: If the payload or any bucket is invalid
        """
        payload = _loads(text, source)
        if not isinstance(payload, dict):
            raise MalformedBatchError(
                f"Expected a JSON object keyed by source, got {type(payload).__name__}",
                source=source,
            )

        dataset: dict[SourceName, list[PatientRecord]] = {name: [] for name in SourceName}
        for key, rows in payload.items():
            try:
                bucket = SourceName.parse(key)
            except ValueError:
                logger.warning(f"Ignoring unknown source '{key}' in dataset {source or '<text>'}")
                continue
            if not isinstance(rows, list):
                raise MalformedBatchError(
                    f"Dataset bucket '{key}' must be an array, got {type(rows).__name__}",
                    source=source,
                )
            dataset[bucket] = validate_rows(rows, source=f"{source or '<text>'}:{key}")
        return dataset

    def load_dataset(self, source: str) -> dict[SourceName, list[PatientRecord]]:
        """Read and parse the initial dataset file."""
        dataset = self.parse_dataset_text(self.read_text(source), source=source)
        logger.info(
            f"Loaded dataset {source}: "
            + ", ".join(f"{name.value}={len(records)}" for name, records in dataset.items())
        )
        return dataset
