"""JSON Export Adapter.

Writes the composite record as a single JSON object, and search results in
the four-bucket layout of the initial dataset.
"""

import json
import logging
from pathlib import Path
from typing import Union

from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import ExportError
from ontop.domain.services.query_engine import PartitionedResult

logger = logging.getLogger(__name__)


def _write(output_path: Union[str, Path], text: str) -> Path:
    output_file = Path(output_path)
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write JSON to {output_file}: {e}", {"path": str(output_file)}) from e
    return output_file


def export_composite_json(record: PatientRecord, output_path: Union[str, Path]) -> Path:
    """Write one composite record as an indented JSON object using wire names.

    Raises:
        ExportError: If the file cannot be written
    """
    output_file = _write(output_path, record.model_dump_json(by_alias=True, indent=2))
    logger.info(f"Saved composite {record.composite_identifier} to {output_file}")
    return output_file


def export_partitioned_json(result: PartitionedResult, output_path: Union[str, Path]) -> Path:
    """Write a search result as ``{"eCW": [...], "AMD": [...], ...}``.

    Raises:
        ExportError: If the file cannot be written
    """
    output_file = _write(output_path, json.dumps(result.to_dict(), indent=2))
    logger.info(f"Exported {result.total} bucket entries to {output_file}")
    return output_file
