"""CSV Export Adapter.

Writes records as delimited text with a header row naming every record
field. Values containing the delimiter, a quote or a line break are quoted
using standard CSV rules.
"""

import csv
import logging
from pathlib import Path
from typing import Sequence, Union

import pandas as pd

from ontop.domain.patient_record import WIRE_FIELDS, PatientRecord
from ontop.domain.ports import ExportError

logger = logging.getLogger(__name__)


def records_to_frame(records: Sequence[PatientRecord]) -> pd.DataFrame:
    """Build a DataFrame with one column per wire field, in declaration order.

    The columns are present even when there are no records.
    """
    return pd.DataFrame(
        [record.to_wire() for record in records],
        columns=list(WIRE_FIELDS),
        dtype=object,
    )


def records_to_csv_text(records: Sequence[PatientRecord], delimiter: str = ",") -> str:
    """Render records as CSV text (header row included)."""
    return records_to_frame(records).to_csv(
        index=False,
        sep=delimiter,
        quoting=csv.QUOTE_MINIMAL,
        # A bare \r in a value is quoted only if the terminator contains it
        lineterminator="\r\n",
    )


def export_records_csv(
    records: Sequence[PatientRecord],
    output_path: Union[str, Path],
    delimiter: str = ",",
) -> Path:
    """Write records to a CSV file.

    Parameters:
        records: Records to write, in output order
        output_path: Destination file; parent directories are created
        delimiter: Field delimiter

    Returns:
        Path: The written file

    Raises:
        ExportError: If the file cannot be written
    """
    output_file = Path(output_path)
    try:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_text(records_to_csv_text(records, delimiter=delimiter), encoding="utf-8")
    except OSError as e:
        raise ExportError(f"Failed to write CSV to {output_file}: {e}", {"path": str(output_file)}) from e

    logger.info(f"Exported {len(records)} record(s) to {output_file}")
    return output_file
