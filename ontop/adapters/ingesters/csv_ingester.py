"""CSV Import Adapter.

Reads delimited exports whose header row uses the record wire names (the
same layout the tabular exporter writes), so an exported result can be
imported into another source bucket.
"""

import io
import logging
from typing import Optional

import pandas as pd

from ontop.adapters.ingesters.base import FileBatchIngester, validate_rows
from ontop.domain.patient_record import PatientRecord
from ontop.domain.ports import MalformedBatchError

logger = logging.getLogger(__name__)


class CSVBatchIngester(FileBatchIngester):
    """Import adapter for CSV files with a header row.

    Every cell is read as text; empty cells stay empty strings rather than
    becoming NaN.
    """

    extensions = ('.csv',)
    adapter_name = "csv_ingester"

    def __init__(self, delimiter: str = ",", **kwargs):
        super().__init__(**kwargs)
        self.delimiter = delimiter

    def parse_text(self, text: str, source: Optional[str] = None) -> list[PatientRecord]:
        if not text.strip():
            return []

        try:
            df = pd.read_csv(
                io.StringIO(text),
                sep=self.delimiter,
                dtype=str,
                keep_default_na=False,
            )
        except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
            logger.warning(f"Rejected {source or '<text>'}: unparsable CSV")
            raise MalformedBatchError(f"Failed to parse CSV: {e}", source=source) from e

        df.columns = [str(column).strip() for column in df.columns]
        if "patientID" not in df.columns and "identifier" not in df.columns:
            raise MalformedBatchError("CSV header has no patientID column", source=source)

        return validate_rows(df.to_dict(orient="records"), source=source)
