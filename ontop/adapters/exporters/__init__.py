"""Export adapters for Ontop-Health.

Writers for the composite record (JSON), tabular record lists (CSV) and the
four-bucket search result (JSON).
"""

from ontop.adapters.exporters.csv_exporter import export_records_csv, records_to_csv_text, records_to_frame
from ontop.adapters.exporters.json_exporter import export_composite_json, export_partitioned_json

__all__ = [
    "export_composite_json",
    "export_partitioned_json",
    "export_records_csv",
    "records_to_csv_text",
    "records_to_frame",
]
