"""Import adapters for Ontop-Health.

This module contains the adapters that implement BatchIngestionPort for
reading per-source import files (JSON, CSV) and the initial dataset.
"""

from pathlib import Path

from ontop.adapters.ingesters.csv_ingester import CSVBatchIngester
from ontop.adapters.ingesters.json_ingester import JSONBatchIngester
from ontop.domain.ports import BatchIngestionPort, UnsupportedSourceError

__all__ = ["CSVBatchIngester", "JSONBatchIngester", "get_adapter"]

_ADAPTERS = (
    JSONBatchIngester,
    CSVBatchIngester,
)


def get_adapter(source: str, **kwargs) -> BatchIngestionPort:
    """Factory function to get the import adapter for a file.

    Parameters:
        source: Import file path
        **kwargs: Passed to the adapter constructor (max_batch_bytes, encoding)

    Returns:
        BatchIngestionPort: Adapter able to parse the file

    Raises:
        UnsupportedSourceError: If no adapter handles the file extension

    Example Usage:
        ```python
        adapter = get_adapter("quest.csv")
        batch = adapter.parse_batch("quest.csv")
        ```
    """
    for adapter_class in _ADAPTERS:
        adapter = adapter_class(**kwargs)
        if adapter.can_ingest(source):
            return adapter

    raise UnsupportedSourceError(
        f"No adapter found for source: {source}. Supported formats: JSON, CSV "
        f"(got '{Path(source).suffix or 'no extension'}')",
        source=source,
    )
