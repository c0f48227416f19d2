"""Domain Services.

This package contains the reconciliation services: date normalization, the
per-source store, search, selection and merge. None of them touch files,
networks or presentation.
"""

from ontop.domain.services.date_normalizer import EMPTY_DATE, normalize_date
from ontop.domain.services.query_engine import PartitionedResult, QueryEngine, SearchCriteria
from ontop.domain.services.record_merger import IdentifierFactory, RecordMerger
from ontop.domain.services.selection import SelectionSet
from ontop.domain.services.source_store import SourceStore

__all__ = [
    'EMPTY_DATE',
    'normalize_date',
    'PartitionedResult',
    'QueryEngine',
    'SearchCriteria',
    'IdentifierFactory',
    'RecordMerger',
    'SelectionSet',
    'SourceStore',
]
