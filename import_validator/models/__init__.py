"""Domain models for the import validator.

This package contains the domain model classes shared by the reader, the
formatter, the batch rules and the orchestrator.
"""

from .config_models import DatabaseConfig, FieldSpec, ImportOptions, MatchMode, TaskConfig
from .dictionary import Dictionary
from .error_record import ErrorRecord
from .import_result import ImportResult, ImportState, QueryStatsAccumulator
from .row_data import EMPTY, RowData, is_empty

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "FieldSpec",
    "ImportOptions",
    "MatchMode",
    "TaskConfig",
    "Dictionary",
    # Processing models
    "RowData",
    "EMPTY",
    "is_empty",
    "ErrorRecord",
    "ImportResult",
    "ImportState",
    "QueryStatsAccumulator",
]
