from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from .error_record import ErrorRecord
from .row_data import RowData

"""Import result models.

ImportResult is the final partition of one import into accepted rows and
rejected ErrorRecords, plus the metrics needed for the SUMMARY line.
"""


class ImportState(Enum):
    """Orchestrator lifecycle.

    INIT -> BEFORE_IMPORT -> COLUMN_MATCHING -> ROW_PROCESSING -> BATCH_VALIDATION
    -> PERSISTENCE -> AFTER_IMPORT -> DONE, with FAILED reachable from any state.
    """
    INIT = "init"
    BEFORE_IMPORT = "before_import"
    COLUMN_MATCHING = "column_matching"
    ROW_PROCESSING = "row_processing"
    BATCH_VALIDATION = "batch_validation"
    PERSISTENCE = "persistence"
    AFTER_IMPORT = "after_import"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ImportResult:
    """Accepted/rejected partition and summary metrics of one import."""
    accepted: list[RowData]
    rejected: list[ErrorRecord]
    total_rows: int  # non-empty rows read
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    state: ImportState = ImportState.DONE
    persisted_rows: int = 0
    error_report: Path | None = None
    # store round-trips issued by batch rules
    total_queries: int = 0
    avg_query_seconds: float = 0.0
    p95_query_seconds: float = 0.0
    warnings: list[str] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def throughput_rows_per_sec(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.total_rows / self.elapsed_seconds


class QueryStatsAccumulator:
    """Helper class to accumulate store query timing statistics.

    Collects individual query timing data and calculates summary statistics.
    """

    def __init__(self) -> None:
        self.query_times: list[float] = []

    def add_query_time(self, elapsed_seconds: float) -> None:
        """Add a query timing measurement."""
        self.query_times.append(elapsed_seconds)

    def extend(self, elapsed: list[float]) -> None:
        self.query_times.extend(elapsed)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate query statistics.

        Returns:
            tuple: (total_queries, avg_query_seconds, p95_query_seconds)
        """
        if not self.query_times:
            return (0, 0.0, 0.0)

        total = len(self.query_times)
        avg = statistics.mean(self.query_times)

        if total == 1:
            p95 = self.query_times[0]
        else:
            # 95th percentile (19th out of 20 quantiles, 0-indexed)
            p95 = statistics.quantiles(self.query_times, n=20, method='inclusive')[18]

        return (total, avg, p95)
