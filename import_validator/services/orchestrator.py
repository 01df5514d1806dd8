from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from ..errors import (
    DictionaryMismatchError,
    DuplicateInBatchError,
    FieldFormatError,
    MaxRowExceededError,
    PersistenceError,
    RowValidationError,
    RuleValidationError,
)
from ..excel.reader import RowSource
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import FieldSpec, ImportOptions
from ..models.error_record import ErrorRecord
from ..models.import_result import ImportResult, ImportState, QueryStatsAccumulator
from ..models.row_data import RowData, is_empty
from .duplicates import DuplicateDetector
from .formatter import FieldFormatter

"""Import orchestration.

ImportOrchestrator drives one import through its states:

    INIT -> BEFORE_IMPORT -> COLUMN_MATCHING -> ROW_PROCESSING -> BATCH_VALIDATION
         -> PERSISTENCE -> AFTER_IMPORT -> DONE         (FAILED from any state)

Per-row problems become ErrorRecords and the import goes on (unless
``fail_fast``). Fatal problems (column mismatch, too many rows, persistence
failure, store errors) abort and are handed to ``on_failed``, which re-raises
unless overridden.

Collaborators are injected: formatter, duplicate detector, rules, the
``persist`` callable and an optional transaction (``run(callback)``).
"""

__all__ = [
    "ImportOrchestrator",
    "Transaction",
    "Rule",
]

logger = logging.getLogger(__name__)

_ROW_ERRORS: dict[str, type[RowValidationError]] = {
    cls.error_type: cls
    for cls in (FieldFormatError, DictionaryMismatchError, RuleValidationError, DuplicateInBatchError)
}


class Transaction(Protocol):
    def run(self, callback: Callable[[], Any]) -> Any:
        ...


class Rule(Protocol):
    query_times: list[float]

    def validate(self, rows: Mapping[int, Mapping[str, Any]], display_names: Mapping[str, str] | None = None) -> bool:
        ...

    def errors(self) -> dict[int, list[str]]:
        ...

    def error_kinds(self) -> dict[int, str]:
        ...


class ImportOrchestrator:
    """Run one import from rows to ImportResult.

    Args:
        fields: Field specs in sheet order
        formatter: Per-row formatter (default: FieldFormatter(fields))
        duplicate_detector: In-sheet uniqueness (default: none)
        rules: Batch rules run on the accepted rows
        persist: ``persist(rows) -> int | None`` for the accepted rows
        transaction: Wraps persist when ``options.use_transaction``
        options: ImportOptions
        error_writer: ``write(records) -> Path`` for the annotated error report
        error_log: ErrorLogBuffer receiving every rejected row
        before_import / after_import / on_report / on_failed: hook overrides
    """

    def __init__(
        self,
        fields: Sequence[FieldSpec],
        *,
        formatter: FieldFormatter | None = None,
        duplicate_detector: DuplicateDetector | None = None,
        rules: Iterable[Rule] = (),
        persist: Callable[[list[RowData]], int | None] | None = None,
        transaction: Transaction | None = None,
        options: ImportOptions | None = None,
        error_writer: Any = None,
        error_log: ErrorLogBuffer | None = None,
        before_import: Callable[[Any], None] | None = None,
        after_import: Callable[[list[RowData], list[ErrorRecord]], None] | None = None,
        on_report: Callable[[int], None] | None = None,
        on_failed: Callable[[BaseException], None] | None = None,
    ) -> None:
        self.fields = list(fields)
        self.options = options or ImportOptions()
        self.formatter = formatter or FieldFormatter(self.fields, use_default=self.options.use_default)
        self.duplicate_detector = duplicate_detector
        self.rules = list(rules)
        self.persist = persist
        self.transaction = transaction
        self.error_writer = error_writer
        self.error_log = error_log
        self.display_names = {f.name: f.label for f in self.fields}
        self.state = ImportState.INIT
        # hooks given as callables shadow the methods below
        if before_import is not None:
            self.before_import = before_import  # type: ignore[method-assign]
        if after_import is not None:
            self.after_import = after_import  # type: ignore[method-assign]
        if on_report is not None:
            self.on_report = on_report  # type: ignore[method-assign]
        if on_failed is not None:
            self.on_failed = on_failed  # type: ignore[method-assign]

    # ----- hooks -----

    def before_import(self, input: Any) -> None:
        """Called before anything is read; raise to refuse the import."""

    def after_import(self, accepted: list[RowData], rejected: list[ErrorRecord]) -> None:
        """Called once rows are persisted."""

    def on_report(self, line: int) -> None:
        """Called every ``report_interval`` seconds with the current line."""

    def on_failed(self, error: BaseException) -> None:
        """Called on fatal errors; re-raises by default."""
        raise error

    # ----- pipeline -----

    def _transition(self, state: ImportState) -> None:
        logger.debug("import state %s -> %s", self.state.value, state.value)
        self.state = state

    def handle(self, rows: Any, input: Any = None) -> ImportResult:
        """Validate (and persist) ``rows``.

        Args:
            rows: A RowSource, an iterable of ``(line, values)`` pairs, a mapping
                line -> values, or raw cell rows (header first)
            input: Caller options passed to ``before_import``

        Returns:
            ImportResult; ``state`` is FAILED when on_failed swallowed a fatal error
        """
        start_time = datetime.now(UTC)
        self.state = ImportState.INIT
        if self.duplicate_detector is not None:
            self.duplicate_detector.reset()
        accepted: dict[int, RowData] = {}
        rejected: dict[int, ErrorRecord] = {}
        query_stats = QueryStatsAccumulator()
        total_rows = 0
        persisted = 0
        error_report: Path | None = None

        try:
            self._transition(ImportState.BEFORE_IMPORT)
            self.before_import(input)

            self._transition(ImportState.COLUMN_MATCHING)
            source = self._row_source(rows)

            self._transition(ImportState.ROW_PROCESSING)
            total_rows = self._process_rows(source, accepted, rejected)

            self._transition(ImportState.BATCH_VALIDATION)
            self._validate_batch(accepted, rejected, query_stats)

            self._transition(ImportState.PERSISTENCE)
            persisted = self._persist(list(accepted.values()))

            self._transition(ImportState.AFTER_IMPORT)
            rejected_list = self._sorted(rejected)
            self.after_import(list(accepted.values()), rejected_list)
            error_report = self._write_report(rejected_list)

            self._transition(ImportState.DONE)
        except Exception as e:
            failed_in = self.state
            self._transition(ImportState.FAILED)
            logger.error("import failed during %s: %s", failed_in.value, e)
            self._log_rejected(rejected)
            self.on_failed(e)
        else:
            self._log_rejected(rejected)

        end_time = datetime.now(UTC)
        total_queries, avg_query, p95_query = query_stats.get_stats()
        result = ImportResult(
            accepted=list(accepted.values()),
            rejected=self._sorted(rejected),
            total_rows=total_rows,
            start_time=start_time,
            end_time=end_time,
            elapsed_seconds=(end_time - start_time).total_seconds(),
            state=self.state,
            persisted_rows=persisted,
            error_report=error_report,
            total_queries=total_queries,
            avg_query_seconds=avg_query,
            p95_query_seconds=p95_query,
        )
        if result.rejected:
            logger.warning("%d of %d row(s) rejected", result.rejected_count, total_rows)
        return result

    def _log_rejected(self, rejected: Mapping[int, ErrorRecord]) -> None:
        if self.error_log is not None:
            self.error_log.extend(self._sorted(rejected))

    @staticmethod
    def _sorted(rejected: Mapping[int, ErrorRecord]) -> list[ErrorRecord]:
        return [rejected[line] for line in sorted(rejected)]

    def _row_source(self, rows: Any) -> Iterable[tuple[int, Mapping[str, Any]]]:
        if isinstance(rows, RowSource):
            rows.resolve_columns()
            return rows
        if isinstance(rows, Mapping):
            return list(rows.items())
        items = list(rows)
        if items and all(_is_line_pair(item) for item in items):
            return items
        # raw cell rows, header included
        source = RowSource(items, self.fields, self.options.mode, self.options.header_row)
        source.resolve_columns()
        return source

    def _reject(self, record: ErrorRecord, rejected: dict[int, ErrorRecord]) -> None:
        if self.options.fail_fast:
            raise _row_error(record)
        existing = rejected.get(record.line)
        if existing is None:
            rejected[record.line] = record
        else:
            existing.merge(record)

    def _process_rows(
        self,
        source: Iterable[tuple[int, Mapping[str, Any]]],
        accepted: dict[int, RowData],
        rejected: dict[int, ErrorRecord],
    ) -> int:
        count = 0
        interval = self.options.report_interval
        last_report = time.monotonic()
        for line, values in source:
            if all(is_empty(v) for v in values.values()):
                continue
            count += 1
            if count > self.options.max_rows:
                raise MaxRowExceededError(self.options.max_rows)

            outcome = self.formatter.format(line, values)
            if outcome.error is not None:
                self._reject(outcome.error, rejected)
            else:
                row = outcome.row
                detector = self.duplicate_detector
                conflicts = detector.record(row.values, line) if detector is not None else []
                if conflicts:
                    record = ErrorRecord.create(
                        line,
                        values,
                        detector.describe(conflicts, line),
                        DuplicateInBatchError.error_type,
                        first_line=conflicts[0][1],
                    )
                    self._reject(record, rejected)
                else:
                    accepted[line] = row

            now = time.monotonic()
            if now - last_report >= interval:
                self.on_report(line)
                last_report = now
        logger.debug("processed %d row(s): %d accepted, %d rejected", count, len(accepted), len(rejected))
        return count

    def _validate_batch(
        self,
        accepted: dict[int, RowData],
        rejected: dict[int, ErrorRecord],
        query_stats: QueryStatsAccumulator,
    ) -> None:
        if accepted and self.rules:
            rows = {line: row.values for line, row in accepted.items()}
            merged: dict[int, list[str]] = {}
            kinds: dict[int, str] = {}
            for rule in self.rules:
                before = len(rule.query_times)
                if not rule.validate(rows, self.display_names):
                    for line, messages in rule.errors().items():
                        merged.setdefault(line, []).extend(messages)
                    for line, kind in rule.error_kinds().items():
                        kinds.setdefault(line, kind)
                query_stats.extend(rule.query_times[before:])
            logger.debug("batch rules flagged %d line(s)", len(merged))
            for line in sorted(merged):
                row = accepted.pop(line)
                record = ErrorRecord.create(
                    line, row.raw_values or row.values, merged[line], RuleValidationError.error_type,
                    kind=kinds.get(line),
                )
                self._reject(record, rejected)
        # originals are only needed for rejected rows
        for line, row in accepted.items():
            accepted[line] = replace(row, raw_values={})

    def _persist(self, rows: list[RowData]) -> int:
        if self.persist is None or not rows:
            return 0
        persist = self.persist
        try:
            if self.transaction is not None and self.options.use_transaction:
                result = self.transaction.run(lambda: persist(rows))
            else:
                result = persist(rows)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"persisting {len(rows)} row(s) failed: {e}") from e
        count = result if isinstance(result, int) else len(rows)
        logger.info("persisted %d row(s)", count)
        return count

    def _write_report(self, rejected: list[ErrorRecord]) -> Path | None:
        if self.error_writer is None or not rejected:
            return None
        return self.error_writer.write(rejected)


def _is_line_pair(item: Any) -> bool:
    return (
        isinstance(item, tuple)
        and len(item) == 2
        and isinstance(item[0], int)
        and isinstance(item[1], Mapping)
    )


def _row_error(record: ErrorRecord) -> RowValidationError:
    """The typed exception fail-fast raises for ``record``."""
    if record.error_type == RuleValidationError.error_type:
        return RuleValidationError(record.messages, record.line, kind=record.kind)
    if record.error_type == DuplicateInBatchError.error_type:
        return DuplicateInBatchError(record.messages, record.line, first_line=record.first_line)
    error_cls = _ROW_ERRORS.get(record.error_type, RowValidationError)
    return error_cls(record.messages, record.line)
