from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime
from typing import Any

"""ErrorRecord model for rejected rows.

One ErrorRecord per rejected line. Several independent sources (format,
dictionary, batch rules, duplicates) append to the same record instead of
replacing each other; the first cause stays as ``error_type``.

Use line=-1 for import-level errors where no row can be determined.
"""

__all__ = [
    "ErrorRecord",
]


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


@dataclass
class ErrorRecord:
    """Structured error record for a rejected row.

    Attributes:
        line: Source line (1-based). -1 for import-level errors
        row: Snapshot of the row as read from the sheet
        messages: Human readable messages, in the order they were found
        error_type: Cause classification in UPPER_SNAKE_CASE format
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        kind: Batch rule sub-kind (not_found / not_unique / not_equal), if any
        first_line: Line of the earlier row an in-sheet duplicate repeats, if any
    """
    line: int
    row: dict[str, Any]
    messages: list[str]
    error_type: str
    timestamp: str = field(default="")
    kind: str | None = None
    first_line: int | None = None

    @staticmethod
    def create(
        line: int,
        row: dict[str, Any],
        messages: str | list[str],
        error_type: str,
        *,
        kind: str | None = None,
        first_line: int | None = None,
    ) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp.

        Parameters:
            line: Source line of the rejected row
            row: Row snapshot (original values)
            messages: One message or a list of messages
            error_type: Error classification in UPPER_SNAKE_CASE format
            kind: Rule sub-kind for RULE_VALIDATION_ERROR records
            first_line: First occurrence for DUPLICATE_IN_BATCH records

        Returns:
            New ErrorRecord instance
        """
        if isinstance(messages, str):
            messages = [messages]
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            line=line,
            row=dict(row),
            messages=list(messages),
            error_type=error_type,
            timestamp=ts,
            kind=kind,
            first_line=first_line,
        )

    def extend(self, messages: list[str]) -> None:
        self.messages.extend(messages)

    def merge(self, other: ErrorRecord) -> None:
        """Append another source's messages; the first cause keeps its type."""
        self.extend(other.messages)
        if self.kind is None:
            self.kind = other.kind
        if self.first_line is None:
            self.first_line = other.first_line

    @property
    def message(self) -> str:
        """All messages as one text block (what goes into the error report cell)."""
        return "; ".join(self.messages)

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format.

        Returns:
            JSON string with exactly the dataclass keys
        """
        data = asdict(self)
        data["row"] = {k: _jsonable(v) for k, v in self.row.items()}
        return json.dumps(data, ensure_ascii=False)
