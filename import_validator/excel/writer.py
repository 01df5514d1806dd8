from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import FieldSpec
from ..models.error_record import ErrorRecord

"""Error report workbook.

Rejected rows are written back in their original form with one extra leading
column holding the error reason, so the user can fix the sheet in place and
upload it again. Headers use the display names, which match_columns() accepts.
"""

__all__ = [
    "ErrorReportWriter",
    "ERROR_COLUMN",
    "MAX_CELL_LENGTH",
]

logger = logging.getLogger(__name__)

ERROR_COLUMN = "error reason"
# Hard per-cell character limit of the xlsx format
MAX_CELL_LENGTH = 32767


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, str) and len(value) > MAX_CELL_LENGTH:
        return value[:MAX_CELL_LENGTH]
    return value


class ErrorReportWriter:
    """Write ErrorRecords to an annotated ``.xlsx`` file."""

    def __init__(self, fields: Sequence[FieldSpec], directory: Path, sheet_name: str = "errors") -> None:
        self.fields = list(fields)
        self.directory = Path(directory)
        self.sheet_name = sheet_name

    def build_frame(self, records: Iterable[ErrorRecord]) -> pd.DataFrame:
        columns = [ERROR_COLUMN] + [f.label for f in self.fields]
        data = []
        for rec in sorted(records, key=lambda r: r.line):
            data.append(
                [_cell(rec.message)] + [_cell(rec.row.get(f.name)) for f in self.fields]
            )
        return pd.DataFrame(data, columns=columns)

    def write(self, records: Iterable[ErrorRecord]) -> Path:
        """Write the report and return its path.

        File name: ``import-errors-YYYYMMDD-HHMMSS.xlsx`` (UTC) under ``directory``.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        ts = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
        path = self.directory / f"import-errors-{ts}.xlsx"
        frame = self.build_frame(records)
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            frame.to_excel(writer, sheet_name=self.sheet_name, index=False)
        logger.info("Error report written: %s (%d rows)", path, len(frame))
        return path
