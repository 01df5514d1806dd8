from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from ..errors import ColumnMismatchError, SheetReadError
from ..models.config_models import FieldSpec, MatchMode
from ..models.row_data import EMPTY, is_empty

"""Sheet reading and column matching.

- read_sheet_rows(): raw reader, one list of cells per physical sheet row.
  Embedded empty rows are kept so line numbers match what the user sees.
- match_columns(): header row -> {column index: field name} in strict or
  tolerant mode. Header hints in parentheses ("Name(required)") are ignored.
- RowSource: yields (line, {field: value}) for every non-empty data row.

pandas is used for reading (openpyxl engine); strings such as "NA" are kept
literally instead of being turned into NaN.
"""

__all__ = [
    "read_sheet_rows",
    "normalize_cell",
    "header_text",
    "match_columns",
    "RowSource",
]

COLUMN_MISMATCH_MESSAGE = "the uploaded sheet does not match the import template, download the template and try again"


def read_sheet_rows(path: Path, sheet: str | int = 0) -> list[list[Any]]:
    """Read one sheet returning its raw cells row by row.

    Parameters
    ----------
    path: workbook path
    sheet: sheet name or 0-based index
    """
    try:
        xls = pd.ExcelFile(path)
        # no header: the header row is resolved by match_columns()
        df = xls.parse(sheet, header=None, dtype=object, keep_default_na=False, na_values=[])
    except (OSError, ValueError, KeyError) as e:
        raise SheetReadError(f"cannot read sheet {sheet!r} of {path}: {e}") from e
    return [list(raw) for raw in df.itertuples(index=False, name=None)]


def normalize_cell(value: Any) -> Any:
    """Normalize one raw cell.

    Scalars become trimmed text, blanks become EMPTY, native date/time values are
    passed through untouched so FieldFormatter can render them.
    """
    if isinstance(value, np.generic):
        value = value.item()
    if value is None or value is pd.NaT:
        return EMPTY
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, (datetime, date, time)):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return EMPTY
        # the spreadsheet engine stores whole numbers as floats
        if value.is_integer():
            value = int(value)
    if isinstance(value, (str, int, float, bool)):
        return str(value).strip()
    return value


def header_text(cell: Any) -> str:
    """Header text without its parenthesized hint suffix."""
    text = normalize_cell(cell)
    if not isinstance(text, str):
        text = str(text)
    for bracket in ("(", "（"):
        pos = text.find(bracket)
        if pos != -1:
            text = text[:pos]
    return text.strip()


def match_columns(
    header: Sequence[Any],
    fields: Sequence[FieldSpec],
    mode: MatchMode = MatchMode.TOLERANT,
) -> dict[int, str]:
    """Resolve the header row into a column index -> field name mapping.

    A header cell may carry either the field name or its display name.

    Raises:
        ColumnMismatchError: strict mode and a field is missing, duplicated or a
            header is unknown; tolerant mode and no header is known at all.
    """
    lookup: dict[str, str] = {}
    for spec in fields:
        lookup[spec.name] = spec.name
        if spec.display_name:
            lookup[spec.display_name] = spec.name

    columns: dict[int, str] = {}
    unknown: list[str] = []
    duplicated: list[str] = []
    for index, cell in enumerate(header):
        text = header_text(cell)
        if text == "":
            continue
        name = lookup.get(text)
        if name is None:
            unknown.append(text)
            continue
        if name in columns.values():
            duplicated.append(text)
            continue
        columns[index] = name

    mapped = set(columns.values())
    missing = [spec.name for spec in fields if spec.name not in mapped and not spec.optional]

    if mode is MatchMode.STRICT and (unknown or missing or duplicated):
        raise ColumnMismatchError(COLUMN_MISMATCH_MESSAGE, missing=missing, unknown=unknown + duplicated)
    if not columns:
        raise ColumnMismatchError(COLUMN_MISMATCH_MESSAGE, missing=missing, unknown=unknown)
    return columns


class RowSource:
    """Iterable of (line, values) pairs for one sheet.

    ``raw_rows`` must be re-iterable (a list from read_sheet_rows, for example);
    one-shot iterators are materialized so the header can be re-seeked.
    Iterating again restarts from the first row.
    """

    def __init__(
        self,
        raw_rows: Iterable[Sequence[Any]],
        fields: Sequence[FieldSpec],
        mode: MatchMode = MatchMode.TOLERANT,
        header_row: int = 1,
    ) -> None:
        if isinstance(raw_rows, Iterator):
            raw_rows = list(raw_rows)
        self._raw_rows = raw_rows
        self.fields = list(fields)
        self.mode = mode
        self.header_row = header_row
        self.columns: dict[int, str] | None = None

    def resolve_columns(self) -> dict[int, str]:
        """Read the header row and resolve the column mapping."""
        for line, cells in enumerate(self._raw_rows, start=1):
            if line == self.header_row:
                self.columns = match_columns(cells, self.fields, self.mode)
                return self.columns
        raise ColumnMismatchError(f"sheet has no header row (expected on line {self.header_row})")

    def __iter__(self) -> Iterator[tuple[int, dict[str, Any]]]:
        columns = self.columns if self.columns is not None else self.resolve_columns()
        for line, cells in enumerate(self._raw_rows, start=1):
            if line <= self.header_row:
                continue
            values = {
                name: normalize_cell(cells[index]) if index < len(cells) else EMPTY
                for index, name in columns.items()
            }
            # fully blank rows are not rows
            if all(is_empty(v) for v in values.values()):
                continue
            yield line, values
