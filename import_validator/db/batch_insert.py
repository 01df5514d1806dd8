from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2 import sql
from psycopg2.extensions import AsIs
from psycopg2.extras import execute_values

from ..errors import PersistenceError
from ..models.row_data import RowData, is_empty

"""Default persistence step: batched INSERT of accepted rows.

psycopg2.extras.execute_values sends the rows in pages of ``page_size``.
Columns are the union of the accepted rows' fields in first-seen order; in
update mode a row may lack some of them. Missing and empty cells are sent as
DEFAULT so the column default applies.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "batch_insert",
    "TableWriter",
]

logger = logging.getLogger(__name__)


class BatchInsertError(PersistenceError):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    elapsed_seconds: float = 0.0


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
) -> InsertResult:
    """Perform batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table ("schema.table" allowed)
    columns: insert columns
    rows: value sequences in ``columns`` order
    page_size: execute_values page size
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    statement = sql.SQL("INSERT INTO {table} ({cols}) VALUES %s").format(
        table=sql.Identifier(*table.split(".")),
        cols=sql.SQL(",").join(sql.Identifier(c) for c in columns),
    )
    start_time = time.time()
    try:
        execute_values(cursor, statement, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchInsertError(f"insert into {table} failed: {e}") from e
    elapsed = time.time() - start_time
    logger.debug("inserted %d rows into %s in %.3fs", len(rows_list), table, elapsed)
    return InsertResult(inserted_rows=len(rows_list), elapsed_seconds=elapsed)


class TableWriter:
    """``persist`` callable inserting accepted rows into one table.

    Args:
        cursor: psycopg2 cursor
        table: target table
        columns: inserted fields (default: every field of the accepted rows)
        page_size: execute_values page size
    """

    def __init__(self, cursor: Any, table: str, columns: Sequence[str] | None = None, page_size: int = 1000) -> None:
        self.cursor = cursor
        self.table = table
        self.columns = list(columns) if columns else None
        self.page_size = page_size

    def _columns(self, rows: Sequence[RowData]) -> list[str]:
        if self.columns:
            return self.columns
        return list(dict.fromkeys(name for row in rows for name in row.values))

    def __call__(self, rows: Sequence[RowData]) -> int:
        if not rows:
            return 0
        columns = self._columns(rows)
        default = AsIs("DEFAULT")
        values = [
            [default if is_empty(row.values.get(c)) else row.values[c] for c in columns]
            for row in rows
        ]
        return batch_insert(self.cursor, self.table, columns, values, page_size=self.page_size).inserted_rows
