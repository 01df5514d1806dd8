from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from psycopg2 import sql

from ..errors import PersistenceError
from .query import BatchQuery, Condition
from .relations import (
    PARENT_KEY_COLUMN,
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasOne,
    Relation,
    attach_related,
    parent_keys,
    relation_select_key,
)

"""PostgreSQL Store and Transaction on a psycopg2 cursor.

fetch() issues one SELECT for the batched query, then one SELECT per declared
relation (``= ANY(%s)`` over the distinct parent keys). Identifiers go through
psycopg2.sql so table/column names from config are always quoted.

PostgresTransaction issues explicit BEGIN / COMMIT / ROLLBACK on the cursor; the
connection is expected to run with ``autocommit = True`` or to be idle.
"""

__all__ = [
    "PostgresStore",
    "PostgresTransaction",
    "condition_sql",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _identifier(name: str) -> sql.Identifier:
    # "schema.table" -> "schema"."table"
    return sql.Identifier(*name.split("."))


def condition_sql(cond: Condition) -> tuple[sql.Composable, list[Any]]:
    """SQL fragment and parameters of one Condition."""
    column = _identifier(cond.field)
    if cond.op == "is_null":
        return sql.SQL("{} IS NULL").format(column), []
    if cond.op == "not_null":
        return sql.SQL("{} IS NOT NULL").format(column), []
    operator = sql.SQL("=" if cond.op == "=" else "<>")
    fragment = sql.SQL("{} {} %s").format(column, operator)
    if cond.or_null:
        fragment = sql.SQL("({} OR {} IS NULL)").format(fragment, column)
    return fragment, [cond.value]


def _conjunction(conditions: list[Condition]) -> tuple[sql.Composable, list[Any]]:
    parts = []
    params: list[Any] = []
    for cond in conditions:
        fragment, values = condition_sql(cond)
        parts.append(fragment)
        params.extend(values)
    if not parts:
        return sql.SQL("TRUE"), []
    return sql.SQL("(") + sql.SQL(" AND ").join(parts) + sql.SQL(")"), params


class PostgresStore:
    """Store backed by a psycopg2 cursor (plain or DictCursor)."""

    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def build_select(self, query: BatchQuery) -> tuple[sql.Composed, list[Any]]:
        columns = list(dict.fromkeys(query.select))
        where, params = _conjunction(query.wheres)
        branch_sql = []
        for branch in query.branches:
            fragment, values = _conjunction(branch)
            branch_sql.append(fragment)
            params.extend(values)
        statement = sql.SQL("SELECT {cols} FROM {table} WHERE {where} AND ({branches})").format(
            cols=sql.SQL(", ").join(_identifier(c) for c in columns),
            table=_identifier(query.table),
            where=where,
            branches=sql.SQL(" OR ").join(branch_sql) if branch_sql else sql.SQL("FALSE"),
        )
        return statement, params

    def _records(self) -> list[dict[str, Any]]:
        names = [d[0] for d in self.cursor.description]
        return [dict(zip(names, row)) for row in self.cursor.fetchall()]

    def fetch(self, query: BatchQuery) -> list[dict[str, Any]]:
        statement, params = self.build_select(query)
        self.cursor.execute(statement, params)
        records = self._records()
        for name, relation in query.relations.items():
            keys = parent_keys(records, relation)
            related = self._load_relation(relation, keys) if keys else []
            attach_related(records, name, relation, related)
        logger.debug("fetch %s: %d branch(es) -> %d record(s)", query.table, len(query.branches), len(records))
        return records

    def _load_relation(self, relation: Relation, keys: list[Any]) -> list[dict[str, Any]]:
        relation_select_key(relation)  # rejects unknown kinds
        link = sql.Identifier(PARENT_KEY_COLUMN)
        if isinstance(relation, BelongsTo):
            statement = sql.SQL("SELECT * FROM {t} WHERE {k} = ANY(%s)").format(
                t=_identifier(relation.table), k=sql.Identifier(relation.owner_key)
            )
        elif isinstance(relation, (HasOne, HasMany)):
            statement = sql.SQL("SELECT * FROM {t} WHERE {k} = ANY(%s)").format(
                t=_identifier(relation.table), k=sql.Identifier(relation.foreign_key)
            )
        elif isinstance(relation, BelongsToMany):
            statement = sql.SQL(
                "SELECT r.*, p.{parent} AS {link} FROM {t} r JOIN {pivot} p ON r.{rk} = p.{rpk} "
                "WHERE p.{parent} = ANY(%s)"
            ).format(
                parent=sql.Identifier(relation.foreign_pivot_key),
                link=link,
                t=_identifier(relation.table),
                pivot=_identifier(relation.pivot_table),
                rk=sql.Identifier(relation.related_key),
                rpk=sql.Identifier(relation.related_pivot_key),
            )
        else:
            statement = sql.SQL(
                "SELECT r.*, th.{first} AS {link} FROM {t} r JOIN {through} th ON r.{second} = th.{second_local} "
                "WHERE th.{first} = ANY(%s)"
            ).format(
                first=sql.Identifier(relation.first_key),
                link=link,
                t=_identifier(relation.table),
                through=_identifier(relation.through_table),
                second=sql.Identifier(relation.second_key),
                second_local=sql.Identifier(relation.second_local_key),
            )
        self.cursor.execute(statement, [keys])
        return self._records()


class PostgresTransaction:
    """``run(callback)`` between BEGIN and COMMIT, ROLLBACK on any error."""

    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    def run(self, callback: Callable[[], T]) -> T:
        try:
            self.cursor.execute("BEGIN")
        except Exception as e:
            raise PersistenceError(f"failed to begin transaction: {e}") from e
        try:
            result = callback()
        except Exception:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rollback_error:
                logger.error("rollback failed: %s", rollback_error)
            raise
        try:
            self.cursor.execute("COMMIT")
        except Exception as e:
            try:
                self.cursor.execute("ROLLBACK")
            except Exception as rollback_error:
                logger.error("rollback failed: %s", rollback_error)
            raise PersistenceError(f"failed to commit transaction: {e}") from e
        logger.debug("transaction committed")
        return result
