from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .query import BatchQuery, same_value
from .relations import (
    PARENT_KEY_COLUMN,
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasManyThrough,
    HasOne,
    Relation,
    attach_related,
    parent_keys,
    relation_select_key,
)

"""In-process Store over plain lists of dicts.

Used by tests and by callers embedding the orchestrator without a database.
Every fetch() is recorded in ``queries`` so callers can assert how many
round-trips a validation issued.
"""

__all__ = [
    "MemoryStore",
]

logger = logging.getLogger(__name__)


class MemoryStore:
    def __init__(self, tables: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self.queries: list[BatchQuery] = []

    @property
    def query_count(self) -> int:
        return len(self.queries)

    def insert(self, table: str, rows: list[Mapping[str, Any]]) -> int:
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)
        return len(rows)

    def fetch(self, query: BatchQuery) -> list[dict[str, Any]]:
        self.queries.append(query)
        rows = self.tables.get(query.table, [])
        select = list(dict.fromkeys(query.select))
        records = [{name: row.get(name) for name in select} for row in rows if query.matches(row)]
        for name, relation in query.relations.items():
            related = self._load_relation(relation, parent_keys(records, relation))
            attach_related(records, name, relation, related)
        logger.debug("memory fetch %s: %d branch(es) -> %d record(s)", query.table, len(query.branches), len(records))
        return records

    def _rows_where(self, table: str, column: str, values: list[Any]) -> list[dict[str, Any]]:
        return [
            dict(row) for row in self.tables.get(table, [])
            if any(same_value(row.get(column), v) for v in values)
        ]

    def _load_relation(self, relation: Relation, keys: list[Any]) -> list[dict[str, Any]]:
        relation_select_key(relation)  # rejects unknown kinds
        if not keys:
            return []
        if isinstance(relation, BelongsTo):
            return self._rows_where(relation.table, relation.owner_key, keys)
        if isinstance(relation, (HasOne, HasMany)):
            return self._rows_where(relation.table, relation.foreign_key, keys)
        if isinstance(relation, BelongsToMany):
            bridge = self._rows_where(relation.pivot_table, relation.foreign_pivot_key, keys)
            return self._join(bridge, relation.related_pivot_key, relation.foreign_pivot_key,
                              relation.table, relation.related_key)
        bridge = self._rows_where(relation.through_table, relation.first_key, keys)
        return self._join(bridge, relation.second_local_key, relation.first_key,
                          relation.table, relation.second_key)

    def _join(
        self,
        bridge: list[dict[str, Any]],
        bridge_link: str,
        bridge_parent: str,
        table: str,
        related_link: str,
    ) -> list[dict[str, Any]]:
        joined = []
        for b in bridge:
            for row in self._rows_where(table, related_link, [b.get(bridge_link)]):
                row[PARENT_KEY_COLUMN] = b.get(bridge_parent)
                joined.append(row)
        return joined
