from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from ..db.query import BatchQuery, Condition, Store, conditions_from_config
from ..db.relations import relation_select_key, resolve_path
from ..errors import RuleConfigurationError
from ..models.row_data import is_empty

"""Batch cross-reference rules.

A rule validates all accepted rows at once. For each key-group it builds ONE
BatchQuery with an OR-branch per row, fetches it, groups the returned records by
batch_key() and hands every (line, key, row) to the rule's decision function.
Rows missing any key value are exempt from that key-group. A line is decided
on the records of its key that satisfy its own branch (ignore_fields included),
so its verdict does not depend on the other rows of the batch.

Messages look like ``"original row 12: Email already exists"``.
"""

__all__ = [
    "KEY_SEPARATOR",
    "batch_key",
    "KeyGroup",
    "LineEntry",
    "RuleValidator",
    "ROW_MESSAGE",
]

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "\t"
ROW_MESSAGE = "original row {line}: {fields} {message}"


def _key_part(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def batch_key(values: Iterable[Any]) -> str | None:
    """Tab-joined text of the values; None when any value is empty."""
    parts = []
    for value in values:
        if is_empty(value):
            return None
        parts.append(_key_part(value))
    return KEY_SEPARATOR.join(parts)


@dataclass(frozen=True)
class KeyGroup:
    """Fields forming one lookup key: row alias -> store field."""
    name: str
    fields: dict[str, str]

    @property
    def aliases(self) -> list[str]:
        return list(self.fields)

    @property
    def store_fields(self) -> list[str]:
        return list(self.fields.values())

    def row_key(self, row: Mapping[str, Any]) -> str | None:
        return batch_key(row.get(alias) for alias in self.aliases)

    def record_key(self, record: Mapping[str, Any]) -> str | None:
        return batch_key(record.get(field) for field in self.store_fields)


@dataclass(frozen=True)
class LineEntry:
    """One row of a key-group together with the conditions of its own branch."""
    line: int
    key: str
    row: Mapping[str, Any]
    conditions: tuple[Condition, ...] = ()

    def own_records(self, records: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
        """Records satisfying this row's branch.

        The batched result also holds records fetched for other rows sharing
        the key, e.g. the row's own record excluded only by its ``id != ...``.
        """
        return [r for r in records if all(c.matches(r) for c in self.conditions)]


def build_key_groups(attributes: Any, aliases: Mapping[str, str]) -> list[KeyGroup]:
    """Key-groups from ``"name"``, ``["email", ["code", "org_id"]]`` or
    ``{"by_code": ["code", "org_id"]}``; unnamed groups are named after their
    first field."""
    if isinstance(attributes, str):
        attributes = [attributes]
    items = attributes.items() if isinstance(attributes, Mapping) else ((None, a) for a in attributes)
    groups = []
    for name, fields in items:
        if isinstance(fields, str):
            fields = [fields]
        fields = list(fields)
        if not fields:
            raise RuleConfigurationError("empty key-group in rule attributes")
        groups.append(KeyGroup(name=name or fields[0], fields={a: aliases.get(a, a) for a in fields}))
    if not groups:
        raise RuleConfigurationError("a rule needs at least one key-group")
    return groups


class RuleValidator(ABC):
    """Base class of the store-backed rules.

    Args:
        store: Store used for the batched lookups
        table: Table (or entity) queried
        attributes: Key-groups, see build_key_groups()
        wheres: Static conditions added to every branch
        ignore_fields: Fields whose stored value must differ from the row's
            (skip the row's own record when updating)
        aliases: Row field -> store field
        messages: Message text per key-group name (or per compared field);
            a plain string applies everywhere
        relations: Relation name -> relation, for dot-paths
    """

    default_message = "failed validation, please correct it"
    kind: str | None = None

    def __init__(
        self,
        store: Store,
        table: str,
        attributes: Any,
        *,
        wheres: Any = None,
        ignore_fields: Iterable[str] | None = None,
        aliases: Mapping[str, str] | None = None,
        messages: str | Mapping[str, str] | None = None,
        relations: Mapping[str, Any] | None = None,
    ) -> None:
        self.store = store
        self.table = table
        self.aliases = dict(aliases or {})
        self.wheres = conditions_from_config(wheres)
        self.ignore_fields = list(ignore_fields or [])
        if isinstance(messages, str):
            self.messages: dict[str, str] = {}
            self.default_message = messages
        else:
            self.messages = dict(messages or {})
        self.relations = dict(relations or {})
        for relation in self.relations.values():
            relation_select_key(relation)
        self.key_groups = build_key_groups(attributes, self.aliases)
        for path in self.referenced_paths():
            self._check_path(path)
        self._errors: dict[int, list[str]] = {}
        self._kinds: dict[int, str] = {}
        self.query_times: list[float] = []

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def query_count(self) -> int:
        return len(self.query_times)

    def _check_path(self, path: str) -> None:
        if "." not in path:
            return
        relation = path.split(".", 1)[0]
        if relation not in self.relations:
            raise RuleConfigurationError(f"{self.name}: relation '{relation}' used in '{path}' is not declared")

    # ----- extension points -----

    def referenced_paths(self) -> list[str]:
        """Store fields (maybe dot-paths) compared by the decision function."""
        return []

    def extra_select(self) -> list[str]:
        return []

    def branch_conditions(self, group: KeyGroup, row: Mapping[str, Any]) -> list[Condition]:
        conditions = [Condition(field, row.get(alias)) for alias, field in group.fields.items()]
        for alias in self.ignore_fields:
            value = row.get(alias)
            if not is_empty(value):
                conditions.append(Condition(self.aliases.get(alias, alias), value, op="!="))
        return conditions

    @abstractmethod
    def check_lines(
        self,
        group: KeyGroup,
        records: list[dict[str, Any]],
        lines: list[LineEntry],
        display_names: Mapping[str, str],
    ) -> None:
        """Decide every line of ``group`` and add_error() the failures."""

    # ----- template -----

    def message_for(self, key: str) -> str:
        return self.messages.get(key) or self.default_message

    def display(self, aliases: Iterable[str], display_names: Mapping[str, str]) -> str:
        return ", ".join(display_names.get(a, a) for a in aliases)

    def add_error(self, line: int, message: str, kind: str | None = None) -> None:
        """Record a failure; the first kind recorded for a line is kept."""
        self._errors.setdefault(line, []).append(message)
        kind = kind or self.kind
        if kind is not None:
            self._kinds.setdefault(line, kind)

    def errors(self) -> dict[int, list[str]]:
        return self._errors

    def error_kinds(self) -> dict[int, str]:
        """line -> RuleValidationError kind (not_found / not_unique / not_equal)."""
        return self._kinds

    def build_query(self, group: KeyGroup, rows: Mapping[int, Mapping[str, Any]]) -> tuple[BatchQuery, list[LineEntry]]:
        paths = self.referenced_paths()
        used = {p.split(".", 1)[0] for p in paths if "." in p}
        relations = {name: rel for name, rel in self.relations.items() if name in used}
        select = group.store_fields + [p for p in paths if "." not in p] + self.extra_select()
        select += [relation_select_key(rel) for rel in relations.values()]
        query = BatchQuery(table=self.table, select=[], wheres=list(self.wheres), relations=relations)
        lines = []
        for line, row in rows.items():
            key = group.row_key(row)
            if key is None:
                continue
            conditions = self.branch_conditions(group, row)
            query.add_branch(conditions)
            lines.append(LineEntry(line, key, row, tuple(conditions)))
            # LineEntry.own_records() evaluates these on the fetched records
            select += [c.field for c in conditions]
        query.select = list(dict.fromkeys(select))
        return query, lines

    def validate(self, rows: Mapping[int, Mapping[str, Any]], display_names: Mapping[str, str] | None = None) -> bool:
        """Validate all rows; failures are available from errors().

        Args:
            rows: line -> row values
            display_names: field -> display name used in messages

        Returns:
            True when no row failed
        """
        self._errors = {}
        self._kinds = {}
        display_names = display_names or {}
        for group in self.key_groups:
            query, lines = self.build_query(group, rows)
            if not lines:
                continue
            start = time.perf_counter()
            records = self.store.fetch(query)
            self.query_times.append(time.perf_counter() - start)
            logger.debug("%s[%s]: %d line(s), %d record(s)", self.name, group.name, len(lines), len(records))
            self.check_lines(group, records, lines, display_names)
        return not self._errors

    # ----- helpers for subclasses -----

    @staticmethod
    def group_records(group: KeyGroup, records: Iterable[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
        grouped: dict[str, list[dict[str, Any]]] = {}
        for record in records:
            key = group.record_key(record)
            if key is not None:
                grouped.setdefault(key, []).append(record)
        return grouped

    @staticmethod
    def candidates(grouped: Mapping[str, list[dict[str, Any]]], entry: LineEntry) -> list[Mapping[str, Any]]:
        """Records of the entry's key that also satisfy its own branch."""
        return entry.own_records(grouped.get(entry.key, ()))

    @staticmethod
    def stored_value(record: Mapping[str, Any], path: str) -> Any:
        return resolve_path(record, path)
