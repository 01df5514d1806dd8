from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import RuleConfigurationError

"""Store-neutral batched query.

A BatchQuery is one round-trip: a static filter (``wheres``) AND-ed with the
OR of per-row branches, each branch an AND of Conditions.

    (wheres) AND ((branch 1) OR (branch 2) OR ...)

Stores (PostgresStore, MemoryStore) translate it to their own dialect and
return plain dict records, with declared relations attached under the
relation name.
"""

__all__ = [
    "Condition",
    "BatchQuery",
    "Store",
    "conditions_from_config",
    "same_value",
]

OPERATORS = ("=", "!=", "is_null", "not_null")


def same_value(left: Any, right: Any) -> bool:
    """Equality in text form (sheet values are text, store values are typed)."""
    if left is None or right is None:
        return left is None and right is None
    return left == right or str(left) == str(right)


@dataclass(frozen=True)
class Condition:
    """One comparison ``field <op> value``.

    ``or_null`` widens the comparison with ``OR field IS NULL``.
    """
    field: str
    value: Any = None
    op: str = "="
    or_null: bool = False

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise RuleConfigurationError(f"unsupported operator {self.op!r} on {self.field!r}")

    def matches(self, record: Mapping[str, Any]) -> bool:
        """In-process evaluation (SQL NULL semantics: NULL never equals anything)."""
        current = record.get(self.field)
        if current is None:
            if self.op == "is_null" or self.or_null:
                return True
            return False
        if self.op == "=":
            return same_value(current, self.value)
        if self.op == "!=":
            return not same_value(current, self.value)
        if self.op == "is_null":
            return False
        return True  # not_null


@dataclass
class BatchQuery:
    """One batched lookup against ``table``."""
    table: str
    select: list[str]
    wheres: list[Condition] = field(default_factory=list)
    branches: list[list[Condition]] = field(default_factory=list)
    relations: dict[str, Any] = field(default_factory=dict)  # name -> relation (db.relations)

    def add_branch(self, conditions: Iterable[Condition]) -> None:
        self.branches.append(list(conditions))

    def matches(self, record: Mapping[str, Any]) -> bool:
        if not all(c.matches(record) for c in self.wheres):
            return False
        return any(all(c.matches(record) for c in branch) for branch in self.branches)


class Store(Protocol):
    def fetch(self, query: BatchQuery) -> list[dict[str, Any]]:
        ...


def conditions_from_config(wheres: Any) -> list[Condition]:
    """Build static conditions from config.

    Accepts ``{"field": value}`` (equality, None -> IS NULL), a list of
    ``[field, value]`` / ``[field, op, value]`` items, or Condition objects.
    """
    if not wheres:
        return []
    if isinstance(wheres, Mapping):
        return [
            Condition(name, op="is_null") if value is None else Condition(name, value)
            for name, value in wheres.items()
        ]
    result = []
    for item in wheres:
        if isinstance(item, Condition):
            result.append(item)
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            result.append(Condition(item[0], item[1]))
        elif isinstance(item, (list, tuple)) and len(item) == 3:
            result.append(Condition(item[0], item[2], op=item[1]))
        else:
            raise RuleConfigurationError(f"invalid where condition: {item!r}")
    return result
