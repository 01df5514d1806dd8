from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from ..errors import RuleConfigurationError

"""Relation kinds usable in rule dot-paths.

The set is closed: each kind names the key the parent query must select so the
related records can be loaded afterwards.

- BelongsTo: the record holds the parent key (``foreign_key`` -> ``owner_key``)
- HasOne / HasMany: the related table holds the record's key (``local_key``)
- BelongsToMany: related through a pivot table (``parent_key``)
- HasManyThrough: related through an intermediate table (``local_key``)

Dot-paths: ``category.name`` for to-one relations, ``tags.0.name`` for the
first related record of a to-many relation.
"""

__all__ = [
    "BelongsTo",
    "HasOne",
    "HasMany",
    "BelongsToMany",
    "HasManyThrough",
    "Relation",
    "relation_select_key",
    "is_to_many",
    "resolve_path",
    "relation_from_config",
    "related_link_column",
    "attach_related",
    "parent_keys",
    "PARENT_KEY_COLUMN",
]


@dataclass(frozen=True)
class BelongsTo:
    table: str
    foreign_key: str
    owner_key: str = "id"


@dataclass(frozen=True)
class HasOne:
    table: str
    foreign_key: str  # column on the related table
    local_key: str = "id"


@dataclass(frozen=True)
class HasMany:
    table: str
    foreign_key: str
    local_key: str = "id"


@dataclass(frozen=True)
class BelongsToMany:
    table: str
    pivot_table: str
    foreign_pivot_key: str  # pivot column pointing at the parent
    related_pivot_key: str  # pivot column pointing at the related record
    parent_key: str = "id"
    related_key: str = "id"


@dataclass(frozen=True)
class HasManyThrough:
    table: str
    through_table: str
    first_key: str  # through-table column pointing at the parent
    second_key: str  # related-table column pointing at the through record
    local_key: str = "id"
    second_local_key: str = "id"


Relation = Union[BelongsTo, HasOne, HasMany, BelongsToMany, HasManyThrough]

_KINDS = {
    "belongs_to": BelongsTo,
    "has_one": HasOne,
    "has_many": HasMany,
    "belongs_to_many": BelongsToMany,
    "has_many_through": HasManyThrough,
}


def relation_select_key(relation: Any) -> str:
    """Column of the parent record needed to load ``relation``.

    Raises:
        RuleConfigurationError: relation is not one of the known kinds
    """
    if isinstance(relation, BelongsTo):
        return relation.foreign_key
    if isinstance(relation, (HasOne, HasMany, HasManyThrough)):
        return relation.local_key
    if isinstance(relation, BelongsToMany):
        return relation.parent_key
    raise RuleConfigurationError(f"cannot get relation key of {type(relation).__name__}")


def is_to_many(relation: Relation) -> bool:
    return isinstance(relation, (HasMany, BelongsToMany, HasManyThrough))


def resolve_path(record: Mapping[str, Any], path: str) -> Any:
    """Value at a dot-path, None when any step is missing."""
    current: Any = record
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
    return current


def relation_from_config(data: Mapping[str, Any]) -> Relation:
    """Build a relation from ``{"kind": "belongs_to", "table": ..., ...}``."""
    params = dict(data)
    kind = params.pop("kind", None)
    cls = _KINDS.get(kind)
    if cls is None:
        raise RuleConfigurationError(f"unknown relation kind: {kind!r}")
    try:
        return cls(**params)
    except TypeError as e:
        raise RuleConfigurationError(f"invalid {kind} relation: {e}") from e


# Column added to pivot/through rows holding the parent's key
PARENT_KEY_COLUMN = "_parent_key"


def related_link_column(relation: Relation) -> str:
    """Column of the related rows matched against relation_select_key()."""
    if isinstance(relation, BelongsTo):
        return relation.owner_key
    if isinstance(relation, (HasOne, HasMany)):
        return relation.foreign_key
    if isinstance(relation, (BelongsToMany, HasManyThrough)):
        return PARENT_KEY_COLUMN
    raise RuleConfigurationError(f"cannot get relation key of {type(relation).__name__}")


def attach_related(
    records: list[dict[str, Any]],
    name: str,
    relation: Relation,
    related: list[dict[str, Any]],
) -> None:
    """Attach loaded related rows to their parent records under ``name``."""
    link = related_link_column(relation)
    grouped: dict[str, list[dict[str, Any]]] = {}
    for row in related:
        value = row.get(link)
        if value is not None:
            grouped.setdefault(str(value), []).append(row)
    parent_key = relation_select_key(relation)
    many = is_to_many(relation)
    for record in records:
        value = record.get(parent_key)
        matches = grouped.get(str(value), []) if value is not None else []
        record[name] = matches if many else (matches[0] if matches else None)


def parent_keys(records: list[dict[str, Any]], relation: Relation) -> list[Any]:
    """Distinct non-null parent key values, in first-seen order."""
    key = relation_select_key(relation)
    seen: dict[str, Any] = {}
    for record in records:
        value = record.get(key)
        if value is not None:
            seen.setdefault(str(value), value)
    return list(seen.values())
