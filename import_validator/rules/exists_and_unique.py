from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..db.query import Store, same_value
from ..errors import RuleValidationError
from ..models.row_data import is_empty
from .base import KeyGroup, LineEntry, RuleValidator

__all__ = [
    "ExistsAndUnique",
]


class ExistsAndUnique(RuleValidator):
    """The key must resolve to exactly one stored record.

    When the key matches several records, the row's non-empty
    ``nullable_fields`` (disambiguators) must narrow them down to one:

    - no record                          -> not found
    - one record                         -> ok
    - several, no disambiguator on row   -> not unique
    - several, filtered to none          -> not found
    - several, filtered to one           -> ok
    - several, filtered to several       -> not unique

    Disambiguators are only selected, never part of the branch: the query
    matches on the key, the filtering happens on the fetched records.

    Example: find a user by name, telling namesakes apart by id number::

        ExistsAndUnique(store, "users", ["name"], nullable_fields=["id_number"])
    """

    not_found_message = "does not exist"
    not_unique_message = "matches more than one existing record"

    def __init__(
        self,
        store: Store,
        table: str,
        attributes: Any,
        *,
        nullable_fields: Iterable[str] | None = None,
        not_found_message: str | None = None,
        not_unique_message: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.nullable_aliases = list(nullable_fields or [])
        if not_found_message:
            self.not_found_message = not_found_message
        if not_unique_message:
            self.not_unique_message = not_unique_message
        super().__init__(store, table, attributes, **kwargs)
        # alias -> store field
        self.nullable_fields = {a: self.aliases.get(a, a) for a in self.nullable_aliases}

    def extra_select(self) -> list[str]:
        return [self.aliases.get(a, a) for a in self.nullable_aliases]

    def decide(self, candidates: list[Mapping[str, Any]] | None, row: Mapping[str, Any]) -> str | None:
        """RuleValidationError kind of the row, None when it resolves to one record."""
        if not candidates:
            return RuleValidationError.NOT_FOUND
        if len(candidates) == 1:
            return None
        values = {a: row.get(a) for a in self.nullable_fields if not is_empty(row.get(a))}
        if not values:
            return RuleValidationError.NOT_UNIQUE
        matched = [
            record for record in candidates
            if all(same_value(record.get(self.nullable_fields[a]), v) for a, v in values.items())
        ]
        if not matched:
            return RuleValidationError.NOT_FOUND
        if len(matched) > 1:
            return RuleValidationError.NOT_UNIQUE
        return None

    def check_lines(
        self,
        group: KeyGroup,
        records: list[dict[str, Any]],
        lines: list[LineEntry],
        display_names: Mapping[str, str],
    ) -> None:
        grouped = self.group_records(group, records)
        for entry in lines:
            kind = self.decide(self.candidates(grouped, entry), entry.row)
            if kind is None:
                continue
            message = self.not_found_message if kind == RuleValidationError.NOT_FOUND else self.not_unique_message
            self.add_error(entry.line, f"original row {entry.line}: {message}", kind)
