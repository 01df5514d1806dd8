from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..db.query import Store, same_value
from ..errors import RuleValidationError
from ..models.row_data import is_empty
from .base import ROW_MESSAGE, KeyGroup, LineEntry, RuleValidator

__all__ = [
    "Equal",
    "EmptyOrEqual",
]


class Equal(RuleValidator):
    """Rows matching a stored record must agree with it on ``equal_fields``.

    ``equal_fields`` maps a row field to a store field or dot-path::

        Equal(
            store, "books", [["isbn", "name"]],
            equal_fields={"category_code": "category.code"},
            relations={"category": BelongsTo("categories", "category_id")},
        )

    Rows without a matching record are not checked. Each differing field
    yields its own message.
    """

    default_message = "does not match the existing data"
    kind = RuleValidationError.NOT_EQUAL

    def __init__(
        self,
        store: Store,
        table: str,
        attributes: Any,
        *,
        equal_fields: Mapping[str, str] | list[str],
        **kwargs: Any,
    ) -> None:
        if isinstance(equal_fields, Mapping):
            self.equal_fields = dict(equal_fields)
        else:
            self.equal_fields = {name: name for name in equal_fields}
        super().__init__(store, table, attributes, **kwargs)

    def referenced_paths(self) -> list[str]:
        return list(self.equal_fields.values())

    def skip(self, stored: Any, value: Any) -> bool:
        return False

    def check_lines(
        self,
        group: KeyGroup,
        records: list[dict[str, Any]],
        lines: list[LineEntry],
        display_names: Mapping[str, str],
    ) -> None:
        grouped = self.group_records(group, records)
        for entry in lines:
            candidates = self.candidates(grouped, entry)
            if not candidates:
                continue
            # one record per key, the first one wins
            record = candidates[0]
            for alias, path in self.equal_fields.items():
                stored = self.stored_value(record, path)
                value = entry.row.get(alias)
                if self.skip(stored, value):
                    continue
                if same_value(stored, value) or (stored is None and is_empty(value)):
                    continue
                message = self.messages.get(alias) or self.message_for(group.name)
                fields = self.display([alias], display_names)
                self.add_error(entry.line, ROW_MESSAGE.format(line=entry.line, fields=fields, message=message))


class EmptyOrEqual(Equal):
    """Like Equal, but only fails when both sides are filled in and differ."""

    def skip(self, stored: Any, value: Any) -> bool:
        return is_empty(stored) or is_empty(value)
