from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ..db.query import Condition, Store
from ..errors import RuleValidationError
from ..models.row_data import is_empty
from .base import ROW_MESSAGE, KeyGroup, LineEntry, RuleValidator

__all__ = [
    "Exists",
    "Unique",
]


class Exists(RuleValidator):
    """Every row's key must match a stored record.

    Example: the department code of each row must exist::

        Exists(store, "departments", ["code"], wheres={"deleted_at": None})
    """

    default_message = "does not exist"
    kind = RuleValidationError.NOT_FOUND

    def failed(self, found: bool) -> bool:
        return not found

    def check_lines(
        self,
        group: KeyGroup,
        records: list[dict[str, Any]],
        lines: list[LineEntry],
        display_names: Mapping[str, str],
    ) -> None:
        grouped = self.group_records(group, records)
        fields = self.display(group.aliases, display_names)
        message = self.message_for(group.name)
        for entry in lines:
            if self.failed(bool(self.candidates(grouped, entry))):
                self.add_error(entry.line, ROW_MESSAGE.format(line=entry.line, fields=fields, message=message))


class Unique(Exists):
    """No row's key may match a stored record.

    ``ignore_fields`` skips the row's own record (``id != row.id``);
    ``ignore_null_fields`` does the same but also lets NULL stored values
    through (``id != row.id OR id IS NULL``).
    """

    default_message = "already exists"
    kind = RuleValidationError.NOT_UNIQUE

    def __init__(
        self,
        store: Store,
        table: str,
        attributes: Any,
        *,
        ignore_null_fields: Iterable[str] | Mapping[str, bool] | None = None,
        **kwargs: Any,
    ) -> None:
        if isinstance(ignore_null_fields, Mapping):
            self.ignore_null_fields = dict(ignore_null_fields)
        else:
            self.ignore_null_fields = {name: True for name in ignore_null_fields or []}
        super().__init__(store, table, attributes, **kwargs)

    def failed(self, found: bool) -> bool:
        return found

    def branch_conditions(self, group: KeyGroup, row: Mapping[str, Any]) -> list[Condition]:
        conditions = super().branch_conditions(group, row)
        for alias, or_null in self.ignore_null_fields.items():
            value = row.get(alias)
            if not is_empty(value):
                conditions.append(Condition(self.aliases.get(alias, alias), value, op="!=", or_null=or_null))
        return conditions
