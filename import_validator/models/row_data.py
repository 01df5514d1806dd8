from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""RowData model for the import validator.

RowData represents a single sheet row after column matching (and, once accepted,
after formatting). ``line`` is the row's stable identity in every error message.
"""

__all__ = [
    "RowData",
    "EMPTY",
    "is_empty",
]

# Marker for a cell left blank in the sheet.
EMPTY = ""


def is_empty(value: Any) -> bool:
    """True for values that count as "not filled in" (None, blank text)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


@dataclass(frozen=True)
class RowData:
    """Logical representation of a single row.

    ``values`` is what flows into rules and persistence; ``raw_values`` keeps the
    row exactly as read so rejected rows can be written back unchanged.
    """
    line: int  # 1-based source line
    values: dict[str, Any]  # field name -> value (formatted once accepted)
    raw_values: dict[str, Any] = field(default_factory=dict)  # values as read from the sheet

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)
