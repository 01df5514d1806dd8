from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..rules.base import batch_key

"""In-sheet duplicate detection.

For each configured key-group the first line carrying a key is remembered;
any later line with the same key is a conflict. Rows with an empty key field
are never compared for that key-group.
"""

__all__ = [
    "DuplicateDetector",
    "DUPLICATE_MESSAGE",
]

DUPLICATE_MESSAGE = (
    "{fields} error: original row {line} duplicates row {first}, values must be unique within the sheet"
)


class DuplicateDetector:
    def __init__(self, unique_keys: Sequence[Sequence[str]], display_names: Mapping[str, str] | None = None) -> None:
        self.unique_keys = [list(group) for group in unique_keys]
        self.display_names = dict(display_names or {})
        self._seen: list[dict[str, int]] = [{} for _ in self.unique_keys]

    def reset(self) -> None:
        """Forget every key seen so far (new import)."""
        self._seen = [{} for _ in self.unique_keys]

    def conflicts(self, values: Mapping[str, Any]) -> list[tuple[list[str], int]]:
        """``(key-group, first line)`` for every key of the row seen before."""
        found = []
        for group, seen in zip(self.unique_keys, self._seen):
            key = batch_key(values.get(name) for name in group)
            if key is not None and key in seen:
                found.append((group, seen[key]))
        return found

    def record(self, values: Mapping[str, Any], line: int) -> list[tuple[list[str], int]]:
        """Conflicts of the row with earlier rows; a row without conflicts has its keys remembered."""
        conflicts = self.conflicts(values)
        if not conflicts:
            for group, seen in zip(self.unique_keys, self._seen):
                key = batch_key(values.get(name) for name in group)
                if key is not None:
                    seen[key] = line
        return conflicts

    def describe(self, conflicts: Sequence[tuple[list[str], int]], line: int) -> str:
        return "; ".join(
            DUPLICATE_MESSAGE.format(
                fields=", ".join(self.display_names.get(name, name) for name in group),
                line=line,
                first=first,
            )
            for group, first in conflicts
        )

    def check(self, values: Mapping[str, Any], line: int) -> str | None:
        """Check the row against earlier rows, recording its keys when unique.

        Returns:
            Conflict message(s) joined with "; ", or None when the row is unique.
        """
        conflicts = self.record(values, line)
        return self.describe(conflicts, line) if conflicts else None
