from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any

"""Dictionary (closed enumeration) used to translate sheet labels to stored codes.

Keys are what people type into the sheet, values are what gets stored, e.g.
``Dictionary({"Admin": 1, "Member": 2})``.
"""

__all__ = [
    "Dictionary",
]


class Dictionary:
    """Read-only label -> code lookup preserving declaration order."""

    def __init__(self, maps: Mapping[Any, Any]) -> None:
        self._maps: dict[Any, Any] = dict(maps)

    def has(self, key: Any) -> bool:
        # sheet cells arrive as text, so "1" must match an int key 1
        return self._lookup_key(key) is not None

    def get(self, key: Any) -> Any:
        found = self._lookup_key(key)
        return None if found is None else self._maps[found[0]]

    def all(self) -> dict[Any, Any]:
        return dict(self._maps)

    def keys(self) -> list[Any]:
        return list(self._maps.keys())

    def values(self) -> list[Any]:
        return list(self._maps.values())

    def _lookup_key(self, key: Any) -> tuple[Any] | None:
        if key in self._maps:
            return (key,)
        text = str(key)
        for candidate in self._maps:
            if str(candidate) == text:
                return (candidate,)
        return None

    def __contains__(self, key: object) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._maps)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._maps)

    def __repr__(self) -> str:  # pragma: no cover (trivial)
        return f"Dictionary({self._maps!r})"
