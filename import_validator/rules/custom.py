from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from ..errors import RowValidationError, RuleConfigurationError

__all__ = [
    "CustomRule",
]


class CustomRule:
    """Per-row check written as a plain callable ``fn(row, line)``.

    Raising RowValidationError or ValueError rejects the row with the error's
    text. Any other exception is a bug in the callable and propagates.
    """

    def __init__(self, fn: Callable[[Mapping[str, Any], int], Any]) -> None:
        if not callable(fn):
            raise RuleConfigurationError("CustomRule needs a callable")
        self.fn = fn
        self._errors: dict[int, list[str]] = {}
        self._kinds: dict[int, str] = {}
        self.query_times: list[float] = []  # never queries the store

    @property
    def name(self) -> str:
        return getattr(self.fn, "__name__", type(self).__name__)

    def validate(self, rows: Mapping[int, Mapping[str, Any]], display_names: Mapping[str, str] | None = None) -> bool:
        self._errors = {}
        self._kinds = {}
        for line, row in rows.items():
            try:
                self.fn(row, line)
            except RowValidationError as e:
                self._errors.setdefault(line, []).extend(e.messages)
                kind = getattr(e, "kind", None)
                if kind is not None:
                    self._kinds.setdefault(line, kind)
            except ValueError as e:
                self._errors.setdefault(line, []).append(str(e))
        return not self._errors

    def errors(self) -> dict[int, list[str]]:
        return self._errors

    def error_kinds(self) -> dict[int, str]:
        return self._kinds
