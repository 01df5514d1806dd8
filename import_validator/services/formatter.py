from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

from ..errors import DictionaryMismatchError, FieldFormatError
from ..models.config_models import FieldSpec
from ..models.error_record import ErrorRecord
from ..models.row_data import EMPTY, RowData, is_empty
from .field_rules import RuleEvaluator, date_format_for

"""Per-row formatting: dictionary substitution, date rendering, structural
rules and default injection.

format() never raises for bad data; it returns a RowOutcome holding either the
formatted RowData or the ErrorRecord describing why the row was rejected.
"""

__all__ = [
    "FieldFormatter",
    "RowOutcome",
]

logger = logging.getLogger(__name__)

DICTIONARY_MESSAGE = "{label} must be one of: {keys}"

# Rendering for native date cells of fields without a configured format
_DEFAULT_DATE_FORMATS = {
    datetime: "%Y-%m-%d %H:%M:%S",
    date: "%Y-%m-%d",
    time: "%H:%M:%S",
}


@dataclass(frozen=True)
class RowOutcome:
    """Result of formatting one row: exactly one of ``row`` / ``error`` is set."""
    row: RowData | None = None
    error: ErrorRecord | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def render_date(value: date | time, fmt: str | None) -> str:
    if fmt:
        return value.strftime(fmt)
    for kind, default in _DEFAULT_DATE_FORMATS.items():
        if isinstance(value, kind):
            return value.strftime(default)
    return str(value)


class FieldFormatter:
    """Format rows against the declared fields.

    Args:
        fields: Field specs in sheet order
        evaluator: Structural rule evaluator; built from ``fields`` when omitted
        use_default: True for insert mode (empty -> field default),
            False for update mode (empty values are dropped from the row)
    """

    def __init__(
        self,
        fields: Sequence[FieldSpec],
        evaluator: RuleEvaluator | None = None,
        use_default: bool = True,
    ) -> None:
        self.fields = list(fields)
        self.evaluator = evaluator if evaluator is not None else RuleEvaluator(self.fields)
        self.use_default = use_default
        self._date_formats = {spec.name: date_format_for(spec) for spec in self.fields}
        # the "must be one of" text is the same for every row
        self._dictionary_messages = {
            spec.name: DICTIONARY_MESSAGE.format(
                label=spec.label, keys=", ".join(str(k) for k in spec.dictionary.keys())
            )
            for spec in self.fields
            if spec.dictionary is not None
        }

    def format(self, line: int, values: Mapping[str, Any]) -> RowOutcome:
        """Format one row.

        Args:
            line: Source line of the row
            values: Field name -> value as read from the sheet

        Returns:
            RowOutcome with the formatted RowData, or the ErrorRecord of the row
        """
        formatted: dict[str, Any] = dict(values)
        dictionary_errors: dict[str, str] = {}

        for spec in self.fields:
            if spec.name not in formatted:
                continue
            value = formatted[spec.name]
            if spec.dictionary is not None:
                if is_empty(value):
                    # left to "required"
                    continue
                key = value.strip() if isinstance(value, str) else value
                if not spec.dictionary.has(key):
                    dictionary_errors[spec.name] = self._dictionary_messages[spec.name]
                    continue
                formatted[spec.name] = spec.dictionary.get(key)
            elif isinstance(value, (date, time)):
                formatted[spec.name] = render_date(value, self._date_formats.get(spec.name))

        structural = self.evaluator.validate(formatted, skip=dictionary_errors.keys())

        if dictionary_errors or structural:
            messages = []
            # keep field order across both sources
            reported = dict(structural)
            for spec in self.fields:
                if spec.name in dictionary_errors:
                    messages.append(dictionary_errors[spec.name])
                elif spec.name in reported:
                    messages.append(reported[spec.name])
            error_type = (
                DictionaryMismatchError.error_type if dictionary_errors else FieldFormatError.error_type
            )
            logger.debug("line %s rejected by formatter: %s", line, messages)
            return RowOutcome(error=ErrorRecord.create(line, values, messages, error_type))

        for spec in self.fields:
            if spec.name not in formatted or not is_empty(formatted[spec.name]):
                continue
            if not self.use_default:
                del formatted[spec.name]
            elif spec.default is not None:
                formatted[spec.name] = spec.default
            else:
                formatted[spec.name] = EMPTY

        return RowOutcome(row=RowData(line=line, values=formatted, raw_values=dict(values)))
