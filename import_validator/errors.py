from __future__ import annotations

"""Exception hierarchy for the import validator.

Two families:

- fatal errors abort the whole import and are routed to ``on_failed``
  (column mismatch, max row guard, persistence failure, bad configuration);
- row errors describe why a single row was rejected. They are normally
  captured into an ErrorRecord and only raised when fail-fast is enabled.
"""

__all__ = [
    "ImportValidationError",
    "ConfigError",
    "RuleConfigurationError",
    "ColumnMismatchError",
    "FieldMismatchError",
    "MaxRowExceededError",
    "PersistenceError",
    "SheetReadError",
    "RowValidationError",
    "FieldFormatError",
    "DictionaryMismatchError",
    "RuleValidationError",
    "DuplicateInBatchError",
]


class ImportValidationError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(ImportValidationError):
    """Task configuration file is missing, unreadable or invalid."""


class RuleConfigurationError(ImportValidationError):
    """A rule, relation or field rule expression is misconfigured."""


class ColumnMismatchError(ImportValidationError):
    """Sheet header does not match the expected fields."""

    def __init__(self, message: str, *, missing: list[str] | None = None, unknown: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []
        self.unknown = unknown or []


# Older name kept for callers matching on the column-matching stage.
FieldMismatchError = ColumnMismatchError


class MaxRowExceededError(ImportValidationError):
    """More non-empty rows than the configured maximum."""

    def __init__(self, max_rows: int) -> None:
        super().__init__(
            f"sheet exceeds the maximum of {max_rows} rows, reduce it to {max_rows} rows or fewer and upload again"
        )
        self.max_rows = max_rows


class SheetReadError(ImportValidationError):
    """The workbook or sheet could not be read."""


class PersistenceError(ImportValidationError):
    """The persistence callback (or its transaction) failed."""


class RowValidationError(ImportValidationError):
    """A single row failed validation.

    Attributes:
        line: Source line of the rejected row (None when raised by a custom rule
            before the line is known)
        messages: Every message collected for the row
        error_type: UPPER_SNAKE cause used in error records
    """

    error_type = "ROW_VALIDATION_ERROR"

    def __init__(self, messages: str | list[str], line: int | None = None) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages = list(messages)
        self.line = line
        super().__init__("\n".join(self.messages))


class FieldFormatError(RowValidationError):
    error_type = "FIELD_FORMAT_ERROR"


class DictionaryMismatchError(RowValidationError):
    error_type = "DICTIONARY_MISMATCH"


class RuleValidationError(RowValidationError):
    """Batch rule rejection; ``kind`` is one of not_found / not_unique / not_equal."""

    error_type = "RULE_VALIDATION_ERROR"

    NOT_FOUND = "not_found"
    NOT_UNIQUE = "not_unique"
    NOT_EQUAL = "not_equal"

    def __init__(self, messages: str | list[str], line: int | None = None, kind: str | None = None) -> None:
        super().__init__(messages, line)
        self.kind = kind


class DuplicateInBatchError(RowValidationError):
    error_type = "DUPLICATE_IN_BATCH"

    def __init__(self, messages: str | list[str], line: int | None = None, first_line: int | None = None) -> None:
        super().__init__(messages, line)
        self.first_line = first_line
