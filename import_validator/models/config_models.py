from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .dictionary import Dictionary

"""Config dataclasses for the import validator.

These are the domain models for configuration. ``config/loader.py`` builds them
from a YAML task file, but callers embedding the validator can construct them
directly.
"""


class MatchMode(Enum):
    """Header matching mode.

    - STRICT: every expected field must be present exactly once, nothing else
    - TOLERANT: unknown headers are ignored
    """
    STRICT = "strict"
    TOLERANT = "tolerant"


@dataclass(frozen=True)
class FieldSpec:
    """One importable field (one sheet column).

    ``rules`` uses the pipe syntax understood by RuleEvaluator, e.g.
    ``"required|string|max:12"``.
    """
    name: str  # key used in rows and rules
    display_name: str | None = None  # header text shown in the sheet
    rules: str | list[str] | None = None
    remark: str | None = None  # hint text for template/report readers
    dictionary: Dictionary | None = None
    optional: bool = False  # column may be absent from the sheet
    default: Any = None  # insert-mode default for empty cells (None = keep empty)
    date_format: str | None = None  # strftime format for native date cells
    messages: dict[str, str] = field(default_factory=dict)  # rule name -> custom message

    @property
    def label(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class ImportOptions:
    """Switches controlling one import run."""
    mode: MatchMode = MatchMode.TOLERANT
    max_rows: int = 5000  # non-empty data rows allowed
    fail_fast: bool = False  # raise on the first row error instead of collecting
    use_default: bool = True  # True: insert mode (defaults), False: update mode (drop empties)
    use_transaction: bool = True
    report_interval: float = 3.0  # seconds between progress reports
    header_row: int = 1  # 1-based line holding the header


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection configuration.

    Used as fallback when environment variables are not set.
    Environment variables take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TaskConfig:
    """Root configuration object for one import task."""
    table: str | None  # target table for the default persistence step
    fields: list[FieldSpec]
    unique_keys: list[list[str]] = field(default_factory=list)  # in-sheet uniqueness
    rules: list[dict[str, Any]] = field(default_factory=list)  # raw rule definitions
    options: ImportOptions = field(default_factory=ImportOptions)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    sheet: str | int = 0

    @property
    def display_names(self) -> dict[str, str]:
        return {f.name: f.label for f in self.fields}
