from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Row progress display with tqdm (TTY only).

The orchestrator calls ``on_report(line)`` every ``report_interval`` seconds;
RowProgress is the CLI's implementation of that hook. In non-TTY environments
(CI, redirected output) the bar is disabled to avoid ANSI control sequence spam.
"""

__all__ = [
    "RowProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True if stdout is a TTY and progress should be displayed."""
    return sys.stdout.isatty()


class RowProgress:
    """Progress bar over the sheet's lines.

    Usable directly as the ``on_report`` hook: ``RowProgress(total)(line)``.
    """

    def __init__(self, total_lines: int | None = None, *, description: str = "Validating rows") -> None:
        self.total_lines = total_lines
        self.description = description
        self.current_line = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_lines,
                desc=description,
                unit="row",
                leave=True,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def __call__(self, line: int) -> None:
        self.update(line)

    def update(self, line: int) -> None:
        """Move the bar to ``line`` (lines only ever move forward)."""
        if line <= self.current_line:
            return
        step = line - self.current_line
        self.current_line = line
        if self.enabled and self.pbar is not None:
            self.pbar.update(step)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> RowProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
