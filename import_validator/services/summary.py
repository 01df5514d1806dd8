from __future__ import annotations

from ..models.import_result import ImportResult

"""SUMMARY line rendering.

Format:
    SUMMARY rows={n} accepted={a} rejected={r} elapsed_sec={s} throughput_rps={t}
"""


def _number(value: float) -> str:
    # integers without ".0", tiny values without scientific notation
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ImportResult) -> str:
    """Render the SUMMARY line of one import.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2023, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2023, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ImportResult(
        ...     accepted=[], rejected=[], total_rows=1000,
        ...     start_time=start, end_time=end, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY rows=1000 accepted=0 rejected=0 elapsed_sec=2 throughput_rps=500'
    """
    return (
        f"SUMMARY rows={result.total_rows} "
        f"accepted={result.accepted_count} "
        f"rejected={result.rejected_count} "
        f"elapsed_sec={_number(result.elapsed_seconds)} "
        f"throughput_rps={_number(result.throughput_rows_per_sec)}"
    )
