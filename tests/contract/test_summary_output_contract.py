from __future__ import annotations

import re
from pathlib import Path

from import_validator.cli.__main__ import main as cli_main

"""SUMMARY line format contract."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+rows=([0-9]+)\s+accepted=([0-9]+)\s+rejected=([0-9]+)\s+"
    r"elapsed_sec=([0-9]+\.?[0-9]*)\s+throughput_rps=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    """Test the documented example line matches the contract."""
    line = "SUMMARY rows=4 accepted=3 rejected=1 elapsed_sec=0.84 throughput_rps=4.762"
    m = SUMMARY_PATTERN.match(line)
    assert m, "SUMMARY line should match contract regex"


def test_cli_prints_exactly_one_matching_summary_line(write_config: Path, users_workbook: Path, capsys):
    """Test a run prints exactly one SUMMARY line."""
    cli_main([str(write_config), str(users_workbook), "--offline"])

    lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith("SUMMARY")]
    assert len(lines) == 1
    m = SUMMARY_PATTERN.match(lines[0])
    assert m
    rows, accepted, rejected = (int(m.group(i)) for i in (1, 2, 3))
    assert rows == accepted + rejected == 2
