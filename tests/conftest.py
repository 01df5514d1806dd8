# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from import_validator.logging.init import reset_logging


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """table: users
fields:
  name: {display: Name, rules: "required|max:20"}
  email: {display: Email, rules: "required|email"}
  role: {display: Role, dictionary: roles, optional: true}
dictionaries:
  roles: {Admin: 1, Member: 2}
unique_keys: [email]
rules:
  - {type: unique, table: users, attributes: [email]}
options:
  mode: strict
  max_rows: 100
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "users.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


def _make_excel(path: Path, sheets: dict[str, list[list]]) -> Path:
    """Write a workbook with one headerless frame per sheet."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return path


@pytest.fixture()
def users_workbook(temp_workdir: Path) -> Path:
    return _make_excel(
        temp_workdir / "data" / "users.xlsx",
        {
            "Users": [
                ["Name(required)", "Email", "Role"],
                ["alice", "alice@example.com", "Admin"],
                ["bob", "bob@example.com", "Member"],
            ]
        },
    )


@pytest.fixture()
def excel_factory(tmp_path: Path):
    """``excel_factory(name, {sheet: rows})`` -> workbook path under tmp_path."""
    def factory(name: str, sheets: dict[str, list[list]]) -> Path:
        return _make_excel(tmp_path / name, sheets)
    return factory
