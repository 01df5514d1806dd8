from __future__ import annotations

from pathlib import Path

import pytest

from import_validator.config.loader import ConfigError, build_rules, load_config, parse_config
from import_validator.db.memory import MemoryStore
from import_validator.db.relations import BelongsTo
from import_validator.models.config_models import MatchMode
from import_validator.rules import Equal, ExistsAndUnique, Unique


def test_load_config_success(write_config: Path) -> None:
    cfg = load_config(write_config)

    assert cfg.table == "users"
    assert [f.name for f in cfg.fields] == ["name", "email", "role"]
    assert cfg.fields[2].dictionary.get("Member") == 2
    assert cfg.fields[2].optional is True
    assert cfg.unique_keys == [["email"]]
    assert cfg.options.mode is MatchMode.STRICT
    assert cfg.options.max_rows == 100
    assert cfg.database.user == "appuser"
    assert cfg.display_names == {"name": "Name", "email": "Email", "role": "Role"}


def test_defaults_when_sections_are_missing() -> None:
    cfg = parse_config({"fields": {"name": None}})

    assert cfg.table is None
    assert cfg.options.mode is MatchMode.TOLERANT
    assert cfg.options.max_rows == 5000
    assert cfg.options.use_default is True
    assert cfg.options.use_transaction is True
    assert cfg.options.report_interval == 3.0
    assert cfg.sheet == 0
    assert cfg.fields[0].label == "name"


def test_inline_dictionary_and_sheet_option() -> None:
    cfg = parse_config({
        "fields": {"gender": {"dictionary": {"male": 1, "female": 2}}},
        "options": {"sheet": "Staff"},
    })
    assert cfg.fields[0].dictionary.keys() == ["male", "female"]
    assert cfg.sheet == "Staff"


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "missing.yml")


def test_load_config_invalid_yaml(tmp_path: Path) -> None:
    bad = tmp_path / "bad.yml"
    bad.write_text("fields: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(bad)


def test_load_config_root_not_mapping(tmp_path: Path) -> None:
    bad = tmp_path / "list.yml"
    bad.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(bad)


def test_schema_violation_reports_path() -> None:
    with pytest.raises(ConfigError, match="options/max_rows"):
        parse_config({"fields": {"a": None}, "options": {"max_rows": 0}})


def test_unknown_top_level_key_rejected() -> None:
    with pytest.raises(ConfigError, match="config validation failed"):
        parse_config({"fields": {"a": None}, "sheet_mappings": {}})


def test_unknown_dictionary_reference() -> None:
    with pytest.raises(ConfigError, match="unknown dictionary 'genders'"):
        parse_config({"fields": {"gender": {"dictionary": "genders"}}})


def test_unique_keys_must_name_fields() -> None:
    with pytest.raises(ConfigError, match="unique_keys: unknown field"):
        parse_config({"fields": {"a": None}, "unique_keys": [["a", "b"]]})


def test_build_rules_from_config() -> None:
    cfg = parse_config({
        "fields": {"isbn": None, "category_code": None, "name": None, "id_number": None},
        "rules": [
            {"type": "unique", "table": "books", "attributes": ["isbn"], "ignore_null_fields": ["id"]},
            {
                "type": "equal",
                "table": "books",
                "attributes": ["isbn"],
                "equal_fields": {"category_code": "category.code"},
                "relations": {
                    "category": {"kind": "belongs_to", "table": "categories", "foreign_key": "category_id"}
                },
            },
            {"type": "exists_and_unique", "table": "users", "attributes": "name", "nullable_fields": ["id_number"]},
        ],
    })

    unique, equal, exists_and_unique = build_rules(cfg, MemoryStore())

    assert isinstance(unique, Unique)
    assert unique.ignore_null_fields == {"id": True}
    assert isinstance(equal, Equal)
    assert equal.relations == {"category": BelongsTo("categories", "category_id")}
    assert isinstance(exists_and_unique, ExistsAndUnique)
    assert exists_and_unique.nullable_fields == {"id_number": "id_number"}


def test_build_rules_wraps_rule_configuration_errors() -> None:
    cfg = parse_config({
        "fields": {"isbn": None},
        "rules": [{"type": "equal", "table": "books", "attributes": ["isbn"],
                   "equal_fields": {"code": "category.code"}}],
    })
    with pytest.raises(ConfigError, match=r"rules\[0\] \(equal\)"):
        build_rules(cfg, MemoryStore())


def test_build_rules_wraps_missing_arguments() -> None:
    cfg = parse_config({
        "fields": {"isbn": None},
        "rules": [{"type": "equal", "table": "books", "attributes": ["isbn"]}],
    })
    with pytest.raises(ConfigError, match="equal_fields"):
        build_rules(cfg, MemoryStore())
