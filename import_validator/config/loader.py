from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..db.query import Store
from ..db.relations import relation_from_config
from ..errors import ConfigError, RuleConfigurationError
from ..models.config_models import DatabaseConfig, FieldSpec, ImportOptions, MatchMode, TaskConfig
from ..models.dictionary import Dictionary
from ..rules import EmptyOrEqual, Equal, Exists, ExistsAndUnique, RuleValidator, Unique

"""Task config loader.

Responsibilities:
- Load the YAML task file (yaml.safe_load)
- Validate it against ``import_schema.json`` (shipped next to this module)
- Build TaskConfig: FieldSpecs (with dictionaries), unique keys, options, database
- build_rules(): turn the ``rules`` section into RuleValidators bound to a Store

Example::

    table: users
    fields:
      name: {display: Name, rules: "required|max:50"}
      role: {display: Role, dictionary: roles}
    dictionaries:
      roles: {Admin: 1, Member: 2}
    unique_keys: [name]
    rules:
      - {type: unique, table: users, attributes: [name]}
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
    "build_rules",
    "RULE_TYPES",
]

SCHEMA_PATH = Path(__file__).parent / "import_schema.json"

RULE_TYPES: dict[str, type[RuleValidator]] = {
    "exists": Exists,
    "unique": Unique,
    "equal": Equal,
    "empty_or_equal": EmptyOrEqual,
    "exists_and_unique": ExistsAndUnique,
}

# config key -> constructor keyword, per rule type
_COMMON_KEYS = ("wheres", "ignore_fields", "aliases", "messages")
_EXTRA_KEYS: dict[str, tuple[str, ...]] = {
    "exists": (),
    "unique": ("ignore_null_fields",),
    "equal": ("equal_fields",),
    "empty_or_equal": ("equal_fields",),
    "exists_and_unique": ("nullable_fields", "not_found_message", "not_unique_message"),
}


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or invalid JSON, or the data does not
            match the schema
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"config validation failed at {where}: {e.message}") from e


def _dictionary(ref: Any, dictionaries: Mapping[str, Any], field: str) -> Dictionary | None:
    if ref is None:
        return None
    if isinstance(ref, Mapping):
        return Dictionary(ref)
    if ref not in dictionaries:
        raise ConfigError(f"field '{field}': unknown dictionary '{ref}'")
    return Dictionary(dictionaries[ref])


def _fields(data: dict[str, Any]) -> list[FieldSpec]:
    dictionaries = data.get("dictionaries", {})
    specs = []
    for name, raw in data["fields"].items():
        raw = raw or {}
        specs.append(
            FieldSpec(
                name=name,
                display_name=raw.get("display"),
                rules=raw.get("rules"),
                remark=raw.get("remark"),
                dictionary=_dictionary(raw.get("dictionary"), dictionaries, name),
                optional=raw.get("optional", False),
                default=raw.get("default"),
                date_format=raw.get("date_format"),
                messages=raw.get("messages", {}),
            )
        )
    return specs


def _options(data: dict[str, Any]) -> ImportOptions:
    raw = data.get("options", {})
    defaults = ImportOptions()
    return ImportOptions(
        mode=MatchMode(raw.get("mode", defaults.mode.value)),
        max_rows=raw.get("max_rows", defaults.max_rows),
        fail_fast=raw.get("fail_fast", defaults.fail_fast),
        use_default=raw.get("use_default", defaults.use_default),
        use_transaction=raw.get("use_transaction", defaults.use_transaction),
        report_interval=float(raw.get("report_interval", defaults.report_interval)),
        header_row=raw.get("header_row", defaults.header_row),
    )


def parse_config(data: dict[str, Any]) -> TaskConfig:
    """Validate raw config data and build a TaskConfig."""
    _validate_config_schema(data)

    fields = _fields(data)
    names = {f.name for f in fields}
    unique_keys = [[k] if isinstance(k, str) else list(k) for k in data.get("unique_keys", [])]
    for group in unique_keys:
        unknown = [k for k in group if k not in names]
        if unknown:
            raise ConfigError(f"unique_keys: unknown field(s) {', '.join(unknown)}")

    db_raw = data.get("database", {})
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    options = data.get("options", {})
    return TaskConfig(
        table=data.get("table"),
        fields=fields,
        unique_keys=unique_keys,
        rules=list(data.get("rules", [])),
        options=_options(data),
        database=db,
        sheet=options.get("sheet", data.get("sheet", 0)),
    )


def load_config(path: Path) -> TaskConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return parse_config(data)


def build_rules(config: TaskConfig, store: Store) -> list[RuleValidator]:
    """RuleValidators for the config's ``rules`` section.

    Raises:
        ConfigError: a rule definition is invalid (wrapping RuleConfigurationError)
    """
    rules = []
    for index, raw in enumerate(config.rules):
        kind = raw["type"]
        cls = RULE_TYPES[kind]
        kwargs = {k: raw[k] for k in _COMMON_KEYS + _EXTRA_KEYS[kind] if k in raw}
        try:
            if "relations" in raw:
                kwargs["relations"] = {name: relation_from_config(r) for name, r in raw["relations"].items()}
            rules.append(cls(store, raw["table"], raw["attributes"], **kwargs))
        except (RuleConfigurationError, TypeError) as e:
            raise ConfigError(f"rules[{index}] ({kind}): {e}") from e
    return rules
