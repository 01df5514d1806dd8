from __future__ import annotations

import re
from collections.abc import Collection, Mapping, Sequence
from datetime import datetime
from typing import Any

from jsonschema import Draft7Validator, FormatChecker

from ..errors import RuleConfigurationError
from ..models.config_models import FieldSpec
from ..models.row_data import is_empty

"""Declarative per-field rules, evaluated with jsonschema.

Rule expressions use the pipe syntax ``"required|integer|between:1,99"``
(or a list of rule strings when a regex contains ``|``). Each field's rules are
compiled once into a property of a Draft 7 row schema; ``validate()`` then
returns ``(field, message)`` pairs for one row.

Supported rules:
    required, nullable, string, integer, numeric, min:n, max:n, between:a,b,
    digits:n, digits_between:a,b, in:a,b,..., regex:pattern, email,
    date_format:fmt

min/max/between constrain the length of strings and the value of integer or
numeric fields. Empty values skip every rule except ``required``.
"""

__all__ = [
    "RuleEvaluator",
    "parse_rules",
    "date_format_for",
    "DEFAULT_MESSAGES",
]

DEFAULT_MESSAGES: dict[str, str] = {
    "required": "{label} is required",
    "string": "{label} must be text",
    "integer": "{label} must be an integer",
    "numeric": "{label} must be a number",
    "min": "{label} must be at least {0}",
    "max": "{label} may not be greater than {0}",
    "min_length": "{label} must be at least {0} characters",
    "max_length": "{label} may not be longer than {0} characters",
    "between": "{label} must be between {0} and {1}",
    "between_length": "{label} must be between {0} and {1} characters",
    "digits": "{label} must be {0} digits",
    "digits_between": "{label} must be between {0} and {1} digits",
    "in": "{label} must be one of: {values}",
    "regex": "{label} format is invalid",
    "email": "{label} must be a valid email address",
    "date_format": "{label} does not match the format {0}",
}

RULE_NAMES = frozenset({
    "required", "nullable", "string", "integer", "numeric", "min", "max", "between",
    "digits", "digits_between", "in", "regex", "email", "date_format",
})

_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def parse_rules(rules: str | Sequence[str] | None) -> list[tuple[str, list[str]]]:
    """Split a rule expression into ``(name, params)`` pairs.

    >>> parse_rules("required|between:1,5")
    [('required', []), ('between', ['1', '5'])]
    """
    if not rules:
        return []
    items = rules.split("|") if isinstance(rules, str) else list(rules)
    parsed = []
    for item in items:
        item = item.strip()
        if not item:
            continue
        name, _, raw = item.partition(":")
        name = name.strip()
        if name == "regex":
            params = [raw]
        elif name == "date_format":
            params = [raw]
        else:
            params = [p.strip() for p in raw.split(",")] if raw else []
        parsed.append((name, params))
    return parsed


def date_format_for(spec: FieldSpec) -> str | None:
    """Explicit ``date_format`` of the field, else the one named by its rules."""
    if spec.date_format:
        return spec.date_format
    for name, params in parse_rules(spec.rules):
        if name == "date_format" and params and params[0]:
            return params[0]
    return None


def _to_number(text: str, integer: bool) -> int | float:
    if integer:
        return int(text)
    value = float(text)
    return int(value) if value.is_integer() and "." not in text and "e" not in text.lower() else value


class _FieldRules:
    """Compiled rules of one field."""

    def __init__(self, spec: FieldSpec) -> None:
        self.spec = spec
        self.required = False
        self.kind: str | None = None  # None/"string", "integer" or "numeric"
        self.schema: dict[str, Any] = {}
        self.keyword_rules: dict[str, tuple[str, list[str]]] = {}  # jsonschema keyword -> rule
        self.date_format: str | None = None
        self._compile(parse_rules(spec.rules))

    def _set(self, keyword: str, value: Any, rule: tuple[str, list[str]]) -> None:
        if keyword in self.schema:
            raise RuleConfigurationError(
                f"field '{self.spec.name}': rule '{rule[0]}' conflicts with rule '{self.keyword_rules[keyword][0]}'"
            )
        self.schema[keyword] = value
        self.keyword_rules[keyword] = rule

    def _param(self, rule: tuple[str, list[str]], count: int, numeric: bool = True) -> list[Any]:
        name, params = rule
        if len(params) < count or (count and not all(params[:count])):
            raise RuleConfigurationError(f"field '{self.spec.name}': rule '{name}' expects {count} parameter(s)")
        if not numeric:
            return params
        try:
            return [_to_number(p, integer=False) for p in params[:count]]
        except ValueError as e:
            raise RuleConfigurationError(f"field '{self.spec.name}': rule '{name}' expects numbers") from e

    def _compile(self, rules: list[tuple[str, list[str]]]) -> None:
        names = {name for name, _ in rules}
        unknown = names - RULE_NAMES
        if unknown:
            raise RuleConfigurationError(
                f"field '{self.spec.name}': unknown rule(s): {', '.join(sorted(unknown))}"
            )
        if "integer" in names:
            self.kind = "integer"
        elif "numeric" in names:
            self.kind = "numeric"

        sized = self.kind is not None
        for rule in rules:
            name, params = rule
            if name == "required":
                self.required = True
            elif name == "nullable":
                continue
            elif name == "string":
                self._set("type", "string", rule)
            elif name == "integer":
                self._set("type", "integer", rule)
            elif name == "numeric":
                self._set("type", "number", rule)
            elif name in ("min", "max"):
                (n,) = self._param(rule, 1)
                if sized:
                    self._set("minimum" if name == "min" else "maximum", n, rule)
                else:
                    self._set("minLength" if name == "min" else "maxLength", int(n), (f"{name}_length", params))
            elif name == "between":
                low, high = self._param(rule, 2)
                if sized:
                    self._set("minimum", low, rule)
                    self._set("maximum", high, rule)
                else:
                    self._set("minLength", int(low), ("between_length", params))
                    self._set("maxLength", int(high), ("between_length", params))
            elif name == "digits":
                (n,) = self._param(rule, 1)
                self._set("pattern", rf"^\d{{{int(n)}}}$", rule)
            elif name == "digits_between":
                low, high = self._param(rule, 2)
                self._set("pattern", rf"^\d{{{int(low)},{int(high)}}}$", rule)
            elif name == "in":
                allowed = self._param(rule, 1, numeric=False)
                self._set("enum", [self.coerce(v) for v in allowed], rule)
            elif name == "regex":
                (pattern,) = self._param(rule, 1, numeric=False)
                # /.../ delimiters are accepted and dropped
                if len(pattern) > 1 and pattern.startswith("/") and pattern.endswith("/"):
                    pattern = pattern[1:-1]
                try:
                    re.compile(pattern)
                except re.error as e:
                    raise RuleConfigurationError(f"field '{self.spec.name}': invalid regex {pattern!r}: {e}") from e
                self._set("pattern", pattern, rule)
            elif name == "email":
                self._set("format", "email", rule)
            elif name == "date_format":
                (fmt,) = self._param(rule, 1, numeric=False)
                self.date_format = fmt
                self._set("format", f"date_format:{fmt}", rule)

    def coerce(self, value: Any) -> Any:
        """Text -> int/float for integer and numeric fields; anything else unchanged."""
        if not isinstance(value, str) or self.kind is None:
            return value
        text = value.strip()
        if self.kind == "integer" and _INTEGER_RE.match(text):
            return int(text)
        if self.kind == "numeric" and _NUMBER_RE.match(text):
            return _to_number(text, integer=False)
        return value

    def message(self, rule_name: str, params: list[str]) -> str:
        template = self.spec.messages.get(rule_name) or DEFAULT_MESSAGES[rule_name]
        return template.format(*params, label=self.spec.label, values=", ".join(params))


class RuleEvaluator:
    """Structural validation of formatted rows.

    Args:
        fields: Field specs carrying the rule expressions

    Raises:
        RuleConfigurationError: on unknown rules or malformed parameters
    """

    def __init__(self, fields: Sequence[FieldSpec]) -> None:
        self._fields = {spec.name: _FieldRules(spec) for spec in fields}
        self.format_checker = FormatChecker()
        for compiled in self._fields.values():
            if compiled.date_format:
                self._register_date_format(compiled.date_format)
        self.schema: dict[str, Any] = {
            "type": "object",
            "properties": {name: compiled.schema for name, compiled in self._fields.items()},
            "required": [name for name, compiled in self._fields.items() if compiled.required],
        }
        Draft7Validator.check_schema(self.schema)
        self._validator = Draft7Validator(self.schema, format_checker=self.format_checker)

    def _register_date_format(self, fmt: str) -> None:
        def check(instance: Any) -> bool:
            if not isinstance(instance, str):
                return True
            datetime.strptime(instance, fmt)
            return True

        self.format_checker.checks(f"date_format:{fmt}", raises=ValueError)(check)

    @property
    def date_formats(self) -> dict[str, str]:
        """Field name -> date format derived from rules."""
        return {name: c.date_format for name, c in self._fields.items() if c.date_format}

    def validate(self, values: Mapping[str, Any], skip: Collection[str] = ()) -> list[tuple[str, str]]:
        """Validate one row.

        Args:
            values: Field name -> value (dictionary-substituted, dates rendered)
            skip: Fields already reported by an earlier step

        Returns:
            ``(field, message)`` pairs in field order, at most one per field
        """
        instance = {
            name: compiled.coerce(values[name])
            for name, compiled in self._fields.items()
            if name in values and not is_empty(values[name]) and name not in skip
        }
        found: dict[str, tuple[int, str]] = {}
        for error in self._validator.iter_errors(instance):
            if error.validator == "required":
                for name in error.validator_value:
                    if name not in error.instance and name not in skip:
                        found[name] = (-1, self._fields[name].message("required", []))
                continue
            if not error.path:
                continue
            name = error.path[0]
            compiled = self._fields[name]
            rule_name, params = compiled.keyword_rules[error.validator]
            rank = list(compiled.keyword_rules).index(error.validator)
            # keep the first failing rule of each field
            if name not in found or rank < found[name][0]:
                found[name] = (rank, compiled.message(rule_name, params))
        return [(name, found[name][1]) for name in self._fields if name in found]
