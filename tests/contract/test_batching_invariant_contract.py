from __future__ import annotations

import pytest

from import_validator.db.memory import MemoryStore
from import_validator.db.relations import BelongsTo
from import_validator.rules import EmptyOrEqual, Equal, Exists, ExistsAndUnique, Unique

"""Batching contract: a rule issues exactly one store fetch per key-group that
has at least one complete key, however many rows are validated."""


def _store() -> MemoryStore:
    return MemoryStore({
        "items": [{"id": i, "code": f"C{i}", "org": i % 3, "name": f"n{i}", "cat_id": 1} for i in range(50)],
        "cats": [{"id": 1, "label": "L"}],
    })


RULES = [
    lambda s: Exists(s, "items", ["code", ["name", "org"]]),
    lambda s: Unique(s, "items", ["code", ["name", "org"]], ignore_fields=["id"]),
    lambda s: Equal(s, "items", ["code", ["name", "org"]], equal_fields={"label": "cat.label"},
                    relations={"cat": BelongsTo("cats", "cat_id")}),
    lambda s: EmptyOrEqual(s, "items", ["code", ["name", "org"]], equal_fields=["name"]),
    lambda s: ExistsAndUnique(s, "items", ["code", ["name", "org"]], nullable_fields=["id"]),
]


@pytest.mark.parametrize("make_rule", RULES)
@pytest.mark.parametrize("row_count", [1, 10, 1000])
def test_query_count_equals_key_groups(make_rule, row_count):
    """One query per key-group, however many rows are validated."""
    store = _store()
    rule = make_rule(store)
    rows = {
        line: {"id": str(line), "code": f"C{line}", "name": f"n{line}", "org": str(line % 3), "label": "L"}
        for line in range(2, row_count + 2)
    }

    rule.validate(rows)

    assert store.query_count == len(rule.key_groups) == 2
    assert rule.query_count == 2


@pytest.mark.parametrize("make_rule", RULES)
def test_groups_without_complete_keys_issue_no_query(make_rule):
    """A key-group with no complete row key sends nothing to the store."""
    store = _store()
    rule = make_rule(store)

    rule.validate({2: {"code": "C1", "name": "", "org": "1"}})

    assert store.query_count == 1
