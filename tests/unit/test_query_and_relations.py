from __future__ import annotations

import pytest

from import_validator.db.query import BatchQuery, Condition, conditions_from_config, same_value
from import_validator.db.relations import (
    PARENT_KEY_COLUMN,
    BelongsTo,
    BelongsToMany,
    HasMany,
    HasManyThrough,
    HasOne,
    attach_related,
    is_to_many,
    parent_keys,
    relation_from_config,
    relation_select_key,
    resolve_path,
)
from import_validator.errors import RuleConfigurationError

"""Unit tests for the store-neutral query model and relation helpers."""


# ----- Condition / BatchQuery -----

def test_same_value_compares_text_form():
    """Test same_value() compares text forms."""
    assert same_value(1, "1")
    assert same_value(None, None)
    assert not same_value(None, "")
    assert not same_value("a", "b")


def test_condition_null_semantics():
    """Conditions follow SQL NULL semantics."""
    assert not Condition("code", "X").matches({"code": None})
    assert not Condition("id", 5, op="!=").matches({"id": None})
    assert Condition("id", 5, op="!=", or_null=True).matches({"id": None})
    assert Condition("deleted_at", op="is_null").matches({"deleted_at": None})
    assert not Condition("deleted_at", op="not_null").matches({})
    assert Condition("deleted_at", op="not_null").matches({"deleted_at": "2024-01-01"})


def test_condition_rejects_unknown_operator():
    """Test unknown operators are rejected."""
    with pytest.raises(RuleConfigurationError, match="unsupported operator"):
        Condition("a", 1, op="LIKE")


def test_batch_query_is_wheres_and_any_branch():
    """Test a record matches all wheres and any branch."""
    query = BatchQuery(table="users", select=["email"], wheres=[Condition("active", True)])
    query.add_branch([Condition("email", "a@example.com")])
    query.add_branch([Condition("email", "b@example.com")])

    assert query.matches({"email": "b@example.com", "active": True})
    assert not query.matches({"email": "b@example.com", "active": False})
    assert not query.matches({"email": "c@example.com", "active": True})


def test_batch_query_without_branches_matches_nothing():
    """Test a query without branches matches no record."""
    assert not BatchQuery(table="t", select=["a"]).matches({"a": 1})


def test_conditions_from_config_forms():
    """Test mapping and list forms of configured wheres."""
    conditions = conditions_from_config({"deleted_at": None, "status": "on"})
    assert conditions == [Condition("deleted_at", op="is_null"), Condition("status", "on")]

    conditions = conditions_from_config([["org_id", 3], ["level", "!=", 0], Condition("x", 1)])
    assert conditions == [Condition("org_id", 3), Condition("level", 0, op="!="), Condition("x", 1)]

    assert conditions_from_config(None) == []


def test_conditions_from_config_rejects_garbage():
    """Test malformed wheres are rejected."""
    with pytest.raises(RuleConfigurationError):
        conditions_from_config([["only-a-field"]])


# ----- relations -----

@pytest.mark.parametrize(
    "relation, key",
    [
        (BelongsTo("categories", "category_id"), "category_id"),
        (HasOne("profiles", "user_id", local_key="uid"), "uid"),
        (HasMany("orders", "user_id"), "id"),
        (BelongsToMany("tags", "book_tag", "book_id", "tag_id", parent_key="bid"), "bid"),
        (HasManyThrough("posts", "accounts", "user_id", "account_id"), "id"),
    ],
)
def test_relation_select_key(relation, key):
    """Test the parent column each relation needs."""
    assert relation_select_key(relation) == key


def test_relation_select_key_rejects_unknown_kind():
    """Test an unknown relation type is rejected."""
    with pytest.raises(RuleConfigurationError, match="cannot get relation key of dict"):
        relation_select_key({"kind": "morph_to"})


def test_is_to_many():
    """Test is_to_many()."""
    assert is_to_many(HasMany("orders", "user_id"))
    assert not is_to_many(BelongsTo("categories", "category_id"))


def test_resolve_path():
    """Test dot-path lookup with list indexes."""
    record = {"name": "x", "category": {"code": "C1"}, "tags": [{"name": "t1"}, {"name": "t2"}]}
    assert resolve_path(record, "name") == "x"
    assert resolve_path(record, "category.code") == "C1"
    assert resolve_path(record, "tags.1.name") == "t2"
    assert resolve_path(record, "tags.5.name") is None
    assert resolve_path({"category": None}, "category.code") is None
    assert resolve_path(record, "name.length") is None


def test_relation_from_config():
    """Test relations built from config mappings."""
    assert relation_from_config({"kind": "belongs_to", "table": "categories", "foreign_key": "category_id"}) == (
        BelongsTo("categories", "category_id")
    )
    with pytest.raises(RuleConfigurationError, match="unknown relation kind"):
        relation_from_config({"kind": "morph_to", "table": "x"})
    with pytest.raises(RuleConfigurationError, match="invalid has_many relation"):
        relation_from_config({"kind": "has_many", "table": "orders"})


def test_attach_related_to_one_and_to_many():
    """Test related records are attached as one record or a list."""
    records = [{"id": 1, "category_id": 10}, {"id": 2, "category_id": None}]
    attach_related(records, "category", BelongsTo("categories", "category_id"), [{"id": 10, "code": "C"}])
    assert records[0]["category"] == {"id": 10, "code": "C"}
    assert records[1]["category"] is None

    records = [{"id": 1}, {"id": 2}]
    orders = [{"user_id": 1, "no": "A"}, {"user_id": 1, "no": "B"}]
    attach_related(records, "orders", HasMany("orders", "user_id"), orders)
    assert [o["no"] for o in records[0]["orders"]] == ["A", "B"]
    assert records[1]["orders"] == []


def test_attach_related_through_pivot_uses_parent_key_column():
    """Pivot relations group by the pivot's parent key column."""
    records = [{"id": 1}]
    related = [{"id": 7, "name": "sci-fi", PARENT_KEY_COLUMN: 1}]
    attach_related(records, "tags", BelongsToMany("tags", "book_tag", "book_id", "tag_id"), related)
    assert records[0]["tags"][0]["name"] == "sci-fi"


def test_parent_keys_distinct_in_order():
    """Test parent keys are de-duplicated keeping order."""
    records = [{"category_id": 2}, {"category_id": 1}, {"category_id": 2}, {"category_id": None}]
    assert parent_keys(records, BelongsTo("categories", "category_id")) == [2, 1]
