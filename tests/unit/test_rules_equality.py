from __future__ import annotations

import pytest

from import_validator.db.memory import MemoryStore
from import_validator.db.relations import BelongsTo, HasMany
from import_validator.errors import RuleValidationError
from import_validator.rules import EmptyOrEqual, Equal

"""Unit tests for the Equal and EmptyOrEqual rules."""


@pytest.fixture()
def library() -> MemoryStore:
    return MemoryStore({
        "books": [
            {"id": 1, "isbn": "111", "name": "Dune", "author": "Herbert", "category_id": 10},
            {"id": 2, "isbn": "222", "name": "Emma", "author": None, "category_id": 20},
        ],
        "categories": [{"id": 10, "code": "SF"}, {"id": 20, "code": "NOV"}],
        "editions": [{"book_id": 1, "year": 1965}, {"book_id": 1, "year": 1990}],
    })


def test_equal_reports_each_mismatching_field(library):
    """Test each differing field gets its own message."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["name", "author"])

    rule.validate({2: {"isbn": "111", "name": "Dune II", "author": "Frank"}}, {"name": "Title", "author": "Author"})

    assert rule.errors() == {2: [
        "original row 2: Title does not match the existing data",
        "original row 2: Author does not match the existing data",
    ]}


def test_equal_skips_rows_without_matching_record(library):
    """Test rows without a stored record pass."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["name"])
    assert rule.validate({2: {"isbn": "999", "name": "anything"}})


def test_equal_null_store_value_matches_empty_cell(library):
    """A NULL in the store equals an empty cell."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["author"])
    assert rule.validate({2: {"isbn": "222", "author": ""}})
    assert not rule.validate({2: {"isbn": "222", "author": "Austen"}})


def test_equal_compares_text_form(library):
    """Test 5 and "5" are equal."""
    rule = Equal(library, "books", ["isbn"], equal_fields={"cat": "category_id"})
    assert rule.validate({2: {"isbn": "111", "cat": "10"}})


def test_equal_follows_belongs_to_path(library):
    """Test dot-paths through a belongs_to relation."""
    rule = Equal(
        library, "books", ["isbn"],
        equal_fields={"category_code": "category.code"},
        relations={"category": BelongsTo("categories", "category_id")},
    )

    ok = rule.validate(
        {2: {"isbn": "111", "category_code": "SF"}, 3: {"isbn": "222", "category_code": "SF"}},
        {"category_code": "Category"},
    )

    assert not ok
    assert rule.errors() == {3: ["original row 3: Category does not match the existing data"]}
    assert library.query_count == 1


def test_equal_follows_to_many_index_path(library):
    """Test indexed dot-paths through a to-many relation."""
    rule = Equal(
        library, "books", ["isbn"],
        equal_fields={"first_year": "editions.0.year"},
        relations={"editions": HasMany("editions", "book_id")},
    )
    assert rule.validate({2: {"isbn": "111", "first_year": "1965"}})
    assert not rule.validate({2: {"isbn": "111", "first_year": "1990"}})


def test_equal_message_per_field(library):
    """Test messages can be set per compared field."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["name"], messages={"name": "differs from the catalog"})
    rule.validate({2: {"isbn": "111", "name": "X"}})
    assert rule.errors() == {2: ["original row 2: name differs from the catalog"]}


def test_empty_or_equal_passes_when_either_side_empty(library):
    """Test EmptyOrEqual accepts an empty cell or an empty stored value."""
    rule = EmptyOrEqual(library, "books", ["isbn"], equal_fields=["author"])

    assert rule.validate({2: {"isbn": "222", "author": "Austen"}})  # stored NULL
    assert rule.validate({2: {"isbn": "111", "author": ""}})  # row empty
    assert not rule.validate({2: {"isbn": "111", "author": "Asimov"}})


def test_equal_failures_carry_not_equal_kind(library):
    """Equal failures are reported with the not_equal kind."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["name"])
    rule.validate({2: {"isbn": "111", "name": "Dune II"}})
    assert rule.error_kinds() == {2: RuleValidationError.NOT_EQUAL}


def test_equal_ignore_fields_compares_against_own_branch_only(library):
    """A row skipping its own record is not compared with it because another row fetched it."""
    rule = Equal(library, "books", ["isbn"], equal_fields=["name"], ignore_fields=["id"])

    rule.validate({2: {"id": "1", "isbn": "111", "name": "Other"}, 3: {"id": "9", "isbn": "111", "name": "Other"}})

    assert list(rule.errors()) == [3]
