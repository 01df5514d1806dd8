from __future__ import annotations

from datetime import date, datetime

from import_validator.models.config_models import FieldSpec
from import_validator.models.dictionary import Dictionary
from import_validator.services.formatter import FieldFormatter, RowOutcome, render_date

"""Unit tests for FieldFormatter (dictionary, dates, rules, defaults)."""


ROLE = FieldSpec(
    name="role",
    display_name="Role",
    rules="required",
    dictionary=Dictionary({"Admin": 1, "Member": 2}),
)
NAME = FieldSpec(name="name", display_name="Name", rules="required|max:5")


def test_accepted_row_substitutes_dictionary_code():
    """Dictionary fields are stored as their code."""
    outcome = FieldFormatter([NAME, ROLE]).format(2, {"name": "alice", "role": "Member"})

    assert outcome.ok
    assert outcome.row.line == 2
    assert outcome.row.values == {"name": "alice", "role": 2}
    assert outcome.row.raw_values == {"name": "alice", "role": "Member"}


def test_dictionary_key_is_trimmed():
    """Test surrounding spaces do not break dictionary lookup."""
    outcome = FieldFormatter([ROLE]).format(2, {"role": " Admin "})
    assert outcome.row.values["role"] == 1


def test_unknown_dictionary_value_lists_keys():
    """Test the message lists the allowed labels."""
    outcome = FieldFormatter([ROLE]).format(3, {"role": "Guest"})

    assert not outcome.ok
    assert outcome.row is None
    assert outcome.error.messages == ["Role must be one of: Admin, Member"]
    assert outcome.error.error_type == "DICTIONARY_MISMATCH"
    assert outcome.error.row == {"role": "Guest"}


def test_empty_dictionary_value_is_left_to_required():
    """Empty dictionary cells are judged by required, not the dictionary."""
    outcome = FieldFormatter([ROLE]).format(3, {"role": ""})
    assert outcome.error.messages == ["Role is required"]
    assert outcome.error.error_type == "FIELD_FORMAT_ERROR"


def test_dictionary_and_structural_errors_merge_in_field_order():
    """Test dictionary and rule messages come out in field order."""
    outcome = FieldFormatter([NAME, ROLE]).format(4, {"name": "much too long", "role": "Guest"})

    assert outcome.error.messages == [
        "Name may not be longer than 5 characters",
        "Role must be one of: Admin, Member",
    ]
    assert outcome.error.error_type == "DICTIONARY_MISMATCH"


def test_native_date_rendered_with_field_format():
    """Test Excel dates are rendered with the field's format."""
    born = FieldSpec(name="born", rules="date_format:%d/%m/%Y")
    outcome = FieldFormatter([born]).format(2, {"born": date(1990, 5, 1)})
    assert outcome.row.values["born"] == "01/05/1990"


def test_native_datetime_without_format_uses_iso_text():
    """Test datetimes without a format become ISO text."""
    seen = FieldSpec(name="seen")
    outcome = FieldFormatter([seen]).format(2, {"seen": datetime(2024, 1, 2, 3, 4, 5)})
    assert outcome.row.values["seen"] == "2024-01-02 03:04:05"


def test_text_date_is_checked_by_date_format_rule():
    """Dates typed as text go through the date_format rule."""
    born = FieldSpec(name="born", display_name="Birthday", rules="date_format:%Y-%m-%d")
    outcome = FieldFormatter([born]).format(2, {"born": "01.05.1990"})
    assert outcome.error.messages == ["Birthday does not match the format %Y-%m-%d"]


def test_insert_mode_applies_defaults():
    """Test defaults fill empty cells on insert."""
    status = FieldSpec(name="status", default="active")
    note = FieldSpec(name="note")
    outcome = FieldFormatter([status, note], use_default=True).format(2, {"status": "", "note": ""})
    assert outcome.row.values == {"status": "active", "note": ""}


def test_update_mode_drops_empty_values():
    """Test empty cells are left out on update."""
    status = FieldSpec(name="status", default="active")
    outcome = FieldFormatter([NAME, status], use_default=False).format(2, {"name": "bob", "status": ""})
    assert outcome.row.values == {"name": "bob"}


def test_fields_absent_from_row_are_not_added():
    """Test the output only has fields present in the row."""
    outcome = FieldFormatter([NAME, FieldSpec(name="note", default="-")]).format(2, {"name": "bob"})
    assert outcome.row.values == {"name": "bob"}


def test_render_date_helper():
    """Test render_date()."""
    assert render_date(date(2024, 3, 1), None) == "2024-03-01"
    assert render_date(date(2024, 3, 1), "%Y%m%d") == "20240301"


def test_row_outcome_ok_flag():
    """Test RowOutcome.ok."""
    assert RowOutcome().ok
