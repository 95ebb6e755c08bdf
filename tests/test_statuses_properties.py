"""Status tables, open/closed mapping, property styling and condition expressions."""

from __future__ import annotations

import pytest

from gittask.errors import EncodingError, NotFoundError, ValidationError
from gittask.properties import PropertyDefinition, PropertyTable, evaluate_expression, format_datetime
from gittask.statuses import StatusDefinition, StatusMapping, StatusTable


# ---------------------------------------------------------------------------
# Statuses
# ---------------------------------------------------------------------------


def test_default_table_order_and_classification():
    table = StatusTable()
    assert [s.name for s in table.statuses] == ["OPEN", "IN_PROGRESS", "CLOSED"]
    assert table.starting == "OPEN"
    assert table.default_open == "OPEN"
    assert table.default_closed == "CLOSED"
    assert table.is_done("CLOSED") and not table.is_done("IN_PROGRESS")


def test_resolve_is_case_sensitive():
    table = StatusTable()
    assert table.resolve("c") == "CLOSED"
    with pytest.raises(ValidationError):
        table.resolve("closed")


def test_duplicate_shortcut_rejected():
    table = StatusTable()
    with pytest.raises(ValidationError):
        table.add(StatusDefinition("BLOCKED", shortcut="o"))


def test_cannot_delete_last_status():
    table = StatusTable([StatusDefinition("ONLY")])
    with pytest.raises(ValidationError):
        table.delete("ONLY")


def test_from_list_rejects_unknown_keys():
    with pytest.raises(EncodingError):
        StatusTable.from_list([{"name": "OPEN", "colour": "red"}])


def test_set_field_is_done_and_previous_value():
    table = StatusTable()
    assert table.set_field("IN_PROGRESS", "is_done", "true") == "False"
    assert table.get_field("IN_PROGRESS", "is_done") == "true"


def test_mapping_uses_bindings_then_done_flag():
    table = StatusTable()
    table.add(StatusDefinition("WONTFIX", shortcut="w", is_done=True))
    mapping = StatusMapping(open="OPEN", closed="CLOSED")
    assert mapping.to_remote(table, "IN_PROGRESS") is True
    assert mapping.to_remote(table, "WONTFIX") is False
    assert mapping.to_local(False) == "CLOSED"


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


def test_pick_style_prefers_condition_then_enum():
    table = PropertyTable()
    prop = PropertyDefinition("priority", "enum", color="white")
    table.add(prop)
    table.add_enum("priority", "HIGH", "red", "bold")
    table.add_condition("priority", "status == 'CLOSED'", "bright_black")

    open_high = {"priority": "HIGH", "status": "OPEN"}
    closed_high = {"priority": "HIGH", "status": "CLOSED"}
    assert table.pick_style("priority", "HIGH", open_high, evaluate_expression) == ("red", "bold")
    assert table.pick_style("priority", "HIGH", closed_high, evaluate_expression) == ("bright_black", None)
    assert table.pick_style("priority", "LOW", {"priority": "LOW"}, evaluate_expression) == ("white", None)


def test_enum_value_management():
    table = PropertyTable()
    table.add(PropertyDefinition("size", "enum"))
    table.add_enum("size", "S", "green")
    with pytest.raises(ValidationError):
        table.add_enum("size", "S", "red")
    table.set_enum("size", "S", "blue", "italic")
    assert table.get("size").enum_values[0].color == "blue"
    table.delete_enum("size", "S")
    with pytest.raises(NotFoundError):
        table.delete_enum("size", "S")


def test_clear_conditions_returns_count():
    table = PropertyTable()
    table.add_condition("name", "id > 3", "red")
    table.add_condition("name", "id > 5", "blue")
    assert table.clear_conditions("name") == 2
    assert table.get("name").cond_format == []


def test_unknown_value_type_rejected():
    with pytest.raises(EncodingError):
        PropertyTable.from_list([{"name": "x", "value_type": "float"}])


def test_format_datetime_blank_for_zero():
    assert format_datetime("0") == ""
    assert format_datetime("soon") == "soon"


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("id > 3", True),
        ("id > 3 && status == 'OPEN'", True),
        ("id < 3 || status == 'OPEN'", True),
        ("!(status == 'OPEN')", False),
        ("status != 'CLOSED'", True),
        ("missing == ''", True),
        ("__import__('os')", False),
        ("id >", False),
    ],
)
def test_evaluate_expression(expression, expected):
    assert evaluate_expression(expression, {"id": "10", "status": "OPEN"}) is expected
