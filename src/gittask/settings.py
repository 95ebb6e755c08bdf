"""`config` command operations: plain keys, the task ref, status and property tables.

Status and property tables live in git config as JSON; import/export go
through YAML (a JSON document is valid YAML too).
"""

from __future__ import annotations

import json
from typing import Any

import yaml

from gittask import defaults
from gittask.config import save_properties, save_statuses
from gittask.errors import EncodingError, ValidationError
from gittask.models import STATUS, Task
from gittask.properties import ConditionalFormat, EnumValue, PropertyDefinition, PropertyTable
from gittask.remotes import TRACKERS
from gittask.repository import UpdateTask
from gittask.statuses import StatusDefinition, StatusTable
from gittask.tasks import Workspace

PLAIN_KEYS = {
    defaults.KEY_LIST_COLUMNS: defaults.DEFAULT_LIST_COLUMNS,
    defaults.KEY_LIST_SORT: defaults.DEFAULT_LIST_SORT,
    defaults.KEY_STATUS_OPEN: None,
    defaults.KEY_STATUS_CLOSED: None,
}
TRACKER_SETTINGS = ("url", "token", "status.open", "status.closed")


def known_keys() -> list[str]:
    keys = [*PLAIN_KEYS, defaults.KEY_REF]
    keys += [defaults.tracker_key(kind, name) for kind in sorted(TRACKERS) for name in TRACKER_SETTINGS]
    return keys


def _check_key(key: str) -> None:
    if key not in known_keys():
        raise ValidationError(f"Unknown parameter: {key}")


# ---------------------------------------------------------------------------
# Plain keys and the ref
# ---------------------------------------------------------------------------


def config_get(ws: Workspace, key: str) -> dict[str, Any]:
    _check_key(key)
    if key == defaults.KEY_REF:
        return {"key": key, "value": ws.config.ref}
    value = ws.config_store.get(key)
    if value is None:
        if key == defaults.KEY_STATUS_OPEN:
            value = ws.config.statuses.default_open
        elif key == defaults.KEY_STATUS_CLOSED:
            value = ws.config.statuses.default_closed
        else:
            value = PLAIN_KEYS.get(key)
    return {"key": key, "value": value}


def config_set(ws: Workspace, key: str, value: str, move: bool = False) -> dict[str, Any]:
    _check_key(key)
    if key == defaults.KEY_REF:
        return set_ref(ws, value, move)
    if key.endswith("status.open") or key.endswith("status.closed"):
        value = ws.config.statuses.resolve(value)
    ws.config_store.set(key, value)
    return {"status": "updated", "key": key, "value": value}


def config_unset(ws: Workspace, key: str) -> dict[str, Any]:
    _check_key(key)
    return {"status": "unset" if ws.config_store.unset(key) else "unchanged", "key": key}


def config_list(ws: Workspace) -> dict[str, Any]:
    stored = ws.config_store.items(r"^task\.")
    values = {key: stored.get(key) for key in known_keys()}
    values[defaults.KEY_REF] = ws.config.ref
    return {"config": values}


def set_ref(ws: Workspace, value: str, move: bool = False) -> dict[str, Any]:
    """Point task storage at another ref; with move, carry the data over and drop the old ref."""
    new_ref = defaults.normalize_ref(value)
    old_ref = ws.config.ref
    moved = None
    if move and new_ref != old_ref:
        moved = ws.store.move_ref(old_ref, new_ref, delete_old=True)
    ws.config_store.set(defaults.KEY_REF, new_ref)
    ws.config.ref = new_ref
    return {"status": "updated", "key": defaults.KEY_REF, "value": new_ref, "previous": old_ref, "moved": moved}


def squash_history(ws: Workspace) -> dict[str, Any]:
    """Collapse the task ref's history into one commit of its current tree."""
    commit_id = ws.store.squash(ws.config.ref)
    return {"status": "squashed" if commit_id else "unchanged", "ref": ws.config.ref, "commit": commit_id}


# ---------------------------------------------------------------------------
# Table import/export
# ---------------------------------------------------------------------------


def _load_document(text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise EncodingError(f"Cannot parse document: {exc}") from exc


def _dump_document(items: list[dict[str, Any]], fmt: str = "yaml", pretty: bool = False) -> str:
    if fmt == "json":
        return json.dumps(items, indent=2 if pretty else None)
    if fmt == "yaml":
        return yaml.safe_dump(items, sort_keys=False, allow_unicode=True)
    raise ValidationError(f"Unknown format '{fmt}'. Valid: yaml, json")


# ---------------------------------------------------------------------------
# Statuses
# ---------------------------------------------------------------------------


def status_list(ws: Workspace) -> dict[str, Any]:
    return {"statuses": ws.config.statuses.to_list()}


def status_add(
    ws: Workspace,
    name: str,
    shortcut: str = "",
    color: str = "reset",
    style: str | None = None,
    is_done: bool = False,
) -> dict[str, Any]:
    table = ws.config.statuses
    table.add(StatusDefinition(name=name, shortcut=shortcut, color=color, style=style or None, is_done=is_done))
    save_statuses(ws.config_store, table)
    return {"status": "added", "name": name}


def _tasks_with_status(ws: Workspace, name: str) -> list[int]:
    return [task.id for task in ws.repo.load_all() if task.status == name]


def status_delete(ws: Workspace, name: str, force: bool = False) -> dict[str, Any]:
    table = ws.config.statuses
    table.get(name)
    in_use = _tasks_with_status(ws, name)
    if in_use and not force:
        raise ValidationError(f"Status '{name}' is used by {len(in_use)} task(s); use --force to delete anyway")
    table.delete(name)
    save_statuses(ws.config_store, table)
    return {"status": "deleted", "name": name, "in_use": in_use}


def status_get(ws: Workspace, name: str, field_name: str) -> dict[str, Any]:
    return {"name": name, "field": field_name, "value": ws.config.statuses.get_field(name, field_name)}


def status_set(ws: Workspace, name: str, field_name: str, value: str) -> dict[str, Any]:
    """Update a status field. A rename is applied to every task in one transaction."""
    table = ws.config.statuses
    previous = table.set_field(name, field_name, value)
    renamed: list[int] = []
    if field_name == "name" and value != name:
        ids = _tasks_with_status(ws, name)
        if ids:
            ws.repo.apply(
                [UpdateTask(task_id, lambda task: task.set(STATUS, value)) for task_id in ids],
                f"git-task: rename status {name} to {value}",
            )
        renamed = ids
    save_statuses(ws.config_store, table)
    return {"status": "updated", "name": name, "field": field_name, "value": value, "previous": previous, "renamed": renamed}


def status_import(ws: Workspace, text: str) -> dict[str, Any]:
    table = StatusTable.from_list(_load_document(text))
    save_statuses(ws.config_store, table)
    ws.config.statuses = table
    return {"status": "imported", "count": len(table.statuses)}


def status_export(ws: Workspace, fmt: str = "yaml", pretty: bool = False) -> str:
    return _dump_document(ws.config.statuses.to_list(), fmt, pretty)


def status_reset(ws: Workspace) -> dict[str, Any]:
    ws.config_store.unset(defaults.KEY_STATUSES)
    ws.config.statuses = StatusTable()
    return {"status": "reset", "count": len(ws.config.statuses.statuses)}


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


def property_list(ws: Workspace) -> dict[str, Any]:
    return {"properties": ws.config.properties.to_list()}


def _tasks_with_property(ws: Workspace, name: str) -> list[int]:
    return [task.id for task in ws.repo.load_all() if task.get(name) is not None]


def property_add(
    ws: Workspace,
    name: str,
    value_type: str = "string",
    color: str = "reset",
    style: str | None = None,
    enum_values: list[str] | None = None,
    conditions: list[str] | None = None,
) -> dict[str, Any]:
    """Add a property definition. Enum values and conditions use 'value:color[:style]' /
    'expression:color[:style]' notation."""
    prop = PropertyDefinition.from_dict({"name": name, "value_type": value_type, "color": color, "style": style})
    prop.enum_values = [EnumValue(*_split_styled(item)) for item in enum_values or []]
    prop.cond_format = [ConditionalFormat(*_split_styled(item)) for item in conditions or []]
    table = ws.config.properties
    table.add(prop)
    save_properties(ws.config_store, table)
    return {"status": "added", "name": name}


def _split_styled(item: str) -> tuple[str, str, str | None]:
    """'value:color[:style]' -> (value, color, style). Expressions may contain ':'."""
    head, sep, tail = item.rpartition(":")
    if not sep or not head:
        raise ValidationError(f"Expected 'value:color[:style]', got '{item}'")
    if all(flag in defaults.STYLE_FLAGS for flag in tail.split(",")):
        value, sep, color = head.rpartition(":")
        if sep and value:
            return value, color, tail
    return head, tail, None


def property_delete(ws: Workspace, name: str, force: bool = False) -> dict[str, Any]:
    table = ws.config.properties
    table.get(name)
    in_use = _tasks_with_property(ws, name)
    if in_use and not force:
        raise ValidationError(f"Property '{name}' is set on {len(in_use)} task(s); use --force to delete anyway")
    table.delete(name)
    save_properties(ws.config_store, table)
    return {"status": "deleted", "name": name, "in_use": in_use}


def property_get(ws: Workspace, name: str, field_name: str) -> dict[str, Any]:
    return {"name": name, "field": field_name, "value": ws.config.properties.get_field(name, field_name)}


def property_set(ws: Workspace, name: str, field_name: str, value: str) -> dict[str, Any]:
    """Update a property field. A rename moves the key on every task in one transaction."""
    table = ws.config.properties
    previous = table.set_field(name, field_name, value)
    renamed: list[int] = []
    if field_name == "name" and value != name:
        ids = _tasks_with_property(ws, name)

        def rename(task: Task) -> None:
            # Rebuild to keep the key in its original position
            task.props = {value if key == name else key: item for key, item in task.props.items()}

        if ids:
            ws.repo.apply([UpdateTask(task_id, rename) for task_id in ids], f"git-task: rename property {name} to {value}")
        renamed = ids
    save_properties(ws.config_store, table)
    return {"status": "updated", "name": name, "field": field_name, "value": value, "previous": previous, "renamed": renamed}


def property_enum(ws: Workspace, action: str, name: str, value: str, color: str = "reset", style: str | None = None) -> dict[str, Any]:
    table = ws.config.properties
    if action == "add":
        table.add_enum(name, value, color, style or None)
    elif action == "set":
        table.set_enum(name, value, color, style or None)
    elif action == "delete":
        table.delete_enum(name, value)
    else:
        raise ValidationError(f"Unknown enum action '{action}'")
    save_properties(ws.config_store, table)
    return {"status": action, "name": name, "value": value}


def property_conditions(
    ws: Workspace,
    action: str,
    name: str,
    condition: str = "",
    color: str = "reset",
    style: str | None = None,
) -> dict[str, Any]:
    table = ws.config.properties
    if action == "add":
        if not condition:
            raise ValidationError("A condition expression is required")
        table.add_condition(name, condition, color, style or None)
        result: dict[str, Any] = {"status": "added", "name": name, "condition": condition}
    elif action == "clear":
        result = {"status": "cleared", "name": name, "count": table.clear_conditions(name)}
    else:
        raise ValidationError(f"Unknown condition action '{action}'")
    save_properties(ws.config_store, table)
    return result


def property_import(ws: Workspace, text: str) -> dict[str, Any]:
    table = PropertyTable.from_list(_load_document(text))
    save_properties(ws.config_store, table)
    ws.config.properties = table
    return {"status": "imported", "count": len(table.properties)}


def property_export(ws: Workspace, fmt: str = "yaml", pretty: bool = False) -> str:
    return _dump_document(ws.config.properties.to_list(), fmt, pretty)


def property_reset(ws: Workspace) -> dict[str, Any]:
    ws.config_store.unset(defaults.KEY_PROPERTIES)
    ws.config.properties = PropertyTable()
    return {"status": "reset", "count": len(ws.config.properties.properties)}
