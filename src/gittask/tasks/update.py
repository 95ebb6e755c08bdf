"""Property updates: status, get/set/unset, editor edits, text replacement."""

from __future__ import annotations

import re
from typing import Any, Callable

import click

from gittask.errors import NotFoundError, ValidationError
from gittask.models import CREATED, NAME, STATUS, Task
from gittask.repository import UpdateTask

from ._helpers import Workspace, require_ids


def _check_key(key: str) -> None:
    if not key or key == "id":
        raise ValidationError("The task id is not a property and cannot be changed")


def set_status(ws: Workspace, selector: str, status: str) -> dict[str, Any]:
    """Move every selected task to a status given by name or shortcut."""
    value = ws.config.statuses.resolve(status)
    ids = require_ids(selector)

    def change(task: Task) -> str:
        previous = task.status
        task.set(STATUS, value)
        return previous

    result = ws.repo.apply([UpdateTask(task_id, change) for task_id in ids], f"git-task: status {value}")
    return {
        "status": "updated",
        "ids": ids,
        "task_status": value,
        "previous": {str(task_id): prev for task_id, prev in zip(ids, result.values)},
    }


def get_property(ws: Workspace, task_id: int, key: str) -> dict[str, Any]:
    task = ws.repo.get(task_id)
    value = task.get(key)
    if value is None:
        raise NotFoundError(f"Task {task_id} has no property '{key}'")
    return {"id": task_id, "key": key, "value": value}


def set_property(ws: Workspace, selector: str, key: str, value: str) -> dict[str, Any]:
    _check_key(key)
    if key == STATUS:
        value = ws.config.statuses.resolve(value)
    if key == CREATED and not value.isdigit():
        raise ValidationError(f"'created' must be a Unix timestamp, got '{value}'")
    ids = require_ids(selector)

    def change(task: Task) -> None:
        task.set(key, value)

    ws.repo.apply([UpdateTask(task_id, change) for task_id in ids], f"git-task: set {key}")
    return {"status": "updated", "ids": ids, "key": key, "value": value}


def unset_property(ws: Workspace, selector: str, key: str) -> dict[str, Any]:
    _check_key(key)
    if key in (NAME, STATUS):
        raise ValidationError(f"'{key}' is required and cannot be unset")
    ids = require_ids(selector)
    result = ws.repo.apply(
        [UpdateTask(task_id, lambda task: task.unset(key)) for task_id in ids],
        f"git-task: unset {key}",
    )
    removed = [task_id for task_id, found in zip(ids, result.values) if found]
    return {"status": "unset", "key": key, "ids": removed}


def edit_property(
    ws: Workspace,
    task_id: int,
    key: str = "description",
    editor: Callable[[str], str | None] = click.edit,
) -> dict[str, Any]:
    """Open the property value in $EDITOR and store the result."""
    _check_key(key)
    current = ws.repo.get(task_id).get(key) or ""
    edited = editor(current)
    if edited is None or edited.rstrip("\n") == current.rstrip("\n"):
        return {"status": "unchanged", "id": task_id, "key": key}
    value = edited.rstrip("\n")
    if key == NAME and not value.strip():
        raise ValidationError("Task name must not be empty")
    if key == STATUS:
        value = ws.config.statuses.resolve(value.strip())

    def change(task: Task) -> None:
        task.set(key, value)

    ws.repo.update(task_id, change, f"git-task: edit {key}")
    return {"status": "updated", "id": task_id, "key": key}


def replace_text(
    ws: Workspace,
    selector: str,
    key: str,
    search: str,
    replacement: str,
    regex: bool = False,
) -> dict[str, Any]:
    """Replace a literal substring (or regex match) in one property of each task."""
    _check_key(key)
    if regex:
        try:
            pattern = re.compile(search)
        except re.error as exc:
            raise ValidationError(f"Invalid regular expression '{search}': {exc}") from exc
    else:
        pattern = re.compile(re.escape(search))
    ids = require_ids(selector)

    def change(task: Task) -> bool:
        value = task.get(key)
        if value is None:
            return False
        try:
            new_value = pattern.sub(replacement if regex else (lambda _match: replacement), value)
        except re.error as exc:
            raise ValidationError(f"Invalid replacement '{replacement}': {exc}") from exc
        if new_value == value:
            return False
        task.set(key, new_value)
        return True

    result = ws.repo.apply([UpdateTask(task_id, change) for task_id in ids], f"git-task: replace in {key}")
    changed = [task_id for task_id, hit in zip(ids, result.values) if hit]
    return {"status": "replaced", "key": key, "ids": changed, "count": len(changed)}
