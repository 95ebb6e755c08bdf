"""Bulk JSON export and import of full task records."""

from __future__ import annotations

import json
from typing import Any

from gittask.errors import EncodingError
from gittask.models import Label, Task
from gittask.repository import CreateTask, Operation, PutLabel, PutTask
from gittask.selectors import build_filter, parse_ids

from ._helpers import Workspace, task_record


def export_tasks(
    ws: Workspace,
    selector: str | None = None,
    status: str | tuple[str, ...] | None = None,
    limit: int | None = None,
    pretty: bool = False,
) -> str:
    """JSON array of task records in id order, labels expanded to label objects."""
    filt = build_filter(ws.config.statuses, selector=selector, status=status or None, limit=limit)
    state = ws.repo.state()
    tasks = filt.apply(state.tasks[task_id] for task_id in sorted(state.tasks))
    records = [task_record(task, state.labels) for task in tasks]
    if pretty:
        return json.dumps(records, indent=2, ensure_ascii=False)
    return json.dumps(records, ensure_ascii=False, separators=(",", ":"))


def parse_document(document: str) -> tuple[list[Task], list[Label]]:
    """Tasks and the label objects they carry, from an exported JSON array."""
    try:
        records = json.loads(document)
    except json.JSONDecodeError as exc:
        raise EncodingError(f"Import document is not valid JSON: {exc}") from exc
    if not isinstance(records, list):
        raise EncodingError("Import document must be a JSON array of tasks")
    tasks: list[Task] = []
    labels: dict[str, Label] = {}
    for index, record in enumerate(records):
        try:
            task = Task.from_dict(record)
        except EncodingError as exc:
            raise EncodingError(f"Task record #{index}: {exc}") from exc
        for item in record.get("labels", []):
            if isinstance(item, dict):
                label = Label.from_dict(item)
                labels.setdefault(label.name, label)
        tasks.append(task)
    return tasks, list(labels.values())


def import_tasks(ws: Workspace, document: str, selector: str | None = None) -> dict[str, Any]:
    """Write every (selected) task under its own id in one transaction.

    Records without an id get a fresh one. Existing tasks with the same id
    are replaced.
    """
    tasks, labels = parse_document(document)
    if selector:
        wanted = set(parse_ids(selector))
        tasks = [task for task in tasks if task.id in wanted]
    used = {name for task in tasks for name in task.labels}

    operations: list[Operation] = [PutLabel(label) for label in labels if label.name in used]
    for task in tasks:
        task.validate()
        operations.append(PutTask(task) if task.id is not None else CreateTask(task))
    result = ws.repo.apply(operations, f"git-task: import {len(tasks)} task(s)")
    ids = result.values[len(operations) - len(tasks):]
    return {"status": "imported", "ids": ids, "count": len(ids)}
