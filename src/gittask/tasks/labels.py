"""Task labels: tag tasks, manage the label catalog, push labels to a tracker."""

from __future__ import annotations

from typing import Any

from gittask.models import Label, Task
from gittask.remotes import RemoteTracker
from gittask.repository import DeleteLabel, Operation, PutLabel, UpdateTask
from gittask.sync._helpers import SetLabelLink, ensure_remote_labels
from gittask.sync.report import CREATED, ItemResult, SyncReport

from ._helpers import Workspace, require_ids, with_report


def add_label(
    ws: Workspace,
    selector: str,
    name: str,
    color: str | None = None,
    description: str | None = None,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    """Attach a label to each selected task, adding it to the catalog if new."""
    ids = require_ids(selector)
    label = Label(name=name, description=description or "")
    if color:
        label.color = color.lstrip("#")

    def attach(task: Task) -> bool:
        if name in task.labels:
            return False
        task.labels.append(name)
        return True

    operations: list[Operation] = [PutLabel(label, keep_existing=color is None and description is None)]
    operations += [UpdateTask(task_id, attach) for task_id in ids]
    result = ws.repo.apply(operations, f"git-task: label {name}")
    data: dict[str, Any] = {
        "status": "labeled",
        "label": result.values[0].to_dict(),
        "ids": [task_id for task_id, added in zip(ids, result.values[1:]) if added],
    }
    if push_remote:
        catalog = {name: result.values[0]}
        with ws.tracker(connector, remote, tracker) as resolved:
            report = SyncReport(resolved.kind, resolved.location)
            _usable, label_results, created = ensure_remote_labels(
                resolved, {name}, catalog, update=color is not None or description is not None
            )
            for item in label_results:
                report.add(item)
            for label_name, remote_id in created.items():
                report.add(ItemResult(None, CREATED, remote_id=remote_id, message=f"label '{label_name}'"))
        if created:
            ws.repo.apply(
                [SetLabelLink(label_name, resolved.kind, remote_id) for label_name, remote_id in created.items()],
                f"git-task: link {resolved.kind} label",
            )
        with_report(data, report, "push")
    return data


def remove_label(ws: Workspace, selector: str, name: str) -> dict[str, Any]:
    """Detach a label from each selected task. The catalog entry stays."""
    ids = require_ids(selector)

    def detach(task: Task) -> bool:
        if name not in task.labels:
            return False
        task.labels.remove(name)
        return True

    result = ws.repo.apply([UpdateTask(task_id, detach) for task_id in ids], f"git-task: unlabel {name}")
    return {"status": "unlabeled", "label": name, "ids": [i for i, hit in zip(ids, result.values) if hit]}


def delete_label(ws: Workspace, name: str) -> dict[str, Any]:
    """Drop a label from the catalog and from every task carrying it."""
    result = ws.repo.apply([DeleteLabel(name)], f"git-task: delete label {name}")
    return {"status": "deleted", "label": name, "ids": result.values[0]}


def list_labels(ws: Workspace, task_id: int | None = None) -> dict[str, Any]:
    if task_id is None:
        labels = ws.repo.labels()
        return {"labels": [label.to_dict() for label in labels], "count": len(labels)}
    state = ws.repo.state()
    task = state.get(task_id)
    labels = [state.labels.get(name) or Label(name) for name in task.labels]
    return {"id": task_id, "labels": [label.to_dict() for label in labels], "count": len(labels)}
