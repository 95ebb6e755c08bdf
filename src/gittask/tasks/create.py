"""Task creation, optionally pushing the new task to a tracker."""

from __future__ import annotations

from typing import Any

from gittask.errors import ValidationError
from gittask.models import RESERVED_KEYS, Task
from gittask.remotes import RemoteTracker
from gittask.sync import push

from ._helpers import Workspace, with_report


def create_task(
    ws: Workspace,
    name: str,
    description: str = "",
    status: str | None = None,
    props: dict[str, str] | None = None,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    """Create a task in the first configured status (or the given one)."""
    if not name.strip():
        raise ValidationError("Task name must not be empty")
    statuses = ws.config.statuses
    task = Task.new(
        name,
        description,
        statuses.resolve(status) if status else statuses.starting,
        author=ws.config.author,
    )
    for key, value in (props or {}).items():
        if key in RESERVED_KEYS or key == "id":
            raise ValidationError(f"'{key}' is reserved; use the dedicated option")
        task.set(key, value)

    task_id = ws.repo.create(task, f"git-task: create task '{name}'")
    result: dict[str, Any] = {"status": "created", "id": task_id, "name": name, "task_status": task.status}
    if push_remote:
        with ws.tracker(connector, remote, tracker) as resolved:
            report = push(ws.repo, resolved, ws.config, [task_id])
        with_report(result, report, "push")
    return result
