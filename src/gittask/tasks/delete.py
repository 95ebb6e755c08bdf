"""Task deletion: by selector or status, optionally on the tracker too."""

from __future__ import annotations

from typing import Any

from gittask.remotes import RemoteTracker
from gittask.repository import ClearTasks, DeleteTask
from gittask.sync import delete_remote

from ._helpers import Workspace, require_ids, select_ids, with_report


def delete_tasks(
    ws: Workspace,
    selector: str | None = None,
    status: str | tuple[str, ...] | None = None,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    """Delete tasks locally in one transaction; with push_remote, delete linked issues afterwards."""
    ids = require_ids(selector) if selector and not status else select_ids(ws, selector, status)
    if not ids:
        return {"status": "deleted", "ids": [], "count": 0}
    result = ws.repo.apply([DeleteTask(task_id) for task_id in ids], f"git-task: delete {len(ids)} task(s)")
    data: dict[str, Any] = {"status": "deleted", "ids": ids, "count": len(ids)}
    if push_remote:
        with ws.tracker(connector, remote, tracker) as resolved:
            report = delete_remote(resolved, result.values)
        with_report(data, report, "push")
    return data


def clear_tasks(ws: Workspace) -> dict[str, Any]:
    """Delete every task. The id high-water mark is kept, so ids are never reused."""
    result = ws.repo.apply([ClearTasks()], "git-task: clear")
    return {"status": "cleared", "count": result.values[0]}
