"""Read-only task queries: list, show, stats."""

from __future__ import annotations

from collections import Counter
from typing import Any

from gittask.models import AUTHOR
from gittask.selectors import build_filter, sort_tasks

from ._helpers import Workspace, task_record


def list_tasks(
    ws: Workspace,
    selector: str | None = None,
    status: str | tuple[str, ...] | None = None,
    keyword: str | None = None,
    date_from: str | None = None,
    date_until: str | None = None,
    author: str | None = None,
    limit: int | None = None,
    sort: list[str] | None = None,
) -> dict[str, Any]:
    """Filtered tasks, sorted by task.list.sort (or `sort`), then limited."""
    filt = build_filter(
        ws.config.statuses,
        selector=selector,
        status=status or None,
        keyword=keyword,
        date_from=date_from,
        date_until=date_until,
        author=author,
        limit=limit,
    )
    state = ws.repo.state()
    matched = [task for task in state.tasks.values() if filt.matches(task)]
    ordered = sort_tasks(matched, sort or ws.config.list_sort, ws.config.properties)
    if limit is not None:
        ordered = ordered[:limit]
    return {"tasks": [task_record(task, state.labels) for task in ordered], "count": len(ordered)}


def show_task(ws: Workspace, task_id: int) -> dict[str, Any]:
    state = ws.repo.state()
    return {"task": task_record(state.get(task_id), state.labels)}


def task_stats(ws: Workspace, top: int = 10) -> dict[str, Any]:
    """Totals per status (in table order) and the most active authors."""
    tasks = ws.repo.load_all()
    by_status = Counter(task.status for task in tasks)
    ordered = {status.name: by_status.pop(status.name, 0) for status in ws.config.statuses.statuses}
    # Statuses no longer in the table still count
    ordered.update(sorted(by_status.items()))
    authors = Counter(task.get(AUTHOR) or "" for task in tasks)
    authors.pop("", None)
    return {
        "total": len(tasks),
        "by_status": ordered,
        "top_authors": [{"author": name, "count": count} for name, count in authors.most_common(top)],
    }
