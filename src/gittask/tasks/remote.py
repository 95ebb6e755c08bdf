"""Pull and push commands: resolve the tracker, run the sync, shape the result."""

from __future__ import annotations

from typing import Any

from gittask.remotes import RemoteTracker
from gittask.selectors import parse_ids
from gittask.sync import pull, push

from ._helpers import Workspace, require_ids, with_report


def pull_tasks(
    ws: Workspace,
    selector: str | None = None,
    status: str | None = None,
    limit: int | None = None,
    connector: str | None = None,
    remote: str | None = None,
    no_comments: bool = False,
    no_labels: bool = False,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    """Import remote issues; selector ids are remote issue numbers."""
    remote_ids = [str(i) for i in parse_ids(selector)] if selector else None
    with ws.tracker(connector, remote, tracker) as resolved:
        report = pull(
            ws.repo,
            resolved,
            ws.config,
            ids=remote_ids,
            status=status,
            limit=limit,
            with_comments=not no_comments,
            with_labels=not no_labels,
        )
    return with_report({"status": "pulled"}, report)


def push_tasks(
    ws: Workspace,
    selector: str,
    connector: str | None = None,
    remote: str | None = None,
    no_comments: bool = False,
    no_labels: bool = False,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    ids = require_ids(selector)
    with ws.tracker(connector, remote, tracker) as resolved:
        report = push(
            ws.repo,
            resolved,
            ws.config,
            ids,
            with_comments=not no_comments,
            with_labels=not no_labels,
        )
    return with_report({"status": "pushed"}, report)
