"""Task comments: add, edit, delete, list; optionally mirrored to a tracker."""

from __future__ import annotations

from typing import Any

from gittask.errors import GitTaskError, ValidationError
from gittask.models import AUTHOR, CREATED, Comment, now_timestamp
from gittask.remotes import RemoteTracker
from gittask.repository import AddComment, DeleteComment, UpdateComment
from gittask.sync._helpers import SetLink
from gittask.sync.push import persist_links
from gittask.sync.report import CREATED as ACTION_CREATED
from gittask.sync.report import DELETED, UPDATED, ItemResult, SyncReport

from ._helpers import Workspace, with_report


def _remote_issue(ws: Workspace, task_id: int, kind: str) -> str:
    remote_id = ws.repo.get(task_id).links.get(kind)
    if not remote_id:
        raise ValidationError(f"Task {task_id} is not linked to {kind}; push the task first")
    return remote_id


def add_comment(
    ws: Workspace,
    task_id: int,
    text: str,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    if not text.strip():
        raise ValidationError("Comment text must not be empty")
    props = {CREATED: now_timestamp()}
    if ws.config.author:
        props[AUTHOR] = ws.config.author
    result = ws.repo.apply([AddComment(task_id, Comment(text=text, props=props))], f"git-task: comment on {task_id}")
    comment_id = result.values[0]
    data: dict[str, Any] = {"status": "added", "id": task_id, "comment_id": comment_id}
    if push_remote:
        with ws.tracker(connector, remote, tracker) as resolved:
            report = SyncReport(resolved.kind, resolved.location)
            try:
                remote_comment = resolved.create_comment(_remote_issue(ws, task_id, resolved.kind), text)
            except GitTaskError as exc:
                report.add(ItemResult.failure(task_id, exc, comment=comment_id))
            else:
                item = report.add(ItemResult(task_id, ACTION_CREATED, remote_id=remote_comment, comment=comment_id))
                persist_links(ws.repo, [(SetLink(task_id, resolved.kind, remote_comment, comment_id), item)], [], report)
        with_report(data, report, "push")
    return data


def edit_comment(
    ws: Workspace,
    task_id: int,
    comment_id: int,
    text: str,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    if not text.strip():
        raise ValidationError("Comment text must not be empty")

    def change(comment: Comment) -> Comment:
        comment.text = text
        return comment

    result = ws.repo.apply([UpdateComment(task_id, comment_id, change)], f"git-task: edit comment {task_id}/{comment_id}")
    comment = result.values[0]
    data: dict[str, Any] = {"status": "updated", "id": task_id, "comment_id": comment_id}
    if push_remote:
        with ws.tracker(connector, remote, tracker) as resolved:
            report = SyncReport(resolved.kind, resolved.location)
            remote_comment = comment.links.get(resolved.kind)
            try:
                if not remote_comment:
                    raise ValidationError(f"Comment {comment_id} is not linked to {resolved.kind}")
                resolved.update_comment(_remote_issue(ws, task_id, resolved.kind), remote_comment, text)
            except GitTaskError as exc:
                report.add(ItemResult.failure(task_id, exc, remote_id=remote_comment, comment=comment_id))
            else:
                report.add(ItemResult(task_id, UPDATED, remote_id=remote_comment, comment=comment_id))
        with_report(data, report, "push")
    return data


def delete_comment(
    ws: Workspace,
    task_id: int,
    comment_id: int,
    push_remote: bool = False,
    connector: str | None = None,
    remote: str | None = None,
    tracker: RemoteTracker | None = None,
) -> dict[str, Any]:
    task = ws.repo.get(task_id)
    result = ws.repo.apply([DeleteComment(task_id, comment_id)], f"git-task: delete comment {task_id}/{comment_id}")
    comment = result.values[0]
    data: dict[str, Any] = {"status": "deleted", "id": task_id, "comment_id": comment_id}
    if push_remote:
        with ws.tracker(connector, remote, tracker) as resolved:
            report = SyncReport(resolved.kind, resolved.location)
            remote_comment = comment.links.get(resolved.kind)
            issue_id = task.links.get(resolved.kind)
            try:
                if not remote_comment or not issue_id:
                    raise ValidationError(f"Comment {comment_id} is not linked to {resolved.kind}")
                resolved.delete_comment(issue_id, remote_comment)
            except GitTaskError as exc:
                report.add(ItemResult.failure(task_id, exc, remote_id=remote_comment, comment=comment_id))
            else:
                report.add(ItemResult(task_id, DELETED, remote_id=remote_comment, comment=comment_id))
        with_report(data, report, "push")
    return data


def list_comments(ws: Workspace, task_id: int) -> dict[str, Any]:
    task = ws.repo.get(task_id)
    return {"id": task_id, "comments": [c.to_dict() for c in task.comments], "count": len(task.comments)}
