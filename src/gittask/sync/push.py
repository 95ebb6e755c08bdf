"""Push: send selected local tasks to a tracker, isolating failures per task.

Remote calls run on a bounded thread pool. The only local write is one
transaction at the end that records newly created remote ids; a remote
success whose link could not be stored is reported as LinkNotPersisted.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from gittask.config import TaskConfig
from gittask.defaults import DEFAULT_PUSH_WORKERS
from gittask.errors import GitTaskError, IssueCreatedError, NotFoundError
from gittask.models import Task
from gittask.remotes.base import IssueFields, RemoteIssue, RemoteTracker
from gittask.repository import Operation, TaskRepository
from gittask.statuses import StatusMapping, StatusTable
from gittask.sync._helpers import SetLabelLink, SetLink, ensure_remote_labels
from gittask.sync.report import (
    CREATED,
    DELETED,
    FAILED,
    LINK_NOT_PERSISTED,
    SKIPPED,
    UNCHANGED,
    UPDATED,
    ItemResult,
    SyncReport,
)

log = logging.getLogger(__name__)

# (operation recording a remote id, the result to downgrade if it is not stored)
PendingLink = tuple[Operation, ItemResult]


def issue_fields(
    task: Task,
    mapping: StatusMapping,
    statuses: StatusTable,
    labels: set[str] | None = None,
) -> IssueFields:
    """Remote representation of a task. labels=None leaves remote labels alone."""
    return IssueFields(
        title=task.name,
        body=task.get("description") or "",
        is_open=mapping.to_remote(statuses, task.status),
        labels=None if labels is None else [name for name in task.labels if name in labels],
    )


def _same(issue: RemoteIssue, fields: IssueFields) -> bool:
    if (issue.title, issue.body, issue.is_open) != (fields.title, fields.body, fields.is_open):
        return False
    return fields.labels is None or sorted(issue.labels) == sorted(fields.labels)


def push_task(
    tracker: RemoteTracker,
    task: Task,
    fields: IssueFields,
    with_comments: bool = True,
) -> tuple[list[ItemResult], list[PendingLink]]:
    """Push one task (and its comments). Never raises for remote errors."""
    kind = tracker.kind
    results: list[ItemResult] = []
    links: list[PendingLink] = []
    remote_id = task.links.get(kind)
    try:
        if remote_id:
            if _same(tracker.get_issue(remote_id), fields):
                results.append(ItemResult(task.id, UNCHANGED, remote_id=remote_id))
            else:
                tracker.update_issue(remote_id, fields)
                results.append(ItemResult(task.id, UPDATED, remote_id=remote_id))
        else:
            try:
                remote_id = tracker.create_issue(fields)
            except IssueCreatedError as exc:
                # Link what exists; the next push retries the rest as an update
                remote_id = exc.remote_id
                item = ItemResult(task.id, CREATED, remote_id=remote_id)
                links.append((SetLink(task.id, kind, remote_id), item))
                results += [item, ItemResult.failure(task.id, exc, remote_id=remote_id)]
                return results, links
            item = ItemResult(task.id, CREATED, remote_id=remote_id)
            results.append(item)
            links.append((SetLink(task.id, kind, remote_id), item))
    except GitTaskError as exc:
        results.append(ItemResult.failure(task.id, exc, remote_id=remote_id))
        return results, links

    if with_comments and task.comments:
        _push_comments(tracker, task, remote_id, results, links)
    return results, links


def _push_comments(
    tracker: RemoteTracker,
    task: Task,
    remote_id: str,
    results: list[ItemResult],
    links: list[PendingLink],
) -> None:
    kind = tracker.kind
    remote_bodies: dict[str, str] = {}
    if any(c.links.get(kind) for c in task.comments):
        try:
            remote_bodies = {c.id: c.body for c in tracker.list_comments(remote_id)}
        except GitTaskError as exc:
            results.append(ItemResult.failure(task.id, exc, remote_id=remote_id))
            return

    for comment in task.comments:
        comment_remote_id = comment.links.get(kind)
        try:
            if not comment_remote_id:
                new_id = tracker.create_comment(remote_id, comment.text)
                item = ItemResult(task.id, CREATED, remote_id=new_id, comment=comment.id)
                results.append(item)
                links.append((SetLink(task.id, kind, new_id, comment.id), item))
            elif comment_remote_id not in remote_bodies:
                raise NotFoundError(f"{kind} comment {comment_remote_id} no longer exists")
            elif remote_bodies[comment_remote_id] != comment.text:
                tracker.update_comment(remote_id, comment_remote_id, comment.text)
                results.append(ItemResult(task.id, UPDATED, remote_id=comment_remote_id, comment=comment.id))
        except GitTaskError as exc:
            results.append(ItemResult.failure(task.id, exc, remote_id=comment_remote_id, comment=comment.id))


def persist_links(repo: TaskRepository, pending: list[PendingLink], extra: list[Operation], report: SyncReport) -> None:
    """Store remote ids in one transaction; downgrade results whose link did not land."""
    operations = [op for op, _item in pending] + extra
    if not operations:
        return
    try:
        result = repo.apply(operations, f"git-task: link {report.tracker} ids")
    except GitTaskError as exc:
        for _op, item in pending:
            _link_not_persisted(item, str(exc))
        return
    for (_op, item), stored in zip(pending, result.values):
        if not stored:
            _link_not_persisted(item, "the local record disappeared before the link was stored")
    if result.changed:
        report.commit_id = result.commit_id


def _link_not_persisted(item: ItemResult, reason: str) -> None:
    log.warning("task %s: remote %s created but link not stored: %s", item.target, item.remote_id, reason)
    item.action = FAILED
    item.kind = LINK_NOT_PERSISTED
    item.message = f"remote {item.remote_id} was created but its link was not stored: {reason}"


def push(
    repo: TaskRepository,
    tracker: RemoteTracker,
    config: TaskConfig,
    ids: list[int],
    with_comments: bool = True,
    with_labels: bool = True,
    workers: int = DEFAULT_PUSH_WORKERS,
) -> SyncReport:
    kind = tracker.kind
    mapping = config.status_mapping(kind)
    report = SyncReport(kind, tracker.location)
    state = repo.state()

    tasks: list[Task] = []
    for task_id in ids:
        task = state.tasks.get(task_id)
        if task is None:
            report.add(ItemResult.failure(task_id, NotFoundError(f"Task {task_id} not found")))
        else:
            tasks.append(task)

    usable: set[str] | None = None
    label_ops: list[Operation] = []
    if with_labels:
        wanted = {name for task in tasks for name in task.labels}
        usable, label_results, created = ensure_remote_labels(tracker, wanted, state.labels)
        for item in label_results:
            report.add(item)
        label_ops = [SetLabelLink(name, kind, label_id) for name, label_id in created.items()]

    pending: list[PendingLink] = []
    try:
        with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
            futures = {
                executor.submit(
                    push_task,
                    tracker,
                    task,
                    issue_fields(task, mapping, config.statuses, usable),
                    with_comments,
                ): task
                for task in tasks
            }
            for future in as_completed(futures):
                try:
                    results, links = future.result()
                except Exception as exc:
                    task = futures[future]
                    log.exception("task %s: push failed unexpectedly", task.id)
                    report.add(ItemResult(task.id, FAILED, kind=type(exc).__name__, message=str(exc)))
                    continue
                for item in results:
                    report.add(item)
                pending.extend(links)
    finally:
        # Remote ids already created are stored even if the batch broke off
        persist_links(repo, pending, label_ops, report)
    return report


def delete_remote(tracker: RemoteTracker, tasks: list[Task]) -> SyncReport:
    """Delete the linked remote issue of each task, isolating failures."""
    report = SyncReport(tracker.kind, tracker.location)
    for task in tasks:
        remote_id = task.links.get(tracker.kind)
        if not remote_id:
            report.add(ItemResult(task.id, SKIPPED, message=f"not linked to {tracker.kind}"))
            continue
        try:
            tracker.delete_issue(remote_id)
        except GitTaskError as exc:
            report.add(ItemResult.failure(task.id, exc, remote_id=remote_id))
            continue
        report.add(ItemResult(task.id, DELETED, remote_id=remote_id))
    return report
