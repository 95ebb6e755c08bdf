"""Pull: merge remote issues into local tasks in one transaction.

Remote reads happen first and fail per item. The merge itself is a single
repository operation, so the whole pull lands as one commit (or not at all).
Pull only overwrites the fields a tracker owns (name, description, author,
status, labels, linked comments); every other property stays local.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gittask.config import TaskConfig
from gittask.errors import GitTaskError, UnsupportedOperationError
from gittask.models import AUTHOR, CREATED, DESCRIPTION, NAME, STATUS, Comment, Task, now_timestamp
from gittask.remotes.base import IssueFilter, RemoteComment, RemoteIssue, RemoteLabel, RemoteTracker
from gittask.repository import Operation, RepositoryState, TaskRepository
from gittask.statuses import StatusMapping
from gittask.sync._helpers import local_label, remote_label_catalog
from gittask.sync.report import CREATED as ACTION_CREATED
from gittask.sync.report import UNCHANGED, UPDATED, ItemResult, SyncReport

log = logging.getLogger(__name__)


@dataclass
class PulledIssue:
    issue: RemoteIssue
    # None when comments were not fetched
    comments: list[RemoteComment] | None = None


def merge_issue(
    task: Task,
    issue: RemoteIssue,
    mapping: StatusMapping,
    with_labels: bool = True,
) -> None:
    """Overwrite the tracker-owned fields of task with the remote values."""
    task.set(NAME, issue.title)
    task.set(DESCRIPTION, issue.body)
    if issue.author:
        task.set(AUTHOR, issue.author)
    if issue.created and not task.get(CREATED):
        task.set(CREATED, issue.created)
    task.set(STATUS, mapping.to_local(issue.is_open))
    if with_labels:
        task.labels = list(issue.labels)


def merge_comments(task: Task, comments: list[RemoteComment], kind: str) -> None:
    """Update linked comments and append unseen ones. Never deletes."""
    linked = {c.links[kind]: c for c in task.comments if c.links.get(kind)}
    for remote in comments:
        local = linked.get(remote.id)
        if local is None:
            props = {}
            if remote.author:
                props[AUTHOR] = remote.author
            props[CREATED] = remote.created or now_timestamp()
            task.add_comment(Comment(text=remote.body, props=props, links={kind: remote.id}))
            continue
        local.text = remote.body
        if remote.author:
            local.props[AUTHOR] = remote.author


@dataclass
class ApplyPull(Operation):
    """Returns [(remote id, task id, action)] in input order."""

    kind: str
    pulled: list[PulledIssue]
    mapping: StatusMapping
    labels: dict[str, RemoteLabel] | None = None

    def apply(self, state: RepositoryState) -> list[tuple[str, int, str]]:
        by_link = {task.links[self.kind]: task_id for task_id, task in state.tasks.items() if task.links.get(self.kind)}
        outcome: list[tuple[str, int, str]] = []
        for item in self.pulled:
            issue = item.issue
            task_id = by_link.get(issue.id)
            if task_id is None:
                task = Task(props={CREATED: issue.created or now_timestamp()}, links={self.kind: issue.id})
                self._merge(task, item)
                task.id = state.next_id()
                state.put(task)
                by_link[issue.id] = task.id
                outcome.append((issue.id, task.id, ACTION_CREATED))
                continue
            task = state.tasks[task_id]
            before = task.to_dict()
            self._merge(task, item)
            if task.to_dict() == before:
                outcome.append((issue.id, task_id, UNCHANGED))
            else:
                state.touch(task_id)
                outcome.append((issue.id, task_id, UPDATED))
        return outcome

    def _merge(self, task: Task, item: PulledIssue) -> None:
        merge_issue(task, item.issue, self.mapping, with_labels=self.labels is not None)
        if item.comments is not None:
            merge_comments(task, item.comments, self.kind)


@dataclass
class AddPulledLabels(Operation):
    """Catalog entries for labels first seen on the remote. Existing entries are kept."""

    kind: str
    names: list[str]
    catalog: dict[str, RemoteLabel]

    def apply(self, state: RepositoryState) -> list[str]:
        added = []
        for name in self.names:
            if name not in state.labels:
                state.put_label(local_label(name, self.catalog.get(name), self.kind))
                added.append(name)
        return added


def _fetch(tracker: RemoteTracker, issue: RemoteIssue, with_comments: bool) -> PulledIssue:
    if not with_comments:
        return PulledIssue(issue)
    if issue.comment_count == 0:
        return PulledIssue(issue, [])
    try:
        return PulledIssue(issue, list(tracker.list_comments(issue.id)))
    except UnsupportedOperationError as exc:
        log.warning("%s", exc)
        return PulledIssue(issue)


def pull(
    repo: TaskRepository,
    tracker: RemoteTracker,
    config: TaskConfig,
    ids: list[str] | None = None,
    status: str | None = None,
    limit: int | None = None,
    with_comments: bool = True,
    with_labels: bool = True,
) -> SyncReport:
    kind = tracker.kind
    mapping = config.status_mapping(kind)
    report = SyncReport(kind, tracker.location)

    is_open: bool | None = None
    if status:
        is_open = mapping.to_remote(config.statuses, config.statuses.resolve(status))

    pulled: list[PulledIssue] = []
    if ids is not None:
        for remote_id in ids[:limit]:
            try:
                issue = tracker.get_issue(remote_id)
                if is_open is None or issue.is_open == is_open:
                    pulled.append(_fetch(tracker, issue, with_comments))
            except GitTaskError as exc:
                report.add(ItemResult.failure(None, exc, remote_id=remote_id))
    else:
        try:
            for issue in tracker.list_issues(IssueFilter(is_open=is_open, limit=limit)):
                try:
                    pulled.append(_fetch(tracker, issue, with_comments))
                except GitTaskError as exc:
                    report.add(ItemResult.failure(None, exc, remote_id=issue.id))
        except GitTaskError as exc:
            # Listing broke off; what already arrived is still merged
            report.add(ItemResult.failure(None, exc))

    if not pulled:
        return report

    catalog: dict[str, RemoteLabel] = {}
    names = sorted({name for item in pulled for name in item.issue.labels}) if with_labels else []
    if names:
        try:
            catalog = remote_label_catalog(tracker)
        except GitTaskError as exc:
            log.warning("label details unavailable: %s", exc)

    operations: list[Operation] = [
        ApplyPull(kind, pulled, mapping, labels=catalog if with_labels else None),
        AddPulledLabels(kind, names, catalog),
    ]
    result = repo.apply(operations, f"git-task: pull from {kind} {tracker.location}".rstrip())
    for remote_id, task_id, action in result.values[0]:
        report.add(ItemResult(task_id, action, remote_id=remote_id))
    if result.changed:
        report.commit_id = result.commit_id
    return report
