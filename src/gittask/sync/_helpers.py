"""Shared helpers for pull and push: link recording and label translation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gittask.defaults import DEFAULT_LABEL_COLOR
from gittask.errors import GitTaskError, UnsupportedOperationError
from gittask.models import Label
from gittask.remotes.base import RemoteLabel, RemoteTracker
from gittask.repository import Operation, RepositoryState
from gittask.sync.report import FAILED, SKIPPED, UPDATED, ItemResult

log = logging.getLogger(__name__)


@dataclass
class SetLink(Operation):
    """Record a remote id on a task (or one of its comments).

    Returns False instead of raising when the target vanished, so one
    missing task never blocks the links of its siblings.
    """

    task_id: int
    kind: str
    remote_id: str
    comment_id: int | None = None

    def apply(self, state: RepositoryState) -> bool:
        task = state.tasks.get(self.task_id)
        if task is None:
            return False
        if self.comment_id is None:
            holder = task.links
        else:
            comment = task.find_comment(self.comment_id)
            if comment is None:
                return False
            holder = comment.links
        if holder.get(self.kind) != self.remote_id:
            holder[self.kind] = self.remote_id
            state.touch(self.task_id)
        return True


def remote_label_names(tracker: RemoteTracker) -> set[str] | None:
    """Names of the tracker's labels, or None when it cannot list them."""
    try:
        return {label.name for label in tracker.list_labels()}
    except UnsupportedOperationError:
        return None


def remote_label_catalog(tracker: RemoteTracker) -> dict[str, RemoteLabel]:
    try:
        return {label.name: label for label in tracker.list_labels()}
    except UnsupportedOperationError as exc:
        log.warning("%s", exc)
        return {}


def local_label(name: str, remote: RemoteLabel | None, kind: str) -> Label:
    """Catalog entry for a label first seen on a remote issue."""
    if remote is None:
        return Label(name=name)
    return Label(
        name=name,
        color=remote.color or DEFAULT_LABEL_COLOR,
        description=remote.description,
        links={kind: remote.id or remote.name},
    )


def ensure_remote_labels(
    tracker: RemoteTracker,
    names: set[str],
    catalog: dict[str, Label],
    update: bool = False,
) -> tuple[set[str] | None, list[ItemResult], dict[str, str]]:
    """Create labels the tracker lacks. Returns (usable names, results to report, new label links).

    With update=True a label the tracker already has gets the catalog's
    color and description. Usable names are None when the tracker's labels
    could not be listed, which leaves remote label sets untouched.
    """
    if not names:
        return set(), [], {}
    try:
        existing = remote_label_names(tracker)
    except GitTaskError as exc:
        log.warning("listing %s labels failed: %s", tracker.kind, exc)
        return None, [ItemResult(None, FAILED, kind=exc.kind, message=f"listing labels: {exc}")], {}
    usable: set[str] = set()
    results: list[ItemResult] = []
    links: dict[str, str] = {}
    for name in sorted(names):
        label = catalog.get(name) or Label(name=name)
        remote = RemoteLabel(label.name, label.color, label.description)
        try:
            if existing is not None and name in existing:
                if update:
                    tracker.update_label(remote)
                    results.append(ItemResult(None, UPDATED, remote_id=name, message=f"label '{name}'"))
            else:
                links[name] = tracker.create_label(remote)
        except UnsupportedOperationError as exc:
            log.warning("label '%s' skipped: %s", name, exc)
            results.append(ItemResult(None, SKIPPED, remote_id=name, kind=exc.kind, message=str(exc)))
            if name not in (existing or ()):
                continue
        except GitTaskError as exc:
            results.append(ItemResult(None, FAILED, remote_id=name, kind=exc.kind, message=f"label '{name}': {exc}"))
            if name not in (existing or ()):
                continue
        usable.add(name)
    return usable, results, links


@dataclass
class SetLabelLink(Operation):
    name: str
    kind: str
    remote_id: str

    def apply(self, state: RepositoryState) -> bool:
        label = state.labels.get(self.name)
        if label is None:
            return False
        if label.links.get(self.kind) != self.remote_id:
            label.links[self.kind] = self.remote_id
            state.put_label(label)
        return True

