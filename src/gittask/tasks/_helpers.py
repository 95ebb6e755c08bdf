"""Shared helpers for task operations."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import httpx

from gittask.config import GitConfigStore, TaskConfig, load_config
from gittask.errors import NotFoundError, ValidationError
from gittask.gitstore import GitObjectStore
from gittask.models import Label, Task
from gittask.remotes import RemoteTracker, resolve_tracker
from gittask.repository import TaskRepository
from gittask.selectors import build_filter, parse_ids
from gittask.sync.report import SyncReport


@dataclass
class Workspace:
    """Everything one command needs: the object store, git config, and the repository."""

    store: GitObjectStore
    config_store: GitConfigStore
    config: TaskConfig
    repo: TaskRepository

    @contextmanager
    def tracker(
        self,
        connector: str | None = None,
        remote: str | None = None,
        tracker: RemoteTracker | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> Iterator[RemoteTracker]:
        """The given tracker, or the one the git remotes point at (closed afterwards)."""
        if tracker is not None:
            yield tracker
            return
        resolved = resolve_tracker(self.config, self.config_store.remote_urls(), connector, remote, transport)
        try:
            yield resolved
        finally:
            resolved.close()


def open_workspace(repo_dir: str | Path | None = None) -> Workspace:
    store = GitObjectStore(repo_dir)
    if not store.is_repository():
        raise NotFoundError(f"{store.repo_dir} is not inside a git repository")
    config_store = GitConfigStore(repo_dir)
    config = load_config(config_store)
    return Workspace(store, config_store, config, TaskRepository(store, config))


def select_ids(ws: Workspace, selector: str | None = None, status: str | tuple[str, ...] | None = None) -> list[int]:
    """Existing task ids named by a selector and/or status filter."""
    if not selector and not status:
        raise ValidationError("Give task ids or a --status filter")
    filt = build_filter(ws.config.statuses, selector=selector, status=status or None)
    return [task.id for task in filt.apply(ws.repo.load_all())]


def require_ids(selector: str) -> list[int]:
    ids = parse_ids(selector)
    if not ids:
        raise ValidationError("No task ids given")
    return ids


def task_record(task: Task, catalog: dict[str, Label] | None = None) -> dict[str, Any]:
    """Task as a dict, labels expanded to full label objects."""
    data = task.to_dict()
    catalog = catalog or {}
    data["labels"] = [(catalog.get(name) or Label(name)).to_dict() for name in task.labels]
    return data


def with_report(result: dict[str, Any], report: SyncReport, key: str = "sync") -> dict[str, Any]:
    """Attach a sync report; an `error` entry makes the CLI exit non-zero."""
    result[key] = report.to_dict()
    failures = report.failures
    if failures:
        result["error"] = f"{len(failures)} remote item(s) failed"
        result["kind"] = failures[0].kind
    return result
