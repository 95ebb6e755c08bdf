"""Shared fixtures: a throwaway git repository and an in-memory tracker."""

from __future__ import annotations

import shutil
import subprocess
import threading
from pathlib import Path
from typing import Iterator

import pytest

from gittask.errors import GitTaskError, NotFoundError
from gittask.remotes.base import (
    IssueFields,
    IssueFilter,
    RemoteComment,
    RemoteIssue,
    RemoteLabel,
    RemoteTracker,
)
from gittask.tasks import open_workspace


@pytest.fixture
def git_repo(tmp_path, monkeypatch) -> Path:
    """Fresh `git init` with a fixed identity and no global config."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    for var in ("GIT_AUTHOR_NAME", "GIT_COMMITTER_NAME"):
        monkeypatch.setenv(var, "Test User")
    for var in ("GIT_AUTHOR_EMAIL", "GIT_COMMITTER_EMAIL"):
        monkeypatch.setenv(var, "test@example.com")
    for var in ("GIT_TASK_REF", "GITHUB_TOKEN", "GITHUB_API_TOKEN", "GITLAB_TOKEN", "GITLAB_API_TOKEN", "NO_COLOR"):
        monkeypatch.delenv(var, raising=False)

    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", "-q", str(repo)], check=True)
    subprocess.run(["git", "-C", str(repo), "config", "user.name", "Test User"], check=True)
    return repo


@pytest.fixture
def ws(git_repo):
    return open_workspace(git_repo)


class FakeTracker(RemoteTracker):
    """Thread-safe in-memory tracker.

    `fail` maps (method, key) to an exception raised on that call; the key
    is the issue title for create_issue and the remote id elsewhere.
    """

    kind = "github"

    def __init__(self, labels: bool = True):
        self.issues: dict[str, RemoteIssue] = {}
        self.comments: dict[str, list[RemoteComment]] = {}
        self.labels: dict[str, RemoteLabel] | None = {} if labels else None
        self.fail: dict[tuple[str, str], GitTaskError] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()
        self._next = 1

    @property
    def location(self) -> str:
        return "acme/widgets"

    def _record(self, method: str, key: str) -> None:
        with self._lock:
            self.calls.append((method, key))
        exc = self.fail.get((method, key))
        if exc is not None:
            raise exc

    def called(self, method: str) -> list[str]:
        return [key for name, key in self.calls if name == method]

    def _new_id(self) -> str:
        with self._lock:
            value = str(self._next)
            self._next += 1
        return value

    # --- seeding ---

    def add_issue(self, title: str, body: str = "", is_open: bool = True, labels: list[str] | None = None,
                  author: str = "octocat", created: str = "1700000000") -> RemoteIssue:
        issue = RemoteIssue(self._new_id(), title, body, author, created, is_open, list(labels or []))
        self.issues[issue.id] = issue
        self.comments[issue.id] = []
        return issue

    def add_remote_comment(self, remote_id: str, body: str, author: str = "octocat") -> RemoteComment:
        comment = RemoteComment(self._new_id(), body, author, "1700000100")
        self.comments[remote_id].append(comment)
        self.issues[remote_id].comment_count += 1
        return comment

    # --- issues ---

    def list_issues(self, filt: IssueFilter | None = None) -> Iterator[RemoteIssue]:
        filt = filt or IssueFilter()
        self._record("list_issues", "")
        count = 0
        for issue in list(self.issues.values()):
            if filt.is_open is not None and issue.is_open != filt.is_open:
                continue
            if filt.limit is not None and count >= filt.limit:
                return
            count += 1
            yield issue

    def get_issue(self, remote_id: str) -> RemoteIssue:
        self._record("get_issue", remote_id)
        issue = self.issues.get(remote_id)
        if issue is None:
            raise NotFoundError(f"github issue {remote_id} not found")
        return issue

    def create_issue(self, fields: IssueFields) -> str:
        self._record("create_issue", fields.title)
        issue = self.add_issue(fields.title, fields.body, fields.is_open, fields.labels, author="me")
        return issue.id

    def update_issue(self, remote_id: str, fields: IssueFields) -> None:
        self._record("update_issue", remote_id)
        issue = self.get_issue(remote_id)
        issue.title, issue.body, issue.is_open = fields.title, fields.body, fields.is_open
        if fields.labels is not None:
            issue.labels = list(fields.labels)

    def delete_issue(self, remote_id: str) -> None:
        self._record("delete_issue", remote_id)
        if self.issues.pop(remote_id, None) is None:
            raise NotFoundError(f"github issue {remote_id} not found")

    # --- comments ---

    def list_comments(self, remote_id: str) -> Iterator[RemoteComment]:
        self._record("list_comments", remote_id)
        yield from list(self.comments.get(remote_id, []))

    def create_comment(self, remote_id: str, body: str) -> str:
        self._record("create_comment", remote_id)
        return self.add_remote_comment(remote_id, body, author="me").id

    def update_comment(self, remote_id: str, comment_id: str, body: str) -> None:
        self._record("update_comment", comment_id)
        for comment in self.comments[remote_id]:
            if comment.id == comment_id:
                comment.body = body

    # --- labels ---

    def list_labels(self) -> Iterator[RemoteLabel]:
        if self.labels is None:
            raise self._unsupported("listing labels")
        self._record("list_labels", "")
        yield from list(self.labels.values())

    def create_label(self, label: RemoteLabel) -> str:
        if self.labels is None:
            raise self._unsupported("creating labels")
        self._record("create_label", label.name)
        label.id = f"L{len(self.labels) + 1}"
        self.labels[label.name] = label
        return label.id

    def update_label(self, label: RemoteLabel) -> None:
        if self.labels is None:
            raise self._unsupported("updating labels")
        self._record("update_label", label.name)
        label.id = self.labels[label.name].id
        self.labels[label.name] = label


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()
