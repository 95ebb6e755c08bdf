"""Configuration: git's native key/value store and the explicit TaskConfig value.

TaskConfig is built once per invocation by load_config() and handed to the
repository, the renderer and the sync engine. Status and property tables are
persisted as JSON strings under task.statuses / task.properties.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from gittask import defaults
from gittask.errors import EncodingError, ObjectStoreError
from gittask.gitstore import run_git
from gittask.properties import PropertyTable
from gittask.statuses import StatusMapping, StatusTable


class GitConfigStore:
    """Read/write named keys in the repository's local git config."""

    def __init__(self, repo_dir: str | Path | None = None, git: str = "git"):
        self.repo_dir = defaults.resolve_repo_dir(repo_dir)
        self._git_bin = git

    def get(self, key: str) -> str | None:
        result = run_git(self.repo_dir, "config", "--get", key, check=False, git=self._git_bin)
        if result.returncode == 1:
            return None
        if result.returncode != 0:
            raise ObjectStoreError(f"git config --get {key} failed: {result.stderr.decode(errors='replace').strip()}")
        return result.stdout.decode("utf-8").rstrip("\n")

    def set(self, key: str, value: str) -> None:
        run_git(self.repo_dir, "config", "--local", key, value, git=self._git_bin)

    def unset(self, key: str) -> bool:
        result = run_git(self.repo_dir, "config", "--local", "--unset", key, check=False, git=self._git_bin)
        return result.returncode == 0

    def items(self, pattern: str) -> dict[str, str]:
        """All keys matching a regex, e.g. r'^remote\\..*\\.url$'."""
        result = run_git(self.repo_dir, "config", "--get-regexp", pattern, check=False, git=self._git_bin)
        found: dict[str, str] = {}
        for line in result.stdout.decode("utf-8").splitlines():
            key, _, value = line.partition(" ")
            found[key] = value
        return found

    def remote_urls(self) -> dict[str, str]:
        """git remote name -> fetch URL."""
        urls = self.items(r"^remote\..*\.url$")
        return {key[len("remote."):-len(".url")]: url for key, url in urls.items()}


def _parse_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class TaskConfig:
    ref: str = defaults.DEFAULT_REF
    list_sort: list[str] = field(default_factory=lambda: _parse_list(defaults.DEFAULT_LIST_SORT))
    list_columns: list[str] = field(default_factory=lambda: _parse_list(defaults.DEFAULT_LIST_COLUMNS))
    statuses: StatusTable = field(default_factory=StatusTable)
    properties: PropertyTable = field(default_factory=PropertyTable)
    # Flat task.* keys not covered above: task.status.open, task.<kind>.url, ...
    values: dict[str, str] = field(default_factory=dict)
    author: str = ""
    color: bool = True

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.values.get(key, default)

    def status_mapping(self, kind: str | None = None) -> StatusMapping:
        """Open/closed binding for a tracker kind, falling back to the global keys."""
        open_status = closed_status = None
        if kind:
            open_status = self.values.get(defaults.tracker_key(kind, "status.open"))
            closed_status = self.values.get(defaults.tracker_key(kind, "status.closed"))
        open_status = open_status or self.values.get(defaults.KEY_STATUS_OPEN) or self.statuses.default_open
        closed_status = closed_status or self.values.get(defaults.KEY_STATUS_CLOSED) or self.statuses.default_closed
        return StatusMapping(open=open_status, closed=closed_status)

    def tracker_url(self, kind: str) -> str | None:
        return self.values.get(defaults.tracker_key(kind, "url"))

    def tracker_token(self, kind: str) -> str | None:
        return defaults.resolve_token(kind) or self.values.get(defaults.tracker_key(kind, "token"))


def load_config(store: GitConfigStore) -> TaskConfig:
    """Build a TaskConfig from git config and the environment."""
    values = store.items(r"^task\.")
    values.pop(defaults.KEY_STATUSES, None)
    values.pop(defaults.KEY_PROPERTIES, None)

    config = TaskConfig(
        ref=os.getenv(defaults.ENV_REF) or store.get(defaults.KEY_REF) or defaults.DEFAULT_REF,
        values=values,
        author=store.get("user.name") or "",
    )
    if defaults.KEY_LIST_SORT in values:
        config.list_sort = _parse_list(values[defaults.KEY_LIST_SORT])
    if defaults.KEY_LIST_COLUMNS in values:
        config.list_columns = _parse_list(values[defaults.KEY_LIST_COLUMNS])

    raw_statuses = store.get(defaults.KEY_STATUSES)
    if raw_statuses:
        config.statuses = StatusTable.from_list(_loads(raw_statuses, defaults.KEY_STATUSES))
    raw_properties = store.get(defaults.KEY_PROPERTIES)
    if raw_properties:
        config.properties = PropertyTable.from_list(_loads(raw_properties, defaults.KEY_PROPERTIES))

    config.color = (store.get(defaults.KEY_COLOR_UI) or "true").lower() != "false" and os.getenv(
        defaults.ENV_NO_COLOR, "0"
    ) != "1"
    return config


def _loads(raw: str, key: str) -> object:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EncodingError(f"git config {key} is not valid JSON: {exc}") from exc


def save_statuses(store: GitConfigStore, table: StatusTable) -> None:
    store.set(defaults.KEY_STATUSES, json.dumps(table.to_list()))


def save_properties(store: GitConfigStore, table: PropertyTable) -> None:
    store.set(defaults.KEY_PROPERTIES, json.dumps(table.to_list()))
