"""Shared constants: env var names, config keys, defaults, resolvers.

Single source of truth for names and fallbacks across all gittask modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Env var names
# ---------------------------------------------------------------------------

ENV_REF = "GIT_TASK_REF"
ENV_NO_COLOR = "NO_COLOR"

# Per tracker kind, first match wins
TOKEN_ENV_VARS: dict[str, tuple[str, ...]] = {
    "github": ("GITHUB_TOKEN", "GITHUB_API_TOKEN"),
    "gitlab": ("GITLAB_TOKEN", "GITLAB_API_TOKEN"),
}

# ---------------------------------------------------------------------------
# Config keys
# ---------------------------------------------------------------------------

KEY_REF = "task.ref"
KEY_LIST_SORT = "task.list.sort"
KEY_LIST_COLUMNS = "task.list.columns"
KEY_STATUS_OPEN = "task.status.open"
KEY_STATUS_CLOSED = "task.status.closed"
KEY_STATUSES = "task.statuses"
KEY_PROPERTIES = "task.properties"
KEY_COLOR_UI = "color.ui"

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_REF = "refs/tasks/tasks"
DEFAULT_LIST_SORT = "id desc"
DEFAULT_LIST_COLUMNS = "id, created, status, name"

# Attempts for one repository transaction before ConcurrentModification
MAX_TRANSACTION_ATTEMPTS = 5

# Remote calls issued in parallel during push
DEFAULT_PUSH_WORKERS = 4

HTTP_TIMEOUT = 30.0

# Tree layout inside the task ref
TASKS_DIR = "tasks"
LABELS_DIR = "labels"
SEQUENCE_PATH = "meta/sequence"

DEFAULT_LABEL_COLOR = "ededed"

# Text style flags accepted for statuses and properties (comma-combinable)
STYLE_FLAGS = ("bold", "dim", "italic", "underline", "blink", "reverse", "strikethrough")

DEFAULT_STATUSES: list[dict[str, object]] = [
    {"name": "OPEN", "shortcut": "o", "color": "red", "style": None, "is_done": False},
    {"name": "IN_PROGRESS", "shortcut": "i", "color": "yellow", "style": None, "is_done": False},
    {"name": "CLOSED", "shortcut": "c", "color": "green", "style": None, "is_done": True},
]

DEFAULT_PROPERTIES: list[dict[str, object]] = [
    {"name": "id", "value_type": "integer", "color": "bright_black"},
    {"name": "name", "value_type": "string", "color": "reset"},
    {"name": "created", "value_type": "datetime", "color": "bright_black"},
    {"name": "author", "value_type": "string", "color": "cyan"},
    {"name": "description", "value_type": "text", "color": "reset"},
]

# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def tracker_key(kind: str, name: str) -> str:
    """Config key for a tracker-specific setting: task.<kind>.<name>."""
    return f"task.{kind}.{name}"


def resolve_token(kind: str) -> str | None:
    """Resolve a tracker token from the environment, or None."""
    for var in TOKEN_ENV_VARS.get(kind, ()):
        value = os.getenv(var)
        if value:
            return value
    return None


def resolve_repo_dir(repo_dir: str | Path | None = None) -> Path:
    """Resolve the working directory git commands run in."""
    return Path(repo_dir).expanduser() if repo_dir else Path.cwd()


def normalize_ref(value: str) -> str:
    """Expand ref shorthand: name -> refs/heads/name, a/b -> refs/a/b."""
    if "/" not in value:
        return f"refs/heads/{value}"
    if value.count("/") == 1 and not value.startswith("/") and not value.endswith("/"):
        return f"refs/{value}"
    return value
