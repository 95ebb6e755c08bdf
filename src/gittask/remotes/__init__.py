"""Remote tracker backends and discovery from git remote URLs."""

from __future__ import annotations

import httpx

from gittask.config import TaskConfig
from gittask.errors import NotFoundError, ValidationError
from gittask.remotes.base import (
    IssueFields,
    IssueFilter,
    RemoteComment,
    RemoteIssue,
    RemoteLabel,
    RemoteTracker,
)
from gittask.remotes.github import GitHubTracker
from gittask.remotes.gitlab import GitLabTracker

TRACKERS: dict[str, type[RemoteTracker]] = {
    GitHubTracker.kind: GitHubTracker,
    GitLabTracker.kind: GitLabTracker,
}


def match_remotes(
    remote_urls: dict[str, str],
    connector: str | None = None,
    remote: str | None = None,
) -> list[tuple[str, str, str]]:
    """(kind, owner, repo) for every git remote URL a backend recognizes."""
    if connector is not None and connector not in TRACKERS:
        raise ValidationError(f"Unknown connector '{connector}'. Valid: {', '.join(sorted(TRACKERS))}")
    if remote is not None:
        if remote not in remote_urls:
            raise NotFoundError(f"No git remote named '{remote}'")
        remote_urls = {remote: remote_urls[remote]}
    kinds = [connector] if connector else list(TRACKERS)

    matches: list[tuple[str, str, str]] = []
    for _name, url in sorted(remote_urls.items()):
        for kind in kinds:
            found = TRACKERS[kind].supports_remote(url)
            if found and (kind, *found) not in matches:
                matches.append((kind, *found))
    return matches


def resolve_tracker(
    config: TaskConfig,
    remote_urls: dict[str, str],
    connector: str | None = None,
    remote: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> RemoteTracker:
    """Build the one backend the git remotes point at."""
    matches = match_remotes(remote_urls, connector, remote)
    if not matches:
        raise ValidationError("No git remote matches a supported tracker (github, gitlab)")
    if len(matches) > 1:
        found = ", ".join(f"{kind}:{owner}/{repo}" for kind, owner, repo in matches)
        raise ValidationError(f"More than one matching remote ({found}). Select one with --remote")
    kind, owner, repo = matches[0]
    tracker_cls = TRACKERS[kind]
    return tracker_cls(
        owner,
        repo,
        token=config.tracker_token(kind),
        base_url=config.tracker_url(kind),
        transport=transport,
    )


__all__ = [
    "TRACKERS",
    "GitHubTracker",
    "GitLabTracker",
    "IssueFields",
    "IssueFilter",
    "RemoteComment",
    "RemoteIssue",
    "RemoteLabel",
    "RemoteTracker",
    "match_remotes",
    "resolve_tracker",
]
