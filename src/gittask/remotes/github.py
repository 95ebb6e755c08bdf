"""GitHub backend: REST v3 for issues, comments and labels, GraphQL for issue deletion."""

from __future__ import annotations

import re
from typing import Any, Iterator
from urllib.parse import quote

import httpx

from gittask.errors import NotFoundError, RemoteFailureError
from gittask.remotes.base import (
    HttpTracker,
    IssueFields,
    IssueFilter,
    RemoteComment,
    RemoteIssue,
    RemoteLabel,
    iso_to_epoch,
    required,
)

DEFAULT_API_URL = "https://api.github.com"

_DELETE_ISSUE = "mutation($id: ID!) { deleteIssue(input: {issueId: $id}) { clientMutationId } }"


class GitHubTracker(HttpTracker):
    kind = "github"
    url_patterns = (
        re.compile(r"^(?:https://|ssh://git@|git@)github\.com[/:](?P<owner>[\w.-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"),
    )

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/vnd.github+json", "X-GitHub-Api-Version": "2022-11-28"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(base_url or DEFAULT_API_URL, headers=headers, transport=transport)
        self.owner = owner
        self.repo = repo
        self._prefix = f"/repos/{owner}/{repo}"

    @property
    def location(self) -> str:
        return f"{self.owner}/{self.repo}"

    # --- issues ---

    def list_issues(self, filt: IssueFilter | None = None) -> Iterator[RemoteIssue]:
        filt = filt or IssueFilter()
        if filt.ids is not None:
            yield from (self.get_issue(remote_id) for remote_id in filt.ids[: filt.limit])
            return
        params: dict[str, Any] = {"state": _state_param(filt.is_open), "direction": "asc"}
        if filt.since:
            params["since"] = filt.since.strftime("%Y-%m-%dT%H:%M:%SZ")
        count = 0
        for item in self._paginate(f"{self._prefix}/issues", params):
            # The issues endpoint also returns pull requests
            if "pull_request" in item:
                continue
            if filt.limit is not None and count >= filt.limit:
                return
            count += 1
            yield _issue(item)

    def get_issue(self, remote_id: str) -> RemoteIssue:
        item = self._json("GET", f"{self._prefix}/issues/{remote_id}")
        if isinstance(item, dict) and "pull_request" in item:
            raise NotFoundError(f"github #{remote_id} is a pull request, not an issue")
        return _issue(item)

    def create_issue(self, fields: IssueFields) -> str:
        payload: dict[str, Any] = {"title": fields.title, "body": fields.body}
        if fields.labels:
            payload["labels"] = fields.labels
        item = self._json("POST", f"{self._prefix}/issues", json=payload)
        number = str(required(item, "number", self.kind))
        if not fields.is_open:
            self._finish_create(number, "PATCH", f"{self._prefix}/issues/{number}", {"state": "closed"})
        return number

    def update_issue(self, remote_id: str, fields: IssueFields) -> None:
        payload: dict[str, Any] = {
            "title": fields.title,
            "body": fields.body,
            "state": "open" if fields.is_open else "closed",
        }
        if fields.labels is not None:
            payload["labels"] = fields.labels
        self._json("PATCH", f"{self._prefix}/issues/{remote_id}", json=payload)

    def delete_issue(self, remote_id: str) -> None:
        item = self._json("GET", f"{self._prefix}/issues/{remote_id}")
        node_id = required(item, "node_id", self.kind)
        result = self._json("POST", self._graphql_url(), json={"query": _DELETE_ISSUE, "variables": {"id": node_id}})
        errors = (result or {}).get("errors")
        if errors:
            raise RemoteFailureError(f"deleteIssue #{remote_id}: {errors[0].get('message', errors)}", self.kind)

    def _graphql_url(self) -> str:
        # GitHub Enterprise serves REST under /api/v3 and GraphQL under /api/graphql
        if self.base_url.endswith("/api/v3"):
            return self.base_url[: -len("/v3")] + "/graphql"
        return f"{self.base_url}/graphql"

    # --- comments ---

    def list_comments(self, remote_id: str) -> Iterator[RemoteComment]:
        for item in self._paginate(f"{self._prefix}/issues/{remote_id}/comments"):
            yield RemoteComment(
                id=str(required(item, "id", self.kind)),
                body=item.get("body") or "",
                author=(item.get("user") or {}).get("login", ""),
                created=iso_to_epoch(item.get("created_at")),
            )

    def create_comment(self, remote_id: str, body: str) -> str:
        item = self._json("POST", f"{self._prefix}/issues/{remote_id}/comments", json={"body": body})
        return str(required(item, "id", self.kind))

    def update_comment(self, remote_id: str, comment_id: str, body: str) -> None:
        self._json("PATCH", f"{self._prefix}/issues/comments/{comment_id}", json={"body": body})

    def delete_comment(self, remote_id: str, comment_id: str) -> None:
        self._request("DELETE", f"{self._prefix}/issues/comments/{comment_id}")

    # --- labels ---

    def list_labels(self) -> Iterator[RemoteLabel]:
        for item in self._paginate(f"{self._prefix}/labels"):
            yield RemoteLabel(
                name=required(item, "name", self.kind),
                color=item.get("color") or "",
                description=item.get("description") or "",
                id=str(item.get("id", "")),
            )

    def create_label(self, label: RemoteLabel) -> str:
        item = self._json(
            "POST",
            f"{self._prefix}/labels",
            json={"name": label.name, "color": label.color.lstrip("#"), "description": label.description},
        )
        return str(item.get("id", label.name))

    def update_label(self, label: RemoteLabel) -> None:
        self._json(
            "PATCH",
            f"{self._prefix}/labels/{quote(label.name, safe='')}",
            json={"color": label.color.lstrip("#"), "description": label.description},
        )


def _state_param(is_open: bool | None) -> str:
    if is_open is None:
        return "all"
    return "open" if is_open else "closed"


def _issue(item: dict[str, Any]) -> RemoteIssue:
    return RemoteIssue(
        id=str(required(item, "number", "github")),
        title=item.get("title") or "",
        body=item.get("body") or "",
        author=(item.get("user") or {}).get("login", ""),
        created=iso_to_epoch(item.get("created_at")),
        is_open=item.get("state") == "open",
        labels=[label["name"] if isinstance(label, dict) else str(label) for label in item.get("labels") or []],
        comment_count=int(item.get("comments") or 0),
    )
