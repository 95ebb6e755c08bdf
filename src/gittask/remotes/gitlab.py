"""GitLab backend: REST v4. Issues are addressed by their project-scoped iid."""

from __future__ import annotations

import re
from typing import Any, Iterator
from urllib.parse import quote

import httpx

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

DEFAULT_API_URL = "https://gitlab.com/api/v4"


class GitLabTracker(HttpTracker):
    kind = "gitlab"
    url_patterns = (
        re.compile(
            r"^(?:https://|ssh://git@|git@)(?:[\w.-]*\.)?gitlab\.[\w.]+[/:](?P<owner>[\w./-]+)/(?P<repo>[\w.-]+?)(?:\.git)?/?$"
        ),
    )

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        base_url: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"PRIVATE-TOKEN": token} if token else {}
        super().__init__(base_url or DEFAULT_API_URL, headers=headers, transport=transport)
        self.owner = owner
        self.repo = repo
        self._prefix = f"/projects/{quote(f'{owner}/{repo}', safe='')}"

    @property
    def location(self) -> str:
        return f"{self.owner}/{self.repo}"

    # --- issues ---

    def list_issues(self, filt: IssueFilter | None = None) -> Iterator[RemoteIssue]:
        filt = filt or IssueFilter()
        if filt.ids is not None:
            yield from (self.get_issue(remote_id) for remote_id in filt.ids[: filt.limit])
            return
        params: dict[str, Any] = {"sort": "asc", "order_by": "created_at"}
        if filt.is_open is not None:
            params["state"] = "opened" if filt.is_open else "closed"
        if filt.since:
            params["updated_after"] = filt.since.strftime("%Y-%m-%dT%H:%M:%SZ")
        for count, item in enumerate(self._paginate(f"{self._prefix}/issues", params)):
            if filt.limit is not None and count >= filt.limit:
                return
            yield _issue(item)

    def get_issue(self, remote_id: str) -> RemoteIssue:
        return _issue(self._json("GET", f"{self._prefix}/issues/{remote_id}"))

    def create_issue(self, fields: IssueFields) -> str:
        payload: dict[str, Any] = {"title": fields.title, "description": fields.body}
        if fields.labels:
            payload["labels"] = ",".join(fields.labels)
        item = self._json("POST", f"{self._prefix}/issues", json=payload)
        iid = str(required(item, "iid", self.kind))
        if not fields.is_open:
            self._finish_create(iid, "PUT", f"{self._prefix}/issues/{iid}", {"state_event": "close"})
        return iid

    def update_issue(self, remote_id: str, fields: IssueFields) -> None:
        payload: dict[str, Any] = {
            "title": fields.title,
            "description": fields.body,
            "state_event": "reopen" if fields.is_open else "close",
        }
        if fields.labels is not None:
            payload["labels"] = ",".join(fields.labels)
        self._json("PUT", f"{self._prefix}/issues/{remote_id}", json=payload)

    def delete_issue(self, remote_id: str) -> None:
        self._request("DELETE", f"{self._prefix}/issues/{remote_id}")

    # --- comments (notes) ---

    def list_comments(self, remote_id: str) -> Iterator[RemoteComment]:
        for item in self._paginate(f"{self._prefix}/issues/{remote_id}/notes", {"sort": "asc"}):
            # System notes record label/state changes, not user comments
            if item.get("system"):
                continue
            yield RemoteComment(
                id=str(required(item, "id", self.kind)),
                body=item.get("body") or "",
                author=(item.get("author") or {}).get("username", ""),
                created=iso_to_epoch(item.get("created_at")),
            )

    def create_comment(self, remote_id: str, body: str) -> str:
        item = self._json("POST", f"{self._prefix}/issues/{remote_id}/notes", json={"body": body})
        return str(required(item, "id", self.kind))

    def update_comment(self, remote_id: str, comment_id: str, body: str) -> None:
        self._json("PUT", f"{self._prefix}/issues/{remote_id}/notes/{comment_id}", json={"body": body})

    def delete_comment(self, remote_id: str, comment_id: str) -> None:
        self._request("DELETE", f"{self._prefix}/issues/{remote_id}/notes/{comment_id}")

    # --- labels ---

    def list_labels(self) -> Iterator[RemoteLabel]:
        for item in self._paginate(f"{self._prefix}/labels"):
            yield RemoteLabel(
                name=required(item, "name", self.kind),
                color=(item.get("color") or "").lstrip("#"),
                description=item.get("description") or "",
                id=str(item.get("id", "")),
            )

    def create_label(self, label: RemoteLabel) -> str:
        item = self._json(
            "POST",
            f"{self._prefix}/labels",
            json={"name": label.name, "color": f"#{label.color.lstrip('#')}", "description": label.description},
        )
        return str(item.get("id", label.name))

    def update_label(self, label: RemoteLabel) -> None:
        self._json(
            "PUT",
            f"{self._prefix}/labels/{quote(label.name, safe='')}",
            json={"color": f"#{label.color.lstrip('#')}", "description": label.description},
        )


def _issue(item: dict[str, Any]) -> RemoteIssue:
    return RemoteIssue(
        id=str(required(item, "iid", "gitlab")),
        title=item.get("title") or "",
        body=item.get("description") or "",
        author=(item.get("author") or {}).get("username", ""),
        created=iso_to_epoch(item.get("created_at")),
        is_open=item.get("state") == "opened",
        labels=[str(label) for label in item.get("labels") or []],
        comment_count=int(item.get("user_notes_count") or 0),
    )
