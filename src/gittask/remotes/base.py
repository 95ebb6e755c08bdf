"""Remote tracker capability interface and the shared httpx plumbing.

Backends override the capabilities they have; everything else raises
UnsupportedOperationError. Listing calls are generators so pagination stays
hidden behind ordinary iteration.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterator

import httpx

from gittask.defaults import HTTP_TIMEOUT
from gittask.errors import GitTaskError, IssueCreatedError, NotFoundError, RemoteFailureError, UnsupportedOperationError

log = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429}


@dataclass
class RemoteIssue:
    id: str
    title: str
    body: str = ""
    author: str = ""
    created: str = ""
    is_open: bool = True
    labels: list[str] = field(default_factory=list)
    comment_count: int = 0


@dataclass
class RemoteComment:
    id: str
    body: str
    author: str = ""
    created: str = ""


@dataclass
class RemoteLabel:
    name: str
    color: str = ""
    description: str = ""
    id: str = ""


@dataclass
class IssueFilter:
    ids: list[str] | None = None
    # None lists both states
    is_open: bool | None = None
    limit: int | None = None
    since: datetime | None = None


@dataclass
class IssueFields:
    title: str
    body: str = ""
    is_open: bool = True
    # None leaves the remote label set untouched
    labels: list[str] | None = None


def iso_to_epoch(value: str | None) -> str:
    """'2024-05-01T10:00:00Z' -> '1714557600'. Blank for missing values."""
    if not value:
        return ""
    return str(int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()))


class RemoteTracker:
    """One backend kind. Subclasses set `kind` and `url_patterns`."""

    kind = ""
    # Each pattern captures `owner` and `repo` from a git remote URL
    url_patterns: tuple[re.Pattern[str], ...] = ()

    @classmethod
    def supports_remote(cls, url: str) -> tuple[str, str] | None:
        for pattern in cls.url_patterns:
            match = pattern.match(url.strip())
            if match:
                return match.group("owner"), match.group("repo")
        return None

    @property
    def location(self) -> str:
        return ""

    def _unsupported(self, capability: str) -> UnsupportedOperationError:
        return UnsupportedOperationError(self.kind or type(self).__name__, capability)

    # --- issues ---

    def list_issues(self, filt: IssueFilter | None = None) -> Iterator[RemoteIssue]:
        raise self._unsupported("listing issues")

    def get_issue(self, remote_id: str) -> RemoteIssue:
        for issue in self.list_issues(IssueFilter(ids=[remote_id])):
            return issue
        raise NotFoundError(f"{self.kind} issue {remote_id} not found")

    def create_issue(self, fields: IssueFields) -> str:
        raise self._unsupported("creating issues")

    def update_issue(self, remote_id: str, fields: IssueFields) -> None:
        raise self._unsupported("updating issues")

    def delete_issue(self, remote_id: str) -> None:
        raise self._unsupported("deleting issues")

    # --- comments ---

    def list_comments(self, remote_id: str) -> Iterator[RemoteComment]:
        raise self._unsupported("listing comments")

    def create_comment(self, remote_id: str, body: str) -> str:
        raise self._unsupported("creating comments")

    def update_comment(self, remote_id: str, comment_id: str, body: str) -> None:
        raise self._unsupported("updating comments")

    def delete_comment(self, remote_id: str, comment_id: str) -> None:
        raise self._unsupported("deleting comments")

    # --- labels ---

    def list_labels(self) -> Iterator[RemoteLabel]:
        raise self._unsupported("listing labels")

    def create_label(self, label: RemoteLabel) -> str:
        raise self._unsupported("creating labels")

    def update_label(self, label: RemoteLabel) -> None:
        raise self._unsupported("updating labels")

    def close(self) -> None:
        pass

    def __enter__(self) -> RemoteTracker:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class HttpTracker(RemoteTracker):
    """RemoteTracker over a JSON REST API with Link-header pagination."""

    page_size = 100

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    def close(self) -> None:
        self.client.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        log.debug("%s %s %s", self.kind, method, url)
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RemoteFailureError(f"{method} {url} timed out: {exc}", self.kind, retryable=True) from exc
        except httpx.TransportError as exc:
            raise RemoteFailureError(f"{method} {url} failed: {exc}", self.kind, retryable=True) from exc
        if response.status_code == 404:
            raise NotFoundError(f"{self.kind}: {method} {url} returned 404")
        if response.is_error:
            retryable = response.status_code in RETRYABLE_STATUS or response.status_code >= 500
            raise RemoteFailureError(
                f"{method} {url} returned {response.status_code}: {_error_message(response)}",
                self.kind,
                retryable=retryable,
            )
        return response

    def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = self._request(method, url, **kwargs)
        if not response.content:
            return None
        return self._decode(method, url, response)

    def _decode(self, method: str, url: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteFailureError(
                f"{method} {url} returned a non-JSON body: {response.text[:200]!r}", self.kind
            ) from exc

    def _paginate(self, url: str, params: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
        """Yield items from every page, following Link: rel="next"."""
        query: dict[str, Any] | None = {"per_page": self.page_size, **(params or {})}
        next_url: str | None = url
        while next_url:
            response = self._request("GET", next_url, params=query)
            page = self._decode("GET", next_url, response)
            if not isinstance(page, list):
                raise RemoteFailureError(f"GET {next_url} did not return a list", self.kind)
            yield from page
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            query = None

    def _finish_create(self, remote_id: str, method: str, url: str, payload: dict[str, Any]) -> None:
        """Follow-up call on an issue that already exists remotely."""
        try:
            self._json(method, url, json=payload)
        except GitTaskError as exc:
            raise IssueCreatedError(
                f"{self.kind} issue {remote_id} was created but {method} {url} failed: {exc}",
                self.kind,
                remote_id,
                retryable=getattr(exc, "retryable", False),
            ) from exc


def required(item: Any, key: str, kind: str) -> Any:
    """item[key] from a response payload; a malformed payload is a remote failure."""
    if not isinstance(item, dict) or item.get(key) is None:
        raise RemoteFailureError(f"unexpected {kind} response: missing '{key}'", kind)
    return item[key]


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("error") or data)
    return str(data)
