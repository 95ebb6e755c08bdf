"""Per-item outcomes of a pull or push, aggregated in task-id order."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from gittask.errors import GitTaskError

# A remote call succeeded but the local commit recording its link did not
LINK_NOT_PERSISTED = "LinkNotPersisted"

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
DELETED = "deleted"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ItemResult:
    target: int | None
    action: str
    remote_id: str | None = None
    comment: int | None = None
    kind: str | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.action != FAILED

    @classmethod
    def failure(
        cls,
        target: int | None,
        exc: GitTaskError,
        remote_id: str | None = None,
        comment: int | None = None,
    ) -> ItemResult:
        return cls(target, FAILED, remote_id=remote_id, comment=comment, kind=exc.kind, message=str(exc))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"target": self.target, "action": self.action}
        if self.comment is not None:
            data["comment"] = self.comment
        if self.remote_id is not None:
            data["remote_id"] = self.remote_id
        if self.kind is not None:
            data["kind"] = self.kind
        if self.message:
            data["message"] = self.message
        return data


def _order(item: ItemResult) -> tuple[int, int, int, str]:
    return (
        item.target is None,
        item.target or 0,
        -1 if item.comment is None else item.comment,
        item.remote_id or "",
    )


@dataclass
class SyncReport:
    tracker: str
    location: str = ""
    items: list[ItemResult] = field(default_factory=list)
    commit_id: str | None = None

    def add(self, item: ItemResult) -> ItemResult:
        self.items.append(item)
        return item

    @property
    def results(self) -> list[ItemResult]:
        return sorted(self.items, key=_order)

    @property
    def failures(self) -> list[ItemResult]:
        return [item for item in self.results if not item.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict[str, Any]:
        results = self.results
        data: dict[str, Any] = {
            "tracker": self.tracker,
            "location": self.location,
            "results": [item.to_dict() for item in results],
            "succeeded": sum(1 for item in results if item.ok),
            "failed": sum(1 for item in results if not item.ok),
        }
        if self.commit_id:
            data["commit"] = self.commit_id
        return data
