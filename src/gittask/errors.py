"""Error kinds shared by the store, the repository, and the sync engine.

Local-store errors abort a command. Remote errors are collected per item
by the sync engine and reported together at the end.
"""

from __future__ import annotations


class GitTaskError(Exception):
    """Base for every error the CLI knows how to report."""

    kind = "Error"

    def to_dict(self) -> dict[str, object]:
        return {"error": str(self), "kind": self.kind}


class NotFoundError(GitTaskError):
    kind = "NotFound"


class ValidationError(GitTaskError):
    kind = "ValidationError"


class ConcurrentModificationError(GitTaskError):
    kind = "ConcurrentModification"


class EncodingError(GitTaskError):
    kind = "EncodingError"


class ObjectStoreError(GitTaskError):
    """A git plumbing call failed for a reason other than a lost CAS race."""

    kind = "ObjectStoreError"


class RemoteFailureError(GitTaskError):
    kind = "RemoteFailure"

    def __init__(self, message: str, tracker: str = "", retryable: bool = False):
        super().__init__(message)
        self.tracker = tracker
        self.retryable = retryable

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["tracker"] = self.tracker
        data["retryable"] = self.retryable
        return data


class IssueCreatedError(RemoteFailureError):
    """The issue was created but a follow-up call on it failed.

    Carries the new remote id so the caller can still link it.
    """

    def __init__(self, message: str, tracker: str, remote_id: str, retryable: bool = False):
        super().__init__(message, tracker, retryable)
        self.remote_id = remote_id


class UnsupportedOperationError(GitTaskError):
    kind = "UnsupportedOperation"

    def __init__(self, tracker: str, capability: str):
        super().__init__(f"{tracker} does not support {capability}")
        self.tracker = tracker
        self.capability = capability
