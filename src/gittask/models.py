"""Task, Comment and Label records and their JSON blob encoding.

Property maps keep insertion order and accept any key; only the reserved
keys below carry meaning for the repository and the sync engine.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any

from gittask.defaults import DEFAULT_LABEL_COLOR
from gittask.errors import EncodingError, ValidationError

NAME = "name"
DESCRIPTION = "description"
AUTHOR = "author"
CREATED = "created"
STATUS = "status"

RESERVED_KEYS = (NAME, DESCRIPTION, AUTHOR, CREATED, STATUS)


def now_timestamp() -> str:
    """Current time as Unix epoch seconds."""
    return str(int(time.time()))


def _check_str_map(value: Any, what: str) -> dict[str, str]:
    if not isinstance(value, dict):
        raise EncodingError(f"{what} must be an object")
    result: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(item, str):
            raise EncodingError(f"{what}['{key}'] must be a string, got {type(item).__name__}")
        result[str(key)] = item
    return result


def _check_id(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise EncodingError(f"{what} id must be an integer")
    try:
        result = int(value)
    except ValueError as exc:
        raise EncodingError(f"{what} id must be an integer, got '{value}'") from exc
    if result < 0:
        raise EncodingError(f"{what} id must be nonnegative, got {result}")
    return result


@dataclass
class Comment:
    id: int | None = None
    text: str = ""
    props: dict[str, str] = field(default_factory=dict)
    links: dict[str, str] = field(default_factory=dict)

    @property
    def author(self) -> str:
        return self.props.get(AUTHOR, "")

    @property
    def created(self) -> str:
        return self.props.get(CREATED, "")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "props": dict(self.props), "text": self.text, "links": dict(self.links)}

    @classmethod
    def from_dict(cls, data: Any) -> Comment:
        if not isinstance(data, dict):
            raise EncodingError("Comment record must be an object")
        text = data.get("text", "")
        if not isinstance(text, str):
            raise EncodingError("Comment text must be a string")
        raw_id = data.get("id")
        return cls(
            id=None if raw_id is None else _check_id(raw_id, "Comment"),
            text=text,
            props=_check_str_map(data.get("props", {}), "Comment props"),
            links=_check_str_map(data.get("links", {}), "Comment links"),
        )


@dataclass
class Label:
    name: str
    color: str = DEFAULT_LABEL_COLOR
    description: str = ""
    links: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "color": self.color,
            "description": self.description,
            "links": dict(self.links),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Label:
        if isinstance(data, str):
            return cls(name=data)
        if not isinstance(data, dict) or not isinstance(data.get("name"), str) or not data["name"]:
            raise EncodingError("Label record must be an object with a non-empty name")
        return cls(
            name=data["name"],
            color=str(data.get("color") or DEFAULT_LABEL_COLOR),
            description=str(data.get("description") or ""),
            links=_check_str_map(data.get("links", {}), "Label links"),
        )


@dataclass
class Task:
    id: int | None = None
    props: dict[str, str] = field(default_factory=dict)
    comments: list[Comment] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    links: dict[str, str] = field(default_factory=dict)

    @classmethod
    def new(cls, name: str, description: str, status: str, author: str = "") -> Task:
        props = {NAME: name, DESCRIPTION: description, STATUS: status, CREATED: now_timestamp()}
        if author:
            props[AUTHOR] = author
        return cls(props=props)

    def get(self, key: str, default: str | None = None) -> str | None:
        if key == "id":
            return str(self.id) if self.id is not None else default
        return self.props.get(key, default)

    def set(self, key: str, value: str) -> None:
        self.props[key] = value

    def unset(self, key: str) -> bool:
        return self.props.pop(key, None) is not None

    @property
    def name(self) -> str:
        return self.props.get(NAME, "")

    @property
    def status(self) -> str:
        return self.props.get(STATUS, "")

    def context(self) -> dict[str, str]:
        """Property bindings for conditional formatting, id included."""
        bindings = dict(self.props)
        if self.id is not None:
            bindings["id"] = str(self.id)
        return bindings

    def find_comment(self, comment_id: int) -> Comment | None:
        return next((c for c in self.comments if c.id == comment_id), None)

    def next_comment_id(self) -> int:
        return max((c.id or 0 for c in self.comments), default=0) + 1

    def add_comment(self, comment: Comment) -> Comment:
        comment.id = self.next_comment_id()
        self.comments.append(comment)
        return comment

    def validate(self) -> None:
        """Reserved-key checks applied before any write."""
        if not self.props.get(NAME):
            raise ValidationError(f"Task {self.id if self.id is not None else '(new)'}: name is empty")
        created = self.props.get(CREATED)
        if created is not None and created != "" and not created.isdigit():
            raise ValidationError(f"Task {self.id}: 'created' must be a Unix timestamp, got '{created}'")
        seen: set[int] = set()
        for comment in self.comments:
            if comment.id in seen:
                raise ValidationError(f"Task {self.id}: duplicate comment id {comment.id}")
            seen.add(comment.id or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "props": dict(self.props),
            "comments": [c.to_dict() for c in self.comments],
            "labels": list(self.labels),
            "links": dict(self.links),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Task:
        if not isinstance(data, dict):
            raise EncodingError("Task record must be an object")
        raw_labels = data.get("labels", [])
        if not isinstance(raw_labels, list):
            raise EncodingError("Task labels must be a list")
        raw_comments = data.get("comments", [])
        if not isinstance(raw_comments, list):
            raise EncodingError("Task comments must be a list")
        raw_id = data.get("id")
        return cls(
            id=None if raw_id is None else _check_id(raw_id, "Task"),
            props=_check_str_map(data.get("props", {}), "Task props"),
            comments=[Comment.from_dict(c) for c in raw_comments],
            # Exported documents carry full label objects, stored records only names
            labels=[Label.from_dict(item).name for item in raw_labels],
            links=_check_str_map(data.get("links", {}), "Task links"),
        )


# ---------------------------------------------------------------------------
# Blob codec
# ---------------------------------------------------------------------------


def encode_record(data: dict[str, Any]) -> bytes:
    return (json.dumps(data, ensure_ascii=False, indent=1) + "\n").encode("utf-8")


def decode_record(raw: bytes, where: str) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EncodingError(f"Malformed record at {where}: {exc}") from exc


def encode_task(task: Task) -> bytes:
    return encode_record(task.to_dict())


def decode_task(raw: bytes, where: str = "task") -> Task:
    return Task.from_dict(decode_record(raw, where))


def encode_label(label: Label) -> bytes:
    return encode_record(label.to_dict())


def decode_label(raw: bytes, where: str = "label") -> Label:
    return Label.from_dict(decode_record(raw, where))
