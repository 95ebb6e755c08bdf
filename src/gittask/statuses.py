"""Status definitions: shortcuts, closing classification, open/closed mapping."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

from gittask.defaults import DEFAULT_STATUSES
from gittask.errors import EncodingError, NotFoundError, ValidationError

_FIELDS = ("name", "display_name", "shortcut", "color", "style", "is_done")


@dataclass
class StatusDefinition:
    name: str
    shortcut: str = ""
    color: str = "reset"
    style: str | None = None
    is_done: bool = False
    display_name: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.name

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> StatusDefinition:
        if not isinstance(data, dict) or not data.get("name"):
            raise EncodingError("Status definition must be an object with a name")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise EncodingError(f"Status '{data['name']}' has unknown keys: {sorted(unknown)}")
        is_done = data.get("is_done", False)
        if isinstance(is_done, str):
            is_done = is_done.lower() == "true"
        return cls(
            name=str(data["name"]),
            shortcut=str(data.get("shortcut") or ""),
            color=str(data.get("color") or "reset"),
            style=data.get("style") or None,
            is_done=bool(is_done),
            display_name=data.get("display_name") or None,
        )


class StatusTable:
    """Ordered status definitions. The first one is the starting status for new tasks."""

    def __init__(self, statuses: list[StatusDefinition] | None = None):
        self.statuses = list(statuses) if statuses is not None else self.defaults()
        if not self.statuses:
            raise ValidationError("At least one status must be defined")

    @staticmethod
    def defaults() -> list[StatusDefinition]:
        return [StatusDefinition.from_dict(s) for s in DEFAULT_STATUSES]

    @classmethod
    def from_list(cls, items: Any) -> StatusTable:
        if not isinstance(items, list):
            raise EncodingError("Status list must be a list")
        table = cls([StatusDefinition.from_dict(item) for item in items])
        table.check()
        return table

    def to_list(self) -> list[dict[str, Any]]:
        return [s.to_dict() for s in self.statuses]

    def check(self) -> None:
        names = [s.name for s in self.statuses]
        if len(set(names)) != len(names):
            raise ValidationError("Status names must be unique")
        shortcuts = [s.shortcut for s in self.statuses if s.shortcut]
        if len(set(shortcuts)) != len(shortcuts):
            raise ValidationError("Status shortcuts must be unique")

    # --- lookup ---

    def find(self, name: str) -> StatusDefinition | None:
        return next((s for s in self.statuses if s.name == name), None)

    def get(self, name: str) -> StatusDefinition:
        status = self.find(name)
        if status is None:
            raise NotFoundError(f"Unknown status '{name}'")
        return status

    def resolve(self, name_or_shortcut: str) -> str:
        """Canonical name for a full name or a shortcut (case-sensitive)."""
        for status in self.statuses:
            if name_or_shortcut == status.name or (status.shortcut and name_or_shortcut == status.shortcut):
                return status.name
        raise ValidationError(f"Unknown status or shortcut '{name_or_shortcut}'")

    def is_done(self, name: str) -> bool:
        status = self.find(name)
        return bool(status and status.is_done)

    @property
    def starting(self) -> str:
        return self.statuses[0].name

    @property
    def default_open(self) -> str:
        return next((s.name for s in self.statuses if not s.is_done), self.statuses[0].name)

    @property
    def default_closed(self) -> str:
        return next((s.name for s in self.statuses if s.is_done), self.statuses[-1].name)

    # --- edits ---

    def add(self, status: StatusDefinition) -> None:
        if self.find(status.name):
            raise ValidationError(f"Status '{status.name}' already exists")
        self.statuses.append(status)
        self.check()

    def delete(self, name: str) -> None:
        status = self.get(name)
        if len(self.statuses) == 1:
            raise ValidationError("Cannot delete the last status")
        self.statuses.remove(status)

    def set_field(self, name: str, field_name: str, value: str) -> str | None:
        """Update one field; returns the previous value as a string."""
        if field_name not in _FIELDS:
            raise ValidationError(f"Unknown status field '{field_name}'. Valid: {', '.join(_FIELDS)}")
        status = self.get(name)
        previous = getattr(status, field_name)
        if field_name == "name" and value != name and self.find(value):
            raise ValidationError(f"Status '{value}' already exists")
        if field_name == "is_done":
            status.is_done = value.lower() == "true"
        elif field_name in ("style", "display_name"):
            setattr(status, field_name, value or None)
        else:
            setattr(status, field_name, value)
        self.check()
        return None if previous is None else str(previous)

    def get_field(self, name: str, field_name: str) -> str:
        if field_name not in _FIELDS:
            raise ValidationError(f"Unknown status field '{field_name}'. Valid: {', '.join(_FIELDS)}")
        value = getattr(self.get(name), field_name)
        if isinstance(value, bool):
            return str(value).lower()
        return "" if value is None else str(value)


@dataclass(frozen=True)
class StatusMapping:
    """One tracker's binding between remote open/closed and canonical local statuses."""

    open: str
    closed: str

    def to_remote(self, table: StatusTable, status: str) -> bool:
        """True when the local status maps to an open remote issue."""
        if status == self.closed:
            return False
        if status == self.open:
            return True
        return not table.is_done(status)

    def to_local(self, is_open: bool) -> str:
        return self.open if is_open else self.closed
