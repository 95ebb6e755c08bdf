"""Selector resolution: ID/range expressions, status filters, list filtering and sorting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable

from gittask.errors import ValidationError
from gittask.models import AUTHOR, CREATED, STATUS, Task
from gittask.properties import PropertyTable
from gittask.statuses import StatusTable


def parse_ids(selector: str) -> list[int]:
    """'2..5,10,12' -> [2, 3, 4, 5, 10, 12]. Sorted ascending, no duplicates."""
    ids: set[int] = set()
    for token in selector.split(","):
        token = token.strip()
        if not token:
            raise ValidationError(f"Empty token in selector '{selector}'")
        lo_raw, sep, hi_raw = token.partition("..")
        lo = _parse_int(lo_raw, selector)
        if not sep:
            ids.add(lo)
            continue
        hi = _parse_int(hi_raw, selector)
        if lo > hi:
            raise ValidationError(f"Invalid range '{token}': {lo} > {hi}")
        ids.update(range(lo, hi + 1))
    return sorted(ids)


def _parse_int(raw: str, selector: str) -> int:
    raw = raw.strip()
    if not raw.isdigit():
        raise ValidationError(f"Invalid id '{raw}' in selector '{selector}'")
    return int(raw)


def resolve_statuses(spec: str | Iterable[str], table: StatusTable) -> list[str]:
    """Canonical names for a comma-separated (or repeated) list of names/shortcuts."""
    items = spec.split(",") if isinstance(spec, str) else [part for s in spec for part in s.split(",")]
    resolved: list[str] = []
    for item in items:
        item = item.strip()
        if not item:
            continue
        name = table.resolve(item)
        if name not in resolved:
            resolved.append(name)
    return resolved


def parse_date(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


@dataclass
class TaskFilter:
    ids: list[int] | None = None
    statuses: list[str] = field(default_factory=list)
    keyword: str | None = None
    date_from: datetime | None = None
    date_until: datetime | None = None
    author: str | None = None
    limit: int | None = None

    def matches(self, task: Task) -> bool:
        if self.ids is not None and task.id not in self.ids:
            return False
        if self.statuses and task.get(STATUS) not in self.statuses:
            return False
        if self.keyword and not any(self.keyword in value for value in task.props.values()):
            return False
        if self.author and (task.get(AUTHOR) or "").lower() != self.author.lower():
            return False
        if self.date_from or self.date_until:
            created = task.get(CREATED) or ""
            if not created.isdigit():
                return False
            moment = datetime.fromtimestamp(int(created))
            if self.date_from and moment < self.date_from:
                return False
            # --until is inclusive of the whole day
            if self.date_until and moment >= self.date_until + timedelta(days=1):
                return False
        return True

    def apply(self, tasks: Iterable[Task]) -> list[Task]:
        selected = [task for task in tasks if self.matches(task)]
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


def build_filter(
    table: StatusTable,
    selector: str | None = None,
    status: str | Iterable[str] | None = None,
    keyword: str | None = None,
    date_from: str | None = None,
    date_until: str | None = None,
    author: str | None = None,
    limit: int | None = None,
) -> TaskFilter:
    """TaskFilter from raw CLI values; validates every piece up front."""
    if limit is not None and limit < 0:
        raise ValidationError("--limit must not be negative")
    return TaskFilter(
        ids=parse_ids(selector) if selector else None,
        statuses=resolve_statuses(status, table) if status else [],
        keyword=keyword or None,
        date_from=parse_date(date_from) if date_from else None,
        date_until=parse_date(date_until) if date_until else None,
        author=author or None,
        limit=limit,
    )


def parse_sort(spec: list[str]) -> list[tuple[str, bool]]:
    """['id desc', 'name'] -> [('id', True), ('name', False)]."""
    keys: list[tuple[str, bool]] = []
    for item in spec:
        parts = item.split()
        if not parts:
            continue
        direction = parts[1].lower() if len(parts) > 1 else "asc"
        if direction not in ("asc", "desc"):
            raise ValidationError(f"Invalid sort direction '{parts[1]}' for '{parts[0]}'")
        keys.append((parts[0], direction == "desc"))
    return keys


def sort_tasks(tasks: list[Task], spec: list[str], properties: PropertyTable) -> list[Task]:
    """Stable multi-key sort; integer and datetime properties compare numerically."""
    result = list(tasks)
    # Apply keys last to first so the first key dominates
    for name, descending in reversed(parse_sort(spec)):
        numeric = properties.value_type(name) in ("integer", "datetime")
        result.sort(key=lambda task: _sort_value(task.get(name) or "", numeric), reverse=descending)
    return result


def _sort_value(value: str, numeric: bool) -> tuple[int, int | str]:
    if numeric:
        try:
            return (0, int(value))
        except ValueError:
            return (1, value)
    return (0, value)
