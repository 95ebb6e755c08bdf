"""Human-readable rendering of task lists, single tasks and stats with click styling."""

from __future__ import annotations

import logging
import re
from typing import Any

import click

from gittask.config import TaskConfig
from gittask.defaults import STYLE_FLAGS
from gittask.models import CREATED, DESCRIPTION, NAME, STATUS, Task
from gittask.properties import evaluate_expression, format_datetime

log = logging.getLogger(__name__)

_HEX = re.compile(r"^#?([0-9a-fA-F]{6})$")


def _fg(color: str | None) -> Any:
    if not color or color == "reset":
        return None
    if color.isdigit():
        return int(color)
    match = _HEX.match(color)
    if match:
        raw = match.group(1)
        return tuple(int(raw[i:i + 2], 16) for i in (0, 2, 4))
    return color.lower()


def styled(text: str, color: str | None = None, style: str | None = None, enabled: bool = True) -> str:
    """click.style with config color names, 0-255 codes, hex colors and 'bold,italic' style lists."""
    if not enabled:
        return text
    flags = {flag.strip() for flag in (style or "").split(",") if flag.strip()}
    kwargs = {flag: True for flag in flags if flag in STYLE_FLAGS}
    try:
        return click.style(text, fg=_fg(color), **kwargs)
    except TypeError:
        log.warning("unknown color '%s'", color)
        return click.style(text, **kwargs)


class Renderer:
    def __init__(self, config: TaskConfig, color: bool | None = None):
        self.config = config
        self.color = config.color if color is None else color

    def _value(self, task: Task, key: str) -> str:
        value = task.get(key) or ""
        if key == STATUS:
            status = self.config.statuses.find(value)
            return status.label if status else value
        return self.config.properties.display_value(key, value)

    def _paint(self, task: Task, key: str, text: str) -> str:
        if key == STATUS:
            status = self.config.statuses.find(task.status)
            if status is None:
                return text
            return styled(text, status.color, status.style, self.color)
        color, style = self.config.properties.pick_style(
            key, task.get(key) or "", task.context(), evaluate_expression
        )
        return styled(text, color, style, self.color)

    def task_list(self, records: list[dict[str, Any]]) -> str:
        if not records:
            return "No tasks found"
        tasks = [Task.from_dict(record) for record in records]
        columns = self.config.list_columns
        cells = [[self._value(task, key).replace("\n", " ") for key in columns] for task in tasks]
        widths = [max([len(key)] + [len(row[i]) for row in cells]) for i, key in enumerate(columns)]

        lines = ["  ".join(styled(key.upper().ljust(w), style="bold", enabled=self.color) for key, w in zip(columns, widths))]
        for task, row in zip(tasks, cells):
            parts = [self._paint(task, key, text.ljust(w)) for key, text, w in zip(columns, row, widths)]
            lines.append("  ".join(parts).rstrip())
        return "\n".join(lines)

    def task(self, record: dict[str, Any]) -> str:
        task = Task.from_dict(record)

        def title(text: str) -> str:
            return styled(text, "bright_black", enabled=self.color)

        lines = [f"{title('ID')}: {task.id}"]
        if task.get(CREATED):
            lines.append(f"{title('Created')}: {self._paint(task, CREATED, format_datetime(task.get(CREATED)))}")
        for key in (NAME, STATUS):
            lines.append(f"{title(key.capitalize())}: {self._paint(task, key, self._value(task, key))}")
        for key, value in task.props.items():
            if key in (NAME, STATUS, CREATED, DESCRIPTION):
                continue
            lines.append(f"{title(key.capitalize())}: {self._paint(task, key, self._value(task, key))}")
        if record.get("labels"):
            names = [styled(label["name"], label.get("color"), enabled=self.color) for label in record["labels"]]
            lines.append(f"{title('Labels')}: {', '.join(names)}")
        if task.links:
            lines.append(f"{title('Links')}: {', '.join(f'{kind}#{rid}' for kind, rid in task.links.items())}")
        description = task.get(DESCRIPTION)
        if description:
            lines.extend(["", description])
        for comment in task.comments:
            header = f"Comment {comment.id}"
            if comment.author:
                header += f" by {comment.author}"
            if comment.created:
                header += f" at {format_datetime(comment.created)}"
            lines.extend(["", styled(header, "bright_black", enabled=self.color), comment.text])
        return "\n".join(lines)

    def stats(self, data: dict[str, Any]) -> str:
        lines = [f"Total tasks: {data['total']}"]
        for name, count in data["by_status"].items():
            status = self.config.statuses.find(name)
            label = styled(status.label, status.color, status.style, self.color) if status else name
            lines.append(f"  {label}: {count}")
        if data["top_authors"]:
            lines.append("Top authors:")
            lines.extend(f"  {item['author']}: {item['count']}" for item in data["top_authors"])
        return "\n".join(lines)
