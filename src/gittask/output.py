"""Result output for the CLI: JSON by default, human tables, or one-line compact."""
from __future__ import annotations

import json
import sys

import click


def output(
    data: dict[str, object],
    human: bool = False,
    compact: bool = False,
    text: str | None = None,
) -> None:
    """Print result as JSON (default), human-readable, or compact text.

    `text` is a pre-rendered human form (task tables, task details) used
    instead of the generic key/value dump. A result carrying `error` goes
    to stderr and exits 1.
    """
    if "error" in data:
        if human or compact:
            click.echo(_format_compact(data), err=True)
        else:
            click.echo(json.dumps(data, indent=2, default=str), err=True)
        sys.exit(1)
    if compact:
        click.echo(_format_compact(data))
    elif human:
        if text is not None:
            click.echo(text)
            return
        for k, v in data.items():
            if isinstance(v, (list, dict)):
                click.echo(f"{k}: {json.dumps(v, indent=2, default=str)}")
            else:
                click.echo(f"{k}: {v}")
    else:
        click.echo(json.dumps(data, indent=2, default=str))


def _format_compact(data: dict[str, object]) -> str:
    """Format CLI output as one line per task or sync result."""
    lines: list[str] = []

    # Error line
    error = data.get("error")
    if error:
        lines.append(f"ERROR ({data.get('kind', 'Error')}): {error}")

    # Tasks as one-liners
    tasks = data.get("tasks")
    if isinstance(tasks, list):
        for t in tasks:
            if isinstance(t, dict):
                props = t.get("props", {})
                lines.append(f"#{t.get('id')} [{props.get('status', '')}] {props.get('name', '')}")
        if not tasks:
            lines.append("No tasks found")

    # Sync results
    for key in ("sync", "push"):
        report = data.get(key)
        if isinstance(report, dict):
            for item in report.get("results", []):
                target = item.get("target")
                where = f"#{target}" if target is not None else "-"
                if item.get("comment") is not None:
                    where += f"/{item['comment']}"
                remote = f" -> {report.get('tracker')}#{item['remote_id']}" if item.get("remote_id") else ""
                line = f"{where} {item.get('action')}{remote}"
                if item.get("kind"):
                    line += f" [{item['kind']}] {item.get('message', '')}"
                lines.append(line)
            lines.append(f"{report.get('succeeded', 0)} ok, {report.get('failed', 0)} failed")

    if not lines:
        status = data.get("status")
        if status and "ids" in data:
            ids = data["ids"]
            return f"{status}: {', '.join(str(i) for i in ids) if isinstance(ids, list) else ids}"
        return json.dumps(data, indent=2, default=str)

    return "\n".join(lines)
