"""Click CLI entrypoint: `git task <subcommand>` (or `git-task`).

Every call is stateless. JSON output by default, --human for tables,
--compact for one line per task or sync result.
"""

from __future__ import annotations

import logging
import sys

import click

from gittask.errors import GitTaskError
from gittask.output import output as _output

CONNECTORS = ["github", "gitlab"]


class TaskGroup(click.Group):
    """Group that turns any GitTaskError from a subcommand into an error payload and exit 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except GitTaskError as exc:
            obj = ctx.find_root().obj or {}
            _output(exc.to_dict(), obj.get("human", False), obj.get("compact", False))


def _ws(ctx: click.Context):
    """Workspace for the repository, opened once per invocation."""
    obj = ctx.find_root().obj
    if "ws" not in obj:
        from gittask.tasks import open_workspace
        obj["ws"] = open_workspace(obj["repo_dir"])
    return obj["ws"]


def _emit(ctx: click.Context, data: dict[str, object], text: str | None = None) -> None:
    obj = ctx.find_root().obj
    _output(data, obj["human"], obj["compact"], text=text)


def _renderer(ctx: click.Context):
    from gittask.render import Renderer
    obj = ctx.find_root().obj
    return Renderer(_ws(ctx).config, color=False if obj["no_color"] else None)


def _remote_options(func):
    func = click.option("--remote", default=None, help="git remote whose URL selects the tracker")(func)
    func = click.option("--connector", type=click.Choice(CONNECTORS), default=None, help="Tracker kind")(func)
    return func


@click.group(cls=TaskGroup)
@click.version_option(package_name="git-task")
@click.option("-C", "repo_dir", default=None, type=click.Path(file_okay=False), help="Run as if started in this directory")
@click.option("--human", is_flag=True, help="Human-readable output instead of JSON")
@click.option("--compact", is_flag=True, help="One line per task or sync result")
@click.option("--no-color", is_flag=True, help="Disable colors in human output")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging on stderr")
@click.pass_context
def cli(ctx: click.Context, repo_dir: str | None, human: bool, compact: bool, no_color: bool, verbose: bool) -> None:
    """git-task: local-first task tracker stored in git."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    ctx.ensure_object(dict)
    ctx.obj["repo_dir"] = repo_dir
    ctx.obj["human"] = human
    ctx.obj["compact"] = compact
    ctx.obj["no_color"] = no_color


# =========================================================================
# Query
# =========================================================================

@cli.command("list")
@click.argument("selector", required=False)
@click.option("-s", "--status", multiple=True, help="Status name or shortcut (repeatable, comma-separated)")
@click.option("-k", "--keyword", default=None, help="Substring of any property")
@click.option("--from", "date_from", default=None, help="Created on or after YYYY-MM-DD")
@click.option("--until", "date_until", default=None, help="Created on or before YYYY-MM-DD")
@click.option("--author", default=None)
@click.option("-l", "--limit", default=None, type=int)
@click.option("--sort", multiple=True, help="'prop [asc|desc]' (repeatable); overrides task.list.sort")
@click.pass_context
def list_cmd(ctx, selector, status, keyword, date_from, date_until, author, limit, sort):
    """List tasks."""
    from gittask.tasks import list_tasks
    result = list_tasks(
        _ws(ctx), selector, status, keyword, date_from, date_until, author, limit, list(sort) or None,
    )
    _emit(ctx, result, _renderer(ctx).task_list(result["tasks"]))


@cli.command()
@click.argument("task_id", type=int)
@click.pass_context
def show(ctx, task_id):
    """Show one task with its comments."""
    from gittask.tasks import show_task
    result = show_task(_ws(ctx), task_id)
    _emit(ctx, result, _renderer(ctx).task(result["task"]))


@cli.command()
@click.pass_context
def stats(ctx):
    """Task counts per status and top authors."""
    from gittask.tasks import task_stats
    result = task_stats(_ws(ctx))
    _emit(ctx, result, _renderer(ctx).stats(result))


# =========================================================================
# Create / update
# =========================================================================

@cli.command()
@click.argument("name")
@click.argument("description", required=False, default="")
@click.option("-s", "--status", default=None, help="Initial status (default: first configured)")
@click.option("-p", "--prop", "props", multiple=True, help="Extra property KEY=VALUE (repeatable)")
@click.option("--push", "push_remote", is_flag=True, help="Also create the issue on the tracker")
@_remote_options
@click.pass_context
def create(ctx, name, description, status, props, push_remote, connector, remote):
    """Create a task."""
    from gittask.errors import ValidationError
    from gittask.tasks import create_task
    extra = {}
    for item in props:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ValidationError(f"Expected KEY=VALUE, got '{item}'")
        extra[key] = value
    _emit(ctx, create_task(_ws(ctx), name, description, status, extra, push_remote, connector, remote))


@cli.command("status")
@click.argument("selector")
@click.argument("status")
@click.pass_context
def status_cmd(ctx, selector, status):
    """Set the status of tasks (name or shortcut)."""
    from gittask.tasks import set_status
    _emit(ctx, set_status(_ws(ctx), selector, status))


@cli.command("get")
@click.argument("task_id", type=int)
@click.argument("key")
@click.pass_context
def get_cmd(ctx, task_id, key):
    """Print one property of a task."""
    from gittask.tasks import get_property
    result = get_property(_ws(ctx), task_id, key)
    _emit(ctx, result, result["value"])


@cli.command("set")
@click.argument("selector")
@click.argument("key")
@click.argument("value")
@click.pass_context
def set_cmd(ctx, selector, key, value):
    """Set a property on tasks."""
    from gittask.tasks import set_property
    _emit(ctx, set_property(_ws(ctx), selector, key, value))


@cli.command()
@click.argument("selector")
@click.argument("key")
@click.pass_context
def unset(ctx, selector, key):
    """Remove a property from tasks."""
    from gittask.tasks import unset_property
    _emit(ctx, unset_property(_ws(ctx), selector, key))


@cli.command()
@click.argument("task_id", type=int)
@click.argument("key", required=False, default="description")
@click.pass_context
def edit(ctx, task_id, key):
    """Edit a property in $EDITOR (default: description)."""
    from gittask.tasks import edit_property
    _emit(ctx, edit_property(_ws(ctx), task_id, key))


@cli.command()
@click.argument("selector")
@click.argument("key")
@click.argument("search")
@click.argument("replacement")
@click.option("--regex", is_flag=True, help="Treat SEARCH as a regular expression")
@click.pass_context
def replace(ctx, selector, key, search, replacement, regex):
    """Replace text in a property of tasks."""
    from gittask.tasks import replace_text
    _emit(ctx, replace_text(_ws(ctx), selector, key, search, replacement, regex))


# =========================================================================
# Labels and comments
# =========================================================================

@cli.group(cls=TaskGroup)
def label():
    """Task labels and the label catalog."""


@label.command("add")
@click.argument("selector")
@click.argument("name")
@click.option("--color", default=None, help="Hex color, e.g. d73a4a")
@click.option("--description", default=None)
@click.option(
    "--push",
    "push_remote",
    is_flag=True,
    help="Also create the label on the tracker, or update it there when --color or --description is given",
)
@_remote_options
@click.pass_context
def label_add(ctx, selector, name, color, description, push_remote, connector, remote):
    """Attach a label to tasks."""
    from gittask.tasks import add_label
    _emit(ctx, add_label(_ws(ctx), selector, name, color, description, push_remote, connector, remote))


@label.command("remove")
@click.argument("selector")
@click.argument("name")
@click.pass_context
def label_remove(ctx, selector, name):
    """Detach a label from tasks."""
    from gittask.tasks import remove_label
    _emit(ctx, remove_label(_ws(ctx), selector, name))


@label.command("delete")
@click.argument("name")
@click.pass_context
def label_delete(ctx, name):
    """Delete a label from the catalog and every task."""
    from gittask.tasks import delete_label
    _emit(ctx, delete_label(_ws(ctx), name))


@label.command("list")
@click.argument("task_id", type=int, required=False)
@click.pass_context
def label_list(ctx, task_id):
    """List the label catalog, or one task's labels."""
    from gittask.tasks import list_labels
    _emit(ctx, list_labels(_ws(ctx), task_id))


@cli.group(cls=TaskGroup)
def comment():
    """Task comments."""


@comment.command("add")
@click.argument("task_id", type=int)
@click.argument("text")
@click.option("--push", "push_remote", is_flag=True, help="Also post the comment on the tracker")
@_remote_options
@click.pass_context
def comment_add(ctx, task_id, text, push_remote, connector, remote):
    """Add a comment to a task."""
    from gittask.tasks import add_comment
    _emit(ctx, add_comment(_ws(ctx), task_id, text, push_remote, connector, remote))


@comment.command("edit")
@click.argument("task_id", type=int)
@click.argument("comment_id", type=int)
@click.argument("text", required=False)
@click.option("--push", "push_remote", is_flag=True, help="Also update the comment on the tracker")
@_remote_options
@click.pass_context
def comment_edit(ctx, task_id, comment_id, text, push_remote, connector, remote):
    """Replace a comment's text (opens $EDITOR when TEXT is omitted)."""
    from gittask.errors import NotFoundError
    from gittask.tasks import edit_comment
    ws = _ws(ctx)
    if text is None:
        current = ws.repo.get(task_id).find_comment(comment_id)
        if current is None:
            raise NotFoundError(f"Comment {comment_id} not found on task {task_id}")
        text = click.edit(current.text)
        if text is None:
            _emit(ctx, {"status": "unchanged", "id": task_id, "comment_id": comment_id})
            return
    _emit(ctx, edit_comment(ws, task_id, comment_id, text.rstrip("\n"), push_remote, connector, remote))


@comment.command("delete")
@click.argument("task_id", type=int)
@click.argument("comment_id", type=int)
@click.option("--push", "push_remote", is_flag=True, help="Also delete the comment on the tracker")
@_remote_options
@click.pass_context
def comment_delete(ctx, task_id, comment_id, push_remote, connector, remote):
    """Delete a comment."""
    from gittask.tasks import delete_comment
    _emit(ctx, delete_comment(_ws(ctx), task_id, comment_id, push_remote, connector, remote))


@comment.command("list")
@click.argument("task_id", type=int)
@click.pass_context
def comment_list(ctx, task_id):
    """List a task's comments."""
    from gittask.tasks import list_comments
    _emit(ctx, list_comments(_ws(ctx), task_id))


# =========================================================================
# Import / export
# =========================================================================

@cli.command("import")
@click.argument("selector", required=False)
@click.option("-f", "--file", "source", type=click.File("r", encoding="utf-8"), default="-", help="JSON file (default: stdin)")
@click.option("--format", "fmt", type=click.Choice(["json"]), default="json")
@click.pass_context
def import_cmd(ctx, selector, source, fmt):
    """Import tasks from an exported JSON array."""
    from gittask.tasks import import_tasks
    _emit(ctx, import_tasks(_ws(ctx), source.read(), selector))


@cli.command("export")
@click.argument("selector", required=False)
@click.option("-s", "--status", multiple=True)
@click.option("-l", "--limit", default=None, type=int)
@click.option("--format", "fmt", type=click.Choice(["json"]), default="json")
@click.option("--pretty", is_flag=True, help="Indented JSON")
@click.pass_context
def export_cmd(ctx, selector, status, limit, fmt, pretty):
    """Export tasks as a JSON array."""
    from gittask.tasks import export_tasks
    click.echo(export_tasks(_ws(ctx), selector, status, limit, pretty))


# =========================================================================
# Remote sync
# =========================================================================

@cli.command()
@click.argument("selector", required=False)
@click.option("-s", "--status", default=None, help="Only open or only closed issues, by local status")
@click.option("-l", "--limit", default=None, type=int)
@click.option("--no-comments", is_flag=True)
@click.option("--no-labels", is_flag=True)
@_remote_options
@click.pass_context
def pull(ctx, selector, status, limit, no_comments, no_labels, connector, remote):
    """Pull issues from the tracker (SELECTOR holds remote issue numbers)."""
    from gittask.tasks import pull_tasks
    _emit(ctx, pull_tasks(_ws(ctx), selector, status, limit, connector, remote, no_comments, no_labels))


@cli.command()
@click.argument("selector")
@click.option("--no-comments", is_flag=True)
@click.option("--no-labels", is_flag=True)
@_remote_options
@click.pass_context
def push(ctx, selector, no_comments, no_labels, connector, remote):
    """Push tasks to the tracker, creating issues for unlinked tasks."""
    from gittask.tasks import push_tasks
    _emit(ctx, push_tasks(_ws(ctx), selector, connector, remote, no_comments, no_labels))


# =========================================================================
# Delete / clear / maintenance
# =========================================================================

@cli.command()
@click.argument("selector", required=False)
@click.option("-s", "--status", multiple=True, help="Delete every task in these statuses")
@click.option("--push", "push_remote", is_flag=True, help="Also delete linked issues on the tracker")
@_remote_options
@click.pass_context
def delete(ctx, selector, status, push_remote, connector, remote):
    """Delete tasks."""
    from gittask.tasks import delete_tasks
    _emit(ctx, delete_tasks(_ws(ctx), selector, status, push_remote, connector, remote))


@cli.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def clear(ctx, yes):
    """Delete all tasks (ids are not reused afterwards)."""
    from gittask.tasks import clear_tasks
    if not yes:
        click.confirm("Delete ALL tasks?", abort=True)
    _emit(ctx, clear_tasks(_ws(ctx)))


@cli.command("compact")
@click.pass_context
def compact_cmd(ctx):
    """Squash the task ref's history into a single commit."""
    from gittask.settings import squash_history
    _emit(ctx, squash_history(_ws(ctx)))


@cli.command("help")
@click.argument("command", nargs=-1)
@click.pass_context
def help_cmd(ctx, command):
    """Show help for a command."""
    target: click.Command = cli
    parent = ctx.parent
    for name in command:
        if not isinstance(target, click.Group) or name not in target.commands:
            raise click.UsageError(f"No such command '{' '.join(command)}'")
        target = target.commands[name]
        parent = click.Context(target, info_name=name, parent=parent)
    click.echo(target.get_help(parent if command else ctx.parent))


# =========================================================================
# Config
# =========================================================================

@cli.group(cls=TaskGroup)
def config():
    """Configuration, statuses and properties."""


@config.command("get")
@click.argument("key")
@click.pass_context
def config_get(ctx, key):
    """Print a config value."""
    from gittask.settings import config_get as _get
    result = _get(_ws(ctx), key)
    _emit(ctx, result, str(result["value"] or ""))


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--move", is_flag=True, help="For task.ref: move the tasks to the new ref")
@click.pass_context
def config_set(ctx, key, value, move):
    """Set a config value."""
    from gittask.settings import config_set as _set
    _emit(ctx, _set(_ws(ctx), key, value, move))


@config.command("unset")
@click.argument("key")
@click.pass_context
def config_unset(ctx, key):
    """Remove a config value."""
    from gittask.settings import config_unset as _unset
    _emit(ctx, _unset(_ws(ctx), key))


@config.command("list")
@click.pass_context
def config_list(ctx):
    """List known config keys and their values."""
    from gittask.settings import config_list as _list
    _emit(ctx, _list(_ws(ctx)))


@config.group("status", cls=TaskGroup)
def config_status():
    """Status definitions."""


@config_status.command("list")
@click.pass_context
def status_list(ctx):
    from gittask.settings import status_list as _list
    _emit(ctx, _list(_ws(ctx)))


@config_status.command("add")
@click.argument("name")
@click.argument("shortcut")
@click.argument("color", required=False, default="reset")
@click.option("--style", default=None, help="Comma-separated: bold, italic, underline, ...")
@click.option("--done", "is_done", is_flag=True, help="A closing status")
@click.pass_context
def status_add(ctx, name, shortcut, color, style, is_done):
    from gittask.settings import status_add as _add
    _emit(ctx, _add(_ws(ctx), name, shortcut, color, style, is_done))


@config_status.command("delete")
@click.argument("name")
@click.option("--force", is_flag=True, help="Delete even if tasks use it")
@click.pass_context
def status_delete(ctx, name, force):
    from gittask.settings import status_delete as _delete
    _emit(ctx, _delete(_ws(ctx), name, force))


@config_status.command("get")
@click.argument("name")
@click.argument("field")
@click.pass_context
def status_get(ctx, name, field):
    from gittask.settings import status_get as _get
    result = _get(_ws(ctx), name, field)
    _emit(ctx, result, result["value"])


@config_status.command("set")
@click.argument("name")
@click.argument("field")
@click.argument("value")
@click.pass_context
def status_set(ctx, name, field, value):
    from gittask.settings import status_set as _set
    _emit(ctx, _set(_ws(ctx), name, field, value))


@config_status.command("import")
@click.option("-f", "--file", "source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def status_import(ctx, source):
    from gittask.settings import status_import as _import
    _emit(ctx, _import(_ws(ctx), source.read()))


@config_status.command("export")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml")
@click.option("--pretty", is_flag=True)
@click.pass_context
def status_export(ctx, fmt, pretty):
    from gittask.settings import status_export as _export
    click.echo(_export(_ws(ctx), fmt, pretty))


@config_status.command("reset")
@click.pass_context
def status_reset(ctx):
    from gittask.settings import status_reset as _reset
    _emit(ctx, _reset(_ws(ctx)))


@config.group("properties", cls=TaskGroup)
def config_properties():
    """Property definitions."""


@config_properties.command("list")
@click.pass_context
def property_list(ctx):
    from gittask.settings import property_list as _list
    _emit(ctx, _list(_ws(ctx)))


@config_properties.command("add")
@click.argument("name")
@click.argument("value_type", type=click.Choice(["string", "integer", "datetime", "text", "enum"]))
@click.argument("color", required=False, default="reset")
@click.option("--style", default=None)
@click.option("--enum", "enum_values", multiple=True, help="value:color[:style] (repeatable)")
@click.option("--cond", "conditions", multiple=True, help="expression:color[:style] (repeatable)")
@click.pass_context
def property_add(ctx, name, value_type, color, style, enum_values, conditions):
    from gittask.settings import property_add as _add
    _emit(ctx, _add(_ws(ctx), name, value_type, color, style, list(enum_values), list(conditions)))


@config_properties.command("delete")
@click.argument("name")
@click.option("--force", is_flag=True, help="Delete even if tasks hold the property")
@click.pass_context
def property_delete(ctx, name, force):
    from gittask.settings import property_delete as _delete
    _emit(ctx, _delete(_ws(ctx), name, force))


@config_properties.command("get")
@click.argument("name")
@click.argument("field")
@click.pass_context
def property_get(ctx, name, field):
    from gittask.settings import property_get as _get
    result = _get(_ws(ctx), name, field)
    _emit(ctx, result, result["value"])


@config_properties.command("set")
@click.argument("name")
@click.argument("field")
@click.argument("value")
@click.pass_context
def property_set(ctx, name, field, value):
    from gittask.settings import property_set as _set
    _emit(ctx, _set(_ws(ctx), name, field, value))


@config_properties.command("enum")
@click.argument("action", type=click.Choice(["add", "set", "delete"]))
@click.argument("name")
@click.argument("value")
@click.argument("color", required=False, default="reset")
@click.option("--style", default=None)
@click.pass_context
def property_enum(ctx, action, name, value, color, style):
    """Add, restyle or delete an enum value."""
    from gittask.settings import property_enum as _enum
    _emit(ctx, _enum(_ws(ctx), action, name, value, color, style))


@config_properties.command("cond")
@click.argument("action", type=click.Choice(["add", "clear"]))
@click.argument("name")
@click.argument("condition", required=False, default="")
@click.argument("color", required=False, default="reset")
@click.option("--style", default=None)
@click.pass_context
def property_cond(ctx, action, name, condition, color, style):
    """Add a conditional format rule, or clear all of them."""
    from gittask.settings import property_conditions as _cond
    _emit(ctx, _cond(_ws(ctx), action, name, condition, color, style))


@config_properties.command("import")
@click.option("-f", "--file", "source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def property_import(ctx, source):
    from gittask.settings import property_import as _import
    _emit(ctx, _import(_ws(ctx), source.read()))


@config_properties.command("export")
@click.option("--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml")
@click.option("--pretty", is_flag=True)
@click.pass_context
def property_export(ctx, fmt, pretty):
    from gittask.settings import property_export as _export
    click.echo(_export(_ws(ctx), fmt, pretty))


@config_properties.command("reset")
@click.pass_context
def property_reset(ctx):
    from gittask.settings import property_reset as _reset
    _emit(ctx, _reset(_ws(ctx)))


if __name__ == "__main__":
    cli()
