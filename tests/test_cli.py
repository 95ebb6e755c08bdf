"""CLI smoke and workflow tests through click's CliRunner."""

from __future__ import annotations

import json

import click
import pytest
from click.testing import CliRunner

from gittask.cli import cli


@pytest.fixture
def run(git_repo):
    runner = CliRunner()

    def invoke(*args: str, input: str | None = None):
        return runner.invoke(cli, ["-C", str(git_repo), *args], input=input)

    return invoke


def _json(result) -> dict:
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


def test_cli_is_group():
    assert isinstance(cli, click.Group)


def test_cli_help_exits_zero():
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0


def test_cli_expected_subcommands():
    expected = [
        "list", "show", "stats", "create", "status", "get", "set", "unset", "edit", "replace",
        "label", "comment", "import", "export", "pull", "push", "delete", "clear", "compact",
        "help", "config",
    ]
    registered = list(cli.commands.keys())
    for cmd in expected:
        assert cmd in registered, f"Missing command: {cmd}"


def test_config_group_subcommands():
    config = cli.commands["config"]
    assert {"get", "set", "unset", "list", "status", "properties"} <= set(config.commands)
    assert {"enum", "cond", "import", "export", "reset"} <= set(config.commands["properties"].commands)


def test_help_command_for_subcommand(run):
    result = run("help", "label", "add")
    assert result.exit_code == 0
    assert "Attach a label" in result.output


# ---------------------------------------------------------------------------
# Task workflow
# ---------------------------------------------------------------------------


def test_create_list_show(run):
    assert _json(run("create", "Write docs", "Cover the CLI"))["id"] == 1
    assert _json(run("create", "Fix bug", "-s", "i", "-p", "priority=HIGH"))["task_status"] == "IN_PROGRESS"

    listed = _json(run("list"))
    assert [t["id"] for t in listed["tasks"]] == [2, 1]
    assert listed["tasks"][0]["props"]["priority"] == "HIGH"
    assert listed["tasks"][0]["props"]["author"] == "Test User"

    shown = _json(run("show", "1"))["task"]
    assert shown["props"]["description"] == "Cover the CLI"


def test_list_filters_and_compact(run):
    run("create", "one")
    run("create", "two")
    run("status", "1", "c")

    result = run("--compact", "list", "--status", "o")
    assert result.exit_code == 0
    assert result.output.strip() == "#2 [OPEN] two"

    assert _json(run("list", "--keyword", "one"))["count"] == 1
    assert _json(run("list", "1..2", "--sort", "id asc"))["tasks"][0]["id"] == 1


def test_human_output(run):
    run("create", "Readable")
    result = run("--human", "--no-color", "list")
    assert result.exit_code == 0
    assert "NAME" in result.output and "Readable" in result.output

    shown = run("--human", "--no-color", "show", "1")
    assert "Name: Readable" in shown.output


def test_missing_task_exits_nonzero(run):
    result = run("show", "42")
    assert result.exit_code == 1
    assert "NotFound" in result.output


def test_bad_selector_exits_nonzero(run):
    run("create", "x")
    result = run("status", "3..1", "o")
    assert result.exit_code == 1
    assert "ValidationError" in result.output


def test_set_get_unset_replace(run):
    run("create", "Task", "old text here")
    run("set", "1", "estimate", "3")
    assert _json(run("get", "1", "estimate"))["value"] == "3"
    run("replace", "1", "description", "old", "new")
    assert _json(run("get", "1", "description"))["value"] == "new text here"
    run("replace", "1", "description", r"\s+", "_", "--regex")
    assert _json(run("get", "1", "description"))["value"] == "new_text_here"
    run("unset", "1", "estimate")
    assert run("get", "1", "estimate").exit_code == 1


def test_labels_and_comments(run):
    run("create", "Task")
    labeled = _json(run("label", "add", "1", "bug", "--color", "#d73a4a"))
    assert labeled["label"]["color"] == "d73a4a"
    assert [l["name"] for l in _json(run("label", "list", "1"))["labels"]] == ["bug"]

    assert _json(run("comment", "add", "1", "first!"))["comment_id"] == 1
    run("comment", "edit", "1", "1", "edited")
    assert [c["text"] for c in _json(run("comment", "list", "1"))["comments"]] == ["edited"]
    run("comment", "delete", "1", "1")
    assert _json(run("comment", "list", "1"))["comments"] == []

    assert _json(run("label", "delete", "bug"))["ids"] == [1]
    assert _json(run("label", "list"))["labels"] == []


def test_export_import_round_trip(run, git_repo):
    run("create", "a")
    run("create", "b")
    exported = run("export")
    assert exported.exit_code == 0
    run("clear", "--yes")
    assert _json(run("list"))["tasks"] == []

    imported = _json(run("import", input=exported.output))
    assert imported["ids"] == [1, 2]
    assert json.loads(run("export").output) == json.loads(exported.output)


def test_delete_and_clear_never_reuse_ids(run):
    for name in ("a", "b", "c"):
        run("create", name)
    assert _json(run("delete", "3"))["ids"] == [3]
    assert _json(run("create", "d"))["id"] == 4
    assert _json(run("delete", "--status", "o"))["count"] == 3
    run("create", "e")
    assert _json(run("clear", "--yes"))["count"] == 1
    assert _json(run("create", "f"))["id"] == 6


def test_clear_asks_for_confirmation(run):
    run("create", "keep me")
    result = run("clear", input="n\n")
    assert result.exit_code == 1
    assert _json(run("list"))["count"] == 1


def test_stats(run):
    run("create", "a")
    run("create", "b")
    run("status", "2", "c")
    stats = _json(run("stats"))
    assert stats["total"] == 2
    assert stats["by_status"] == {"OPEN": 1, "IN_PROGRESS": 0, "CLOSED": 1}
    assert stats["top_authors"] == [{"author": "Test User", "count": 2}]


def test_push_without_tracker_remote_fails(run):
    run("create", "a")
    result = run("push", "1")
    assert result.exit_code == 1
    assert "No git remote" in result.output


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def test_config_plain_keys(run):
    assert _json(run("config", "get", "task.list.sort"))["value"] == "id desc"
    run("config", "set", "task.list.sort", "name")
    assert _json(run("config", "get", "task.list.sort"))["value"] == "name"
    assert run("config", "get", "task.nope").exit_code == 1
    assert _json(run("config", "unset", "task.list.sort"))["status"] == "unset"


def test_config_move_ref(run, git_repo):
    run("create", "moving")
    moved = _json(run("config", "set", "task.ref", "tasks/archive", "--move"))
    assert moved["value"] == "refs/tasks/archive"
    assert _json(run("list"))["count"] == 1
    assert _json(run("config", "get", "task.ref"))["value"] == "refs/tasks/archive"


def test_config_status_management(run):
    run("config", "status", "add", "BLOCKED", "b", "magenta", "--style", "bold")
    run("create", "stuck", "-s", "b")
    assert run("config", "status", "delete", "BLOCKED").exit_code == 1

    renamed = _json(run("config", "status", "set", "BLOCKED", "name", "WAITING"))
    assert renamed["renamed"] == [1]
    assert _json(run("get", "1", "status"))["value"] == "WAITING"

    exported = run("config", "status", "export", "--format", "json")
    assert [s["name"] for s in json.loads(exported.output)][-1] == "WAITING"
    run("config", "status", "reset")
    assert [s["name"] for s in _json(run("config", "status", "list"))["statuses"]] == ["OPEN", "IN_PROGRESS", "CLOSED"]


def test_config_properties(run):
    run("config", "properties", "add", "priority", "enum", "--enum", "HIGH:red:bold", "--enum", "LOW:green")
    props = {p["name"]: p for p in _json(run("config", "properties", "list"))["properties"]}
    assert props["priority"]["enum_values"] == [
        {"name": "HIGH", "color": "red", "style": "bold"},
        {"name": "LOW", "color": "green", "style": None},
    ]
    run("config", "properties", "cond", "add", "priority", "status == 'CLOSED'", "bright_black")
    cleared = _json(run("config", "properties", "cond", "clear", "priority"))
    assert cleared["count"] == 1

    yaml_doc = run("config", "properties", "export").output
    run("config", "properties", "reset")
    run("config", "properties", "import", input=yaml_doc)
    assert "priority" in {p["name"] for p in _json(run("config", "properties", "list"))["properties"]}


def test_not_a_repository(tmp_path, monkeypatch):
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    plain = tmp_path / "plain"
    plain.mkdir()
    result = CliRunner().invoke(cli, ["-C", str(plain), "list"])
    assert result.exit_code == 1
    assert "not inside a git repository" in result.output
