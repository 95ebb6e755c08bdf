"""Task operations with an injected tracker, editor edits and table renames."""

from __future__ import annotations

import pytest

from gittask.errors import NotFoundError, RemoteFailureError, ValidationError
from gittask.remotes import RemoteLabel
from gittask.render import Renderer
from gittask.settings import config_set, property_add, property_set, status_set
from gittask.tasks import (
    add_comment,
    add_label,
    create_task,
    delete_tasks,
    edit_comment,
    edit_property,
    list_tasks,
    pull_tasks,
    push_tasks,
    set_property,
    show_task,
)


def test_create_with_push_links_the_task(ws, tracker):
    result = create_task(ws, "Ship it", "now", push_remote=True, tracker=tracker)
    assert "error" not in result
    assert result["push"]["succeeded"] == 1
    remote_id = ws.repo.get(1).links["github"]
    assert tracker.issues[remote_id].title == "Ship it"


def test_create_with_failing_push_keeps_local_task(ws, tracker):
    tracker.fail[("create_issue", "Flaky")] = RemoteFailureError("timeout", "github", retryable=True)
    result = create_task(ws, "Flaky", push_remote=True, tracker=tracker)
    assert result["kind"] == "RemoteFailure"
    assert ws.repo.get(1).links == {}


def test_create_rejects_reserved_extra_props(ws):
    with pytest.raises(ValidationError):
        create_task(ws, "x", props={"status": "CLOSED"})
    with pytest.raises(ValidationError):
        create_task(ws, "   ")


def test_comment_push_requires_linked_task(ws, tracker):
    create_task(ws, "Local only")
    result = add_comment(ws, 1, "hello", push_remote=True, tracker=tracker)
    assert result["kind"] == "ValidationError"
    # The local comment is kept
    assert ws.repo.get(1).comments[0].text == "hello"


def test_comment_push_and_edit_follow_the_link(ws, tracker):
    create_task(ws, "Linked", push_remote=True, tracker=tracker)
    remote_id = ws.repo.get(1).links["github"]
    add_comment(ws, 1, "first", push_remote=True, tracker=tracker)
    remote_comment = tracker.comments[remote_id][0]
    assert ws.repo.get(1).comments[0].links["github"] == remote_comment.id

    edit_comment(ws, 1, 1, "second", push_remote=True, tracker=tracker)
    assert remote_comment.body == "second"


def test_delete_with_push_removes_linked_issue(ws, tracker):
    create_task(ws, "Linked", push_remote=True, tracker=tracker)
    create_task(ws, "Unlinked")
    remote_id = ws.repo.get(1).links["github"]

    result = delete_tasks(ws, "1..2", push_remote=True, tracker=tracker)

    assert result["ids"] == [1, 2]
    assert remote_id not in tracker.issues
    assert [item["action"] for item in result["push"]["results"]] == ["deleted", "skipped"]
    assert ws.repo.load_all() == []


def test_pull_and_push_tasks_wrap_reports(ws, tracker):
    tracker.add_issue("Remote one")
    pulled = pull_tasks(ws, tracker=tracker)
    assert pulled["sync"]["succeeded"] == 1
    assert "error" not in pulled

    set_property(ws, "1", "name", "Renamed locally")
    pushed = push_tasks(ws, "1", tracker=tracker)
    assert pushed["sync"]["results"][0]["action"] == "updated"
    assert tracker.issues["1"].title == "Renamed locally"


def test_pull_tasks_selector_holds_remote_numbers(ws, tracker):
    for n in range(1, 4):
        tracker.add_issue(f"issue {n}")
    pull_tasks(ws, "2..3", tracker=tracker, no_comments=True)
    assert sorted(t.links["github"] for t in ws.repo.load_all()) == ["2", "3"]


def test_edit_property_with_editor(ws):
    create_task(ws, "Edit me", "before")
    result = edit_property(ws, 1, editor=lambda text: text.replace("before", "after") + "\n")
    assert result["status"] == "updated"
    assert ws.repo.get(1).get("description") == "after"

    unchanged = edit_property(ws, 1, editor=lambda text: None)
    assert unchanged["status"] == "unchanged"


def test_tracker_status_mapping_overrides_global(ws, tracker):
    config_set(ws, "task.github.status.closed", "IN_PROGRESS")
    ws.config.values["task.github.status.closed"] = "IN_PROGRESS"
    tracker.add_issue("Half done", is_open=False)
    pull_tasks(ws, tracker=tracker)
    assert ws.repo.get(1).status == "IN_PROGRESS"


def test_status_rename_moves_tasks_in_one_commit(ws):
    create_task(ws, "a")
    create_task(ws, "b")
    head = ws.store.resolve_ref(ws.config.ref)
    result = status_set(ws, "OPEN", "name", "TODO")
    assert result["renamed"] == [1, 2]
    assert {t.status for t in ws.repo.load_all()} == {"TODO"}
    log = ws.store._out("rev-list", "--count", f"{head}..{ws.config.ref}")
    assert log == "1"


def test_property_rename_keeps_key_position(ws):
    create_task(ws, "a", props={"priority": "HIGH", "size": "S"})
    property_add(ws, "priority", "enum")
    property_set(ws, "priority", "name", "urgency")
    assert list(ws.repo.get(1).props)[-2:] == ["urgency", "size"]


def test_list_and_show_render(ws):
    create_task(ws, "Rendered", "body text")
    add_comment(ws, 1, "note")
    renderer = Renderer(ws.config, color=False)
    table = renderer.task_list(list_tasks(ws)["tasks"])
    assert table.splitlines()[0].split() == ["ID", "CREATED", "STATUS", "NAME"]
    assert "Rendered" in table
    detail = renderer.task(show_task(ws, 1)["task"])
    assert "body text" in detail
    assert "Comment 1 by Test User" in detail


def test_show_missing_task(ws):
    with pytest.raises(NotFoundError):
        show_task(ws, 3)


def test_label_push_updates_existing_remote_label(ws, tracker):
    tracker.labels["bug"] = RemoteLabel("bug", "000000", id="L9")
    create_task(ws, "Labelled")

    result = add_label(ws, "1", "bug", color="#d73a4a", description="Broken", push_remote=True, tracker=tracker)

    assert "error" not in result
    assert [item["action"] for item in result["push"]["results"]] == ["updated"]
    assert (tracker.labels["bug"].color, tracker.labels["bug"].description) == ("d73a4a", "Broken")
    assert tracker.labels["bug"].id == "L9"
    assert tracker.called("create_label") == []


def test_label_push_without_style_leaves_remote_label(ws, tracker):
    tracker.labels["bug"] = RemoteLabel("bug", "000000", id="L9")
    create_task(ws, "Labelled")
    add_label(ws, "1", "bug", push_remote=True, tracker=tracker)
    assert tracker.called("update_label") == []
    assert tracker.labels["bug"].color == "000000"
