"""Pull/push against an in-memory tracker."""

from __future__ import annotations

import json
import threading

import httpx
from conftest import FakeTracker

from gittask.errors import RemoteFailureError
from gittask.remotes import GitHubTracker
from gittask.models import Comment, Label, Task
from gittask.remotes import RemoteLabel
from gittask.repository import AddComment, DeleteTask, PutLabel
from gittask.sync import LINK_NOT_PERSISTED, delete_remote, pull, push
from gittask.tasks import set_property, set_status


def _new(name: str, status: str = "OPEN") -> Task:
    return Task.new(name, f"about {name}", status)


def _actions(report) -> list[tuple[int | None, str]]:
    return [(item.target, item.action) for item in report.results]


def _remote_label(name: str, color: str) -> RemoteLabel:
    return RemoteLabel(name, color, id=f"id-{name}")


# ---------------------------------------------------------------------------
# Pull
# ---------------------------------------------------------------------------


def test_pull_creates_linked_tasks_with_comments_and_labels(ws, tracker):
    tracker.labels["bug"] = _remote_label("bug", "d73a4a")
    first = tracker.add_issue("Crash on start", "stack trace", labels=["bug"])
    tracker.add_remote_comment(first.id, "same here", author="hubot")
    second = tracker.add_issue("Old request", is_open=False)

    report = pull(ws.repo, tracker, ws.config)

    assert report.ok
    assert _actions(report) == [(1, "created"), (2, "created")]
    tasks = ws.repo.load_all()
    assert [(t.name, t.status, t.links) for t in tasks] == [
        ("Crash on start", "OPEN", {"github": first.id}),
        ("Old request", "CLOSED", {"github": second.id}),
    ]
    assert tasks[0].get("author") == "octocat"
    assert tasks[0].get("created") == "1700000000"
    assert tasks[0].labels == ["bug"]
    assert [(c.text, c.author) for c in tasks[0].comments] == [("same here", "hubot")]
    assert ws.repo.labels()[0].color == "d73a4a"


def test_pull_is_one_commit(ws, tracker):
    for n in range(3):
        tracker.add_issue(f"issue {n}")
    report = pull(ws.repo, tracker, ws.config)
    assert report.commit_id == ws.store.resolve_ref(ws.config.ref)
    assert len(ws.repo.load_all()) == 3


def test_pull_only_overwrites_tracker_fields(ws, tracker):
    issue = tracker.add_issue("Original title", "body")
    pull(ws.repo, tracker, ws.config)
    set_property(ws, "1", "priority", "HIGH")
    set_status(ws, "1", "IN_PROGRESS")

    issue.title = "Retitled upstream"
    issue.body = "new body"
    report = pull(ws.repo, tracker, ws.config)

    task = ws.repo.get(1)
    assert _actions(report) == [(1, "updated")]
    assert task.name == "Retitled upstream"
    assert task.get("description") == "new body"
    assert task.get("priority") == "HIGH"
    # Status comes from the open/closed mapping
    assert task.status == "OPEN"

    issue.is_open = False
    pull(ws.repo, tracker, ws.config)
    assert ws.repo.get(1).status == "CLOSED"


def test_pull_unchanged_issue_makes_no_commit(ws, tracker):
    tracker.add_issue("Stable")
    pull(ws.repo, tracker, ws.config)
    head = ws.store.resolve_ref(ws.config.ref)
    report = pull(ws.repo, tracker, ws.config)
    assert _actions(report) == [(1, "unchanged")]
    assert report.commit_id is None
    assert ws.store.resolve_ref(ws.config.ref) == head


def test_pull_never_deletes_local_comments(ws, tracker):
    issue = tracker.add_issue("Discussed")
    tracker.add_remote_comment(issue.id, "remote note")
    pull(ws.repo, tracker, ws.config)
    ws.repo.apply([AddComment(1, Comment(text="local only"))])

    tracker.comments[issue.id].clear()
    tracker.issues[issue.id].comment_count = 0
    pull(ws.repo, tracker, ws.config)

    assert [c.text for c in ws.repo.get(1).comments] == ["remote note", "local only"]


def test_pull_by_id_reports_missing_issue(ws, tracker):
    tracker.add_issue("Exists")
    report = pull(ws.repo, tracker, ws.config, ids=["1", "404"])
    assert [t.name for t in ws.repo.load_all()] == ["Exists"]
    assert [(item.remote_id, item.kind) for item in report.failures] == [("404", "NotFound")]


def test_pull_status_filter(ws, tracker):
    tracker.add_issue("open one")
    tracker.add_issue("closed one", is_open=False)
    pull(ws.repo, tracker, ws.config, status="c")
    assert [t.name for t in ws.repo.load_all()] == ["closed one"]


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


def test_pull_then_push_is_idempotent(ws, tracker):
    tracker.labels["bug"] = _remote_label("bug", "d73a4a")
    issue = tracker.add_issue("Crash", "trace", labels=["bug"])
    tracker.add_remote_comment(issue.id, "me too")
    tracker.add_issue("Done thing", is_open=False)
    pull(ws.repo, tracker, ws.config)
    head = ws.store.resolve_ref(ws.config.ref)

    report = push(ws.repo, tracker, ws.config, [1, 2])

    assert report.ok
    assert _actions(report) == [(1, "unchanged"), (2, "unchanged")]
    assert tracker.called("update_issue") == []
    assert tracker.called("create_issue") == []
    assert tracker.called("create_comment") == []
    assert ws.store.resolve_ref(ws.config.ref) == head


def test_push_isolates_failures_per_task(ws, tracker):
    for n in range(1, 6):
        ws.repo.create(_new(f"task {n}"))
    tracker.fail[("create_issue", "task 3")] = RemoteFailureError("503 upstream", "github", retryable=True)

    report = push(ws.repo, tracker, ws.config, [1, 2, 3, 4, 5])

    assert [item.target for item in report.results] == [1, 2, 3, 4, 5]
    assert [(item.target, item.kind) for item in report.failures] == [(3, "RemoteFailure")]
    linked = {t.id: t.links.get("github") for t in ws.repo.load_all()}
    assert linked[3] is None
    assert all(linked[i] for i in (1, 2, 4, 5))
    assert len(set(linked.values()) - {None}) == 4
    assert report.to_dict()["succeeded"] == 4


def test_push_updates_changed_task_and_creates_comments(ws, tracker):
    ws.repo.create(_new("first"))
    push(ws.repo, tracker, ws.config, [1])
    ws.repo.apply([AddComment(1, Comment(text="progress"))])
    set_status(ws, "1", "c")

    report = push(ws.repo, tracker, ws.config, [1])

    remote_id = ws.repo.get(1).links["github"]
    assert tracker.issues[remote_id].is_open is False
    assert [(item.comment, item.action) for item in report.results] == [(None, "updated"), (1, "created")]
    assert ws.repo.get(1).comments[0].links["github"] == tracker.comments[remote_id][0].id

    again = push(ws.repo, tracker, ws.config, [1])
    assert _actions(again) == [(1, "unchanged")]
    assert len(tracker.called("create_comment")) == 1


def test_push_missing_task_is_reported(ws, tracker):
    ws.repo.create(_new("only"))
    report = push(ws.repo, tracker, ws.config, [1, 7])
    assert [(item.target, item.kind) for item in report.failures] == [(7, "NotFound")]
    assert ws.repo.get(1).links.get("github")


def test_link_not_persisted_when_task_vanishes(ws):
    class DeletingTracker(FakeTracker):
        def create_issue(self, fields):
            remote_id = super().create_issue(fields)
            if fields.title == "doomed":
                ws.repo.apply([DeleteTask(2)])
            return remote_id

    tracker = DeletingTracker()
    ws.repo.create(_new("kept"))
    ws.repo.create(_new("doomed"))

    report = push(ws.repo, tracker, ws.config, [1, 2])

    assert [(item.target, item.kind) for item in report.failures] == [(2, LINK_NOT_PERSISTED)]
    assert report.failures[0].remote_id in tracker.issues
    assert ws.repo.get(1).links.get("github")


def test_unsupported_labels_are_skipped_not_failed(ws):
    tracker = FakeTracker(labels=False)
    task = _new("labelled")
    task.labels = ["ui"]
    ws.repo.create(task)

    report = push(ws.repo, tracker, ws.config, [1])

    assert report.ok
    assert ("skipped", "UnsupportedOperation") in [(item.action, item.kind) for item in report.results]
    remote_id = ws.repo.get(1).links["github"]
    assert tracker.issues[remote_id].labels == []


def test_push_creates_missing_remote_labels(ws, tracker):
    task = _new("labelled")
    task.labels = ["ui"]
    ws.repo.create(task)
    ws.repo.apply([PutLabel(Label("ui", "00ff00"))])
    push(ws.repo, tracker, ws.config, [1])

    assert tracker.labels["ui"].color == "00ff00"
    assert ws.repo.labels()[0].links == {"github": tracker.labels["ui"].id}
    assert tracker.issues[ws.repo.get(1).links["github"]].labels == ["ui"]


def test_push_links_issue_whose_close_call_failed(ws):
    posts = []
    patches = []
    lock = threading.Lock()

    def handler(request):
        path = request.url.path
        if request.method == "POST" and path.endswith("/issues"):
            with lock:
                posts.append(json.loads(request.content)["title"])
            return httpx.Response(201, json={"number": 7, "title": "done", "state": "open"})
        if request.method == "PATCH":
            with lock:
                patches.append(json.loads(request.content))
            if len(patches) == 1:
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(200, json={"number": 7})
        return httpx.Response(200, json={"number": 7, "title": "done", "body": "", "state": "open"})

    ws.repo.create(Task.new("done", "", "CLOSED"))
    tracker = GitHubTracker("acme", "widgets", transport=httpx.MockTransport(handler))

    report = push(ws.repo, tracker, ws.config, [1])

    assert [(item.action, item.kind) for item in report.results] == [("created", None), ("failed", "RemoteFailure")]
    assert ws.repo.get(1).links == {"github": "7"}

    again = push(ws.repo, tracker, ws.config, [1])
    assert _actions(again) == [(1, "updated")]
    assert posts == ["done"]
    assert patches[-1]["state"] == "closed"


def test_push_non_json_reply_fails_only_that_task(ws):
    def handler(request):
        title = json.loads(request.content)["title"]
        if title == "task 2":
            return httpx.Response(200, text="<html>proxy</html>")
        return httpx.Response(201, json={"number": int(title.split()[-1]) + 100})

    for n in range(1, 4):
        ws.repo.create(_new(f"task {n}"))
    tracker = GitHubTracker("acme", "widgets", transport=httpx.MockTransport(handler))

    report = push(ws.repo, tracker, ws.config, [1, 2, 3])

    assert [(item.target, item.kind) for item in report.failures] == [(2, "RemoteFailure")]
    assert {t.id: t.links.get("github") for t in ws.repo.load_all()} == {1: "101", 2: None, 3: "103"}


def test_push_unexpected_error_keeps_sibling_links(ws):
    class BrokenTracker(FakeTracker):
        def create_issue(self, fields):
            if fields.title == "task 2":
                raise KeyError("number")
            return super().create_issue(fields)

    for n in range(1, 4):
        ws.repo.create(_new(f"task {n}"))

    report = push(ws.repo, BrokenTracker(), ws.config, [1, 2, 3])

    assert [(item.target, item.kind) for item in report.failures] == [(2, "KeyError")]
    linked = {t.id: t.links.get("github") for t in ws.repo.load_all()}
    assert linked[2] is None
    assert linked[1] and linked[3]


def test_push_continues_when_label_listing_fails(ws, tracker):
    tracker.fail[("list_labels", "")] = RemoteFailureError("503 upstream", "github", retryable=True)
    ws.repo.create(_new("plain"))
    labelled = _new("labelled")
    labelled.labels = ["ui"]
    ws.repo.create(labelled)

    report = push(ws.repo, tracker, ws.config, [1, 2])

    assert [(item.target, item.kind) for item in report.failures] == [(None, "RemoteFailure")]
    assert sorted(tracker.called("create_issue")) == ["labelled", "plain"]
    assert tracker.called("create_label") == []
    assert all(t.links.get("github") for t in ws.repo.load_all())


def test_delete_remote_skips_unlinked(tracker):
    issue = tracker.add_issue("linked")
    tasks = [Task(id=1, props={"name": "a"}, links={"github": issue.id}), Task(id=2, props={"name": "b"})]
    report = delete_remote(tracker, tasks)
    assert _actions(report) == [(1, "deleted"), (2, "skipped")]
    assert issue.id not in tracker.issues
