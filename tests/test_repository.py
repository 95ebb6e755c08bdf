"""Task repository: id allocation, transactions, retries and bulk transfer."""

from __future__ import annotations

import json
import subprocess

import pytest

from gittask import defaults
from gittask.errors import ConcurrentModificationError, EncodingError, NotFoundError, ValidationError
from gittask.gitstore import GitObjectStore
from gittask.models import Comment, Label, Task
from gittask.repository import (
    AddComment,
    ClearTasks,
    DeleteLabel,
    DeleteTask,
    PutLabel,
    TaskRepository,
    UpdateTask,
)
from gittask.tasks import add_comment, add_label, export_tasks, import_tasks, open_workspace, set_property


def _new(name: str) -> Task:
    return Task.new(name, "", "OPEN")


class RacingStore(GitObjectStore):
    """Lets a competing writer commit right before each of the first `races` transactions."""

    def __init__(self, repo_dir, config, races: int):
        super().__init__(repo_dir)
        self.config = config
        self.races = races
        self.attempts = 0

    def write_transaction(self, ref, expected_old, mutations, message="git-task"):
        self.attempts += 1
        if self.races:
            self.races -= 1
            competitor = TaskRepository(GitObjectStore(self.repo_dir), self.config)
            competitor.create(_new(f"competitor {self.attempts}"))
        return super().write_transaction(ref, expected_old, mutations, message)


def _racing_repo(ws, races: int) -> tuple[TaskRepository, RacingStore]:
    store = RacingStore(ws.store.repo_dir, ws.config, races)
    return TaskRepository(store, ws.config), store


# ---------------------------------------------------------------------------
# Id allocation
# ---------------------------------------------------------------------------


def test_ids_are_sequential_and_never_reused(ws):
    repo = ws.repo
    assert [repo.create(_new(n)) for n in ("a", "b", "c")] == [1, 2, 3]
    repo.apply([DeleteTask(2)])
    assert repo.create(_new("d")) == 4
    repo.apply([DeleteTask(4)])
    assert repo.create(_new("e")) == 5


def test_clear_keeps_high_water_mark(ws):
    for name in ("a", "b", "c"):
        ws.repo.create(_new(name))
    result = ws.repo.apply([ClearTasks()])
    assert result.values == [3]
    assert ws.repo.load_all() == []
    assert ws.repo.create(_new("after")) == 4


def test_empty_repository_reads_as_no_tasks(ws):
    assert ws.repo.load_all() == []
    assert ws.repo.next_id() == 1
    with pytest.raises(NotFoundError):
        ws.repo.get(1)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def test_batch_is_atomic(ws):
    ws.repo.create(_new("a"))
    before = ws.store.resolve_ref(ws.config.ref)

    def rename(task: Task) -> None:
        task.set("name", "renamed")

    with pytest.raises(NotFoundError):
        ws.repo.apply([UpdateTask(1, rename), UpdateTask(99, rename)])
    assert ws.store.resolve_ref(ws.config.ref) == before
    assert ws.repo.get(1).name == "a"


def test_no_change_skips_commit(ws):
    ws.repo.create(_new("a"))
    ws.repo.apply([PutLabel(Label("bug"))])
    before = ws.store.resolve_ref(ws.config.ref)
    result = ws.repo.apply([PutLabel(Label("bug", "000000"), keep_existing=True)])
    assert not result.changed
    assert result.commit_id == before
    assert ws.store.resolve_ref(ws.config.ref) == before
    assert ws.repo.labels()[0].color == defaults.DEFAULT_LABEL_COLOR


def test_delete_missing_task_is_validation_error(ws):
    with pytest.raises(ValidationError):
        ws.repo.apply([DeleteTask(42)])


def test_lost_race_is_retried_with_same_operations(ws):
    ws.repo.create(_new("mine"))
    repo, _store = _racing_repo(ws, races=2)
    result = repo.apply([UpdateTask(1, lambda task: task.set("priority", "HIGH"))])
    assert result.attempts == 3
    tasks = {task.id: task for task in ws.repo.load_all()}
    assert tasks[1].get("priority") == "HIGH"
    assert sorted(tasks) == [1, 2, 3]


def test_retries_exhausted_leaves_ref_as_competitor_left_it(ws):
    ws.repo.create(_new("mine"))
    repo, store = _racing_repo(ws, races=defaults.MAX_TRANSACTION_ATTEMPTS)
    with pytest.raises(ConcurrentModificationError):
        repo.apply([UpdateTask(1, lambda task: task.set("priority", "HIGH"))])
    assert store.attempts == defaults.MAX_TRANSACTION_ATTEMPTS
    assert ws.repo.get(1).get("priority") is None
    assert len(ws.repo.load_all()) == 1 + defaults.MAX_TRANSACTION_ATTEMPTS


def test_concurrent_creates_get_distinct_ids(ws):
    repo, _store = _racing_repo(ws, races=1)
    task_id = repo.create(_new("mine"))
    assert task_id == 2
    assert [task.name for task in ws.repo.load_all()] == ["competitor 1", "mine"]


# ---------------------------------------------------------------------------
# Labels and comments
# ---------------------------------------------------------------------------


def test_delete_label_strips_it_from_tasks(ws):
    task = _new("a")
    task.labels = ["bug", "ui"]
    ws.repo.create(task)
    ws.repo.apply([PutLabel(Label("bug", "d73a4a")), PutLabel(Label("ui"))])
    result = ws.repo.apply([DeleteLabel("bug")])
    assert result.values == [[1]]
    assert ws.repo.get(1).labels == ["ui"]
    assert [label.name for label in ws.repo.labels()] == ["ui"]


def test_label_names_with_slashes_are_stored_safely(ws):
    ws.repo.apply([PutLabel(Label("area/backend"))])
    assert ws.repo.labels()[0].name == "area/backend"


def test_add_comment_to_missing_task(ws):
    with pytest.raises(ValidationError):
        ws.repo.apply([AddComment(5, Comment(text="hello"))])


# ---------------------------------------------------------------------------
# Export / import
# ---------------------------------------------------------------------------


def test_export_import_into_empty_repository(ws, tmp_path):
    ws.repo.create(_new("first"))
    ws.repo.create(_new("second"))
    set_property(ws, "2", "priority", "HIGH")
    add_comment(ws, 2, "looks good")
    add_label(ws, "1", "bug", color="d73a4a")
    document = export_tasks(ws)

    other = tmp_path / "other"
    other.mkdir()
    subprocess.run(["git", "init", "-q", str(other)], check=True)
    target = open_workspace(other)
    result = import_tasks(target, document)

    assert result["ids"] == [1, 2]
    assert json.loads(export_tasks(target)) == json.loads(document)
    assert target.repo.create(_new("third")) == 3


def test_import_rejects_non_array(ws):
    with pytest.raises(EncodingError):
        import_tasks(ws, '{"id": 1}')
