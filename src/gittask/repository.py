"""Task repository: the document store over one git ref.

Every write is a batch of logical mutations. apply() reads the current
snapshot, replays the mutations against an in-memory view, serializes the
touched records and commits them with a compare-and-swap ref move. A lost
race re-reads the ref and replays the *same* mutations, up to
MAX_TRANSACTION_ATTEMPTS times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import quote, unquote

from gittask import defaults
from gittask.config import TaskConfig
from gittask.errors import ConcurrentModificationError, EncodingError, NotFoundError, ValidationError
from gittask.gitstore import GitObjectStore, Mutation, Snapshot
from gittask.models import Comment, Label, Task, decode_label, decode_task, encode_label, encode_task

log = logging.getLogger(__name__)


def task_path(task_id: int) -> str:
    return f"{defaults.TASKS_DIR}/{task_id}"


def label_path(name: str) -> str:
    return f"{defaults.LABELS_DIR}/{quote(name, safe='')}"


class RepositoryState:
    """Decoded view of one snapshot plus the set of records a transaction touched."""

    def __init__(self, snapshot: Snapshot):
        self.commit_id = snapshot.commit_id
        self.tasks: dict[int, Task] = {}
        self.labels: dict[str, Label] = {}
        self.sequence = 0
        self._dirty_tasks: set[int] = set()
        self._dirty_labels: set[str] = set()
        self._sequence_dirty = False

        task_prefix = defaults.TASKS_DIR + "/"
        label_prefix = defaults.LABELS_DIR + "/"
        for path, raw in snapshot.blobs.items():
            if path.startswith(task_prefix):
                task = decode_task(raw, path)
                stored_id = path[len(task_prefix):]
                if str(task.id) != stored_id:
                    raise EncodingError(f"Record at {path} carries id {task.id}")
                self.tasks[task.id] = task
            elif path.startswith(label_prefix):
                label = decode_label(raw, path)
                if label.name != unquote(path[len(label_prefix):]):
                    raise EncodingError(f"Record at {path} carries label '{label.name}'")
                self.labels[label.name] = label
            elif path == defaults.SEQUENCE_PATH:
                text = raw.decode("utf-8", errors="replace").strip()
                if not text.isdigit():
                    raise EncodingError(f"Malformed sequence at {path}: '{text}'")
                self.sequence = int(text)

    # --- reads ---

    def get(self, task_id: int) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def next_id(self) -> int:
        """One past the larger of the highest live id and the high-water mark."""
        return max(max(self.tasks, default=0), self.sequence) + 1

    # --- writes ---

    def put(self, task: Task) -> None:
        if task.id is None:
            raise ValidationError("Task has no id")
        self.tasks[task.id] = task
        self._dirty_tasks.add(task.id)
        if task.id > self.sequence:
            self.sequence = task.id
            self._sequence_dirty = True

    def touch(self, task_id: int) -> Task:
        task = self.get(task_id)
        self._dirty_tasks.add(task_id)
        return task

    def remove(self, task_id: int) -> Task:
        task = self.get(task_id)
        del self.tasks[task_id]
        self._dirty_tasks.add(task_id)
        # Keep the high-water mark so the id is never handed out again
        if task_id > self.sequence:
            self.sequence = task_id
            self._sequence_dirty = True
        return task

    def put_label(self, label: Label) -> None:
        self.labels[label.name] = label
        self._dirty_labels.add(label.name)

    def remove_label(self, name: str) -> Label:
        label = self.labels.pop(name, None)
        if label is None:
            raise NotFoundError(f"Label '{name}' not found")
        self._dirty_labels.add(name)
        return label

    def changes(self) -> list[Mutation]:
        mutations: list[Mutation] = []
        for task_id in sorted(self._dirty_tasks):
            task = self.tasks.get(task_id)
            if task is not None:
                task.validate()
            mutations.append((task_path(task_id), encode_task(task) if task is not None else None))
        for name in sorted(self._dirty_labels):
            label = self.labels.get(name)
            mutations.append((label_path(name), encode_label(label) if label is not None else None))
        if self._sequence_dirty:
            mutations.append((defaults.SEQUENCE_PATH, f"{self.sequence}\n".encode("ascii")))
        return mutations


# ---------------------------------------------------------------------------
# Logical mutations
# ---------------------------------------------------------------------------


class Operation:
    """One logical change, replayable against any snapshot."""

    def apply(self, state: RepositoryState) -> Any:
        raise NotImplementedError


@dataclass
class CreateTask(Operation):
    """Store a new task under a freshly allocated id. Returns the id."""

    template: Task

    def apply(self, state: RepositoryState) -> int:
        task = Task.from_dict(self.template.to_dict())
        task.id = state.next_id()
        state.put(task)
        return task.id


@dataclass
class PutTask(Operation):
    """Write a task under its own id, replacing any existing record."""

    task: Task

    def apply(self, state: RepositoryState) -> int:
        task = Task.from_dict(self.task.to_dict())
        state.put(task)
        return task.id


@dataclass
class UpdateTask(Operation):
    """Run change(task) on the current version of a task. Returns change's result."""

    task_id: int
    change: Callable[[Task], Any]

    def apply(self, state: RepositoryState) -> Any:
        return self.change(state.touch(self.task_id))


@dataclass
class DeleteTask(Operation):
    """Remove a task and its comments. Returns the removed record."""

    task_id: int

    def apply(self, state: RepositoryState) -> Task:
        if self.task_id not in state.tasks:
            raise ValidationError(f"Cannot delete task {self.task_id}: no such task")
        return state.remove(self.task_id)


@dataclass
class ClearTasks(Operation):
    """Delete every task. The id high-water mark survives. Returns the count."""

    def apply(self, state: RepositoryState) -> int:
        ids = list(state.tasks)
        for task_id in ids:
            state.remove(task_id)
        return len(ids)


@dataclass
class AddComment(Operation):
    """Append a comment; returns the comment id allocated within the task."""

    task_id: int
    comment: Comment

    def apply(self, state: RepositoryState) -> int:
        if self.task_id not in state.tasks:
            raise ValidationError(f"Cannot comment on task {self.task_id}: no such task")
        comment = Comment.from_dict(self.comment.to_dict())
        return state.touch(self.task_id).add_comment(comment).id


@dataclass
class UpdateComment(Operation):
    task_id: int
    comment_id: int
    change: Callable[[Comment], Any]

    def apply(self, state: RepositoryState) -> Any:
        comment = state.touch(self.task_id).find_comment(self.comment_id)
        if comment is None:
            raise NotFoundError(f"Comment {self.comment_id} not found on task {self.task_id}")
        return self.change(comment)


@dataclass
class DeleteComment(Operation):
    task_id: int
    comment_id: int

    def apply(self, state: RepositoryState) -> Comment:
        task = state.touch(self.task_id)
        comment = task.find_comment(self.comment_id)
        if comment is None:
            raise NotFoundError(f"Comment {self.comment_id} not found on task {self.task_id}")
        task.comments.remove(comment)
        return comment


@dataclass
class PutLabel(Operation):
    """Create or replace a catalog label. With keep_existing, an existing entry wins."""

    label: Label
    keep_existing: bool = False

    def apply(self, state: RepositoryState) -> Label:
        existing = state.labels.get(self.label.name)
        if existing is not None and self.keep_existing:
            return existing
        label = Label.from_dict(self.label.to_dict())
        if existing is not None:
            label.links = {**existing.links, **label.links}
        state.put_label(label)
        return label


@dataclass
class DeleteLabel(Operation):
    """Remove a label from the catalog and from every task carrying it."""

    name: str

    def apply(self, state: RepositoryState) -> list[int]:
        state.remove_label(self.name)
        stripped = []
        for task_id, task in state.tasks.items():
            if self.name in task.labels:
                task.labels.remove(self.name)
                state.touch(task_id)
                stripped.append(task_id)
        return stripped


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


@dataclass
class TransactionResult:
    commit_id: str | None
    attempts: int
    values: list[Any] = field(default_factory=list)
    changed: bool = True


class TaskRepository:
    def __init__(self, store: GitObjectStore, config: TaskConfig):
        self.store = store
        self.config = config

    @property
    def ref(self) -> str:
        return self.config.ref

    def snapshot(self) -> Snapshot:
        try:
            return self.store.read_tree(self.ref)
        except NotFoundError:
            return Snapshot(None, {})

    def state(self) -> RepositoryState:
        return RepositoryState(self.snapshot())

    # --- reads ---

    def load_all(self) -> list[Task]:
        """Every task, ordered by id."""
        state = self.state()
        return [state.tasks[task_id] for task_id in sorted(state.tasks)]

    def get(self, task_id: int) -> Task:
        return self.state().get(task_id)

    def find(self, task_id: int) -> Task | None:
        return self.state().tasks.get(task_id)

    def next_id(self) -> int:
        return self.state().next_id()

    def labels(self) -> list[Label]:
        state = self.state()
        return [state.labels[name] for name in sorted(state.labels)]

    # --- writes ---

    def apply(self, operations: list[Operation], message: str = "git-task") -> TransactionResult:
        """Apply operations atomically; retries lost CAS races with a fresh snapshot."""
        for attempt in range(1, defaults.MAX_TRANSACTION_ATTEMPTS + 1):
            state = self.state()
            values = [op.apply(state) for op in operations]
            mutations = state.changes()
            if not mutations:
                return TransactionResult(state.commit_id, attempt, values, changed=False)
            try:
                commit_id = self.store.write_transaction(self.ref, state.commit_id, mutations, message)
            except ConcurrentModificationError as exc:
                log.debug("transaction attempt %d/%d lost a race: %s", attempt, defaults.MAX_TRANSACTION_ATTEMPTS, exc)
                continue
            return TransactionResult(commit_id, attempt, values)
        raise ConcurrentModificationError(
            f"{self.ref} kept moving; gave up after {defaults.MAX_TRANSACTION_ATTEMPTS} attempts"
        )

    def create(self, task: Task, message: str = "git-task: create task") -> int:
        return self.apply([CreateTask(task)], message).values[0]

    def update(self, task_id: int, change: Callable[[Task], Any], message: str = "git-task: update task") -> Any:
        return self.apply([UpdateTask(task_id, change)], message).values[0]
