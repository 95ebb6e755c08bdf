"""Git object store adapter: snapshots of a ref, commits, compare-and-swap ref moves.

All access goes through git plumbing subprocesses. A transaction writes
blobs, builds trees bottom-up with mktree, creates a commit parented on the
expected previous commit, then moves the ref with
`git update-ref <ref> <new> <old>`, which refuses the update when the ref no
longer points at <old>. Objects written by a losing transaction stay
unreferenced until git gc prunes them.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from gittask.defaults import resolve_repo_dir
from gittask.errors import ConcurrentModificationError, NotFoundError, ObjectStoreError

log = logging.getLogger(__name__)

BLOB_MODE = "100644"
TREE_MODE = "040000"

# (path, new content); None deletes the path
Mutation = tuple[str, "bytes | None"]


def run_git(
    repo_dir: str | Path,
    *args: str,
    input: bytes | None = None,
    check: bool = True,
    git: str = "git",
) -> subprocess.CompletedProcess:
    """Run one git command in repo_dir and return the completed process (bytes I/O)."""
    cmd = [git, "-C", str(repo_dir), *args]
    log.debug("git %s", " ".join(args))
    try:
        result = subprocess.run(cmd, input=input, capture_output=True)
    except OSError as exc:
        raise ObjectStoreError(f"Cannot run git: {exc}") from exc
    if check and result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise ObjectStoreError(f"git {args[0]} failed: {stderr}")
    return result


@dataclass
class Snapshot:
    """The state of a ref: the commit it points at and every blob under it by path."""

    commit_id: str | None
    blobs: dict[str, bytes] = field(default_factory=dict)


class GitObjectStore:
    def __init__(self, repo_dir: str | Path | None = None, git: str = "git"):
        self.repo_dir = resolve_repo_dir(repo_dir)
        self._git_bin = git

    def _git(self, *args: str, input: bytes | None = None, check: bool = True) -> subprocess.CompletedProcess:
        return run_git(self.repo_dir, *args, input=input, check=check, git=self._git_bin)

    def _out(self, *args: str, input: bytes | None = None) -> str:
        return self._git(*args, input=input).stdout.decode("utf-8").strip()

    # --- refs ---

    def is_repository(self) -> bool:
        return self._git("rev-parse", "--git-dir", check=False).returncode == 0

    def resolve_ref(self, ref: str) -> str | None:
        """Commit id the ref points at, or None when the ref does not exist."""
        result = self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.decode("utf-8").strip() or None

    def update_ref(self, ref: str, new_id: str, expected_old: str | None, message: str = "") -> None:
        """Move ref to new_id only if it still points at expected_old (None: must not exist)."""
        result = self._git(
            "update-ref", "-m", message or "git-task", ref, new_id, expected_old or "",
            check=False,
        )
        if result.returncode == 0:
            return
        current = self.resolve_ref(ref)
        if current != expected_old:
            raise ConcurrentModificationError(
                f"{ref} moved concurrently: expected {expected_old or 'no ref'}, found {current or 'no ref'}"
            )
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise ObjectStoreError(f"git update-ref failed: {stderr}")

    def delete_ref(self, ref: str, expected_old: str | None = None) -> None:
        args = ["update-ref", "-d", ref]
        if expected_old:
            args.append(expected_old)
        self._git(*args)

    def move_ref(self, old_ref: str, new_ref: str, delete_old: bool = True) -> str | None:
        """Point new_ref at old_ref's commit, then optionally drop old_ref. Returns the commit id."""
        commit_id = self.resolve_ref(old_ref)
        if commit_id is None:
            return None
        self.update_ref(new_ref, commit_id, self.resolve_ref(new_ref), f"git-task: move {old_ref}")
        if delete_old and old_ref != new_ref:
            self.delete_ref(old_ref, commit_id)
        return commit_id

    # --- reads ---

    def read_tree(self, ref: str) -> Snapshot:
        """Load every blob reachable from ref. Raises NotFoundError if the ref is missing."""
        commit_id = self.resolve_ref(ref)
        if commit_id is None:
            raise NotFoundError(f"Reference {ref} not found")
        paths = self._list_tree(commit_id)
        contents = self._read_blobs(paths.values())
        return Snapshot(commit_id, {path: contents[sha] for path, sha in paths.items()})

    def _list_tree(self, treeish: str) -> dict[str, str]:
        out = self._git("ls-tree", "-r", "-z", treeish).stdout
        entries: dict[str, str] = {}
        for raw in out.split(b"\0"):
            if not raw:
                continue
            meta, path = raw.split(b"\t", 1)
            _mode, obj_type, sha = meta.split()
            if obj_type == b"blob":
                entries[path.decode("utf-8")] = sha.decode("ascii")
        return entries

    def _read_blobs(self, shas: Iterable[str]) -> dict[str, bytes]:
        unique = sorted(set(shas))
        if not unique:
            return {}
        out = self._git("cat-file", "--batch", input=("\n".join(unique) + "\n").encode("ascii")).stdout
        result: dict[str, bytes] = {}
        pos = 0
        while pos < len(out):
            eol = out.index(b"\n", pos)
            header = out[pos:eol].split()
            if len(header) < 3:
                raise ObjectStoreError(f"Object {header[0].decode()} missing from the object database")
            size = int(header[2])
            start = eol + 1
            result[header[0].decode("ascii")] = out[start:start + size]
            pos = start + size + 1
        return result

    # --- writes ---

    def write_transaction(
        self,
        ref: str,
        expected_old: str | None,
        mutations: list[Mutation],
        message: str = "git-task",
    ) -> str:
        """Commit mutations on top of expected_old and CAS-move ref. Returns the new commit id.

        Raises ConcurrentModificationError without retrying when ref has moved.
        """
        entries = self._list_tree(expected_old) if expected_old else {}
        for path, content in mutations:
            if content is None:
                entries.pop(path, None)
            else:
                entries[path] = self._out("hash-object", "-w", "--stdin", input=content)
        tree_id = self._write_tree(entries)
        args = ["commit-tree", tree_id, "-m", message]
        if expected_old:
            args += ["-p", expected_old]
        commit_id = self._out(*args)
        self.update_ref(ref, commit_id, expected_old, message)
        log.debug("%s: %s -> %s (%d paths)", ref, expected_old, commit_id, len(mutations))
        return commit_id

    def _write_tree(self, entries: dict[str, str]) -> str:
        files: dict[str, str] = {}
        dirs: dict[str, dict[str, str]] = {}
        for path, sha in entries.items():
            head, sep, rest = path.partition("/")
            if sep:
                dirs.setdefault(head, {})[rest] = sha
            else:
                files[head] = sha
        lines = [f"{BLOB_MODE} blob {sha}\t{name}" for name, sha in files.items()]
        lines += [f"{TREE_MODE} tree {self._write_tree(sub)}\t{name}" for name, sub in dirs.items()]
        data = "".join(line + "\0" for line in lines).encode("utf-8")
        return self._out("mktree", "-z", input=data)

    # --- maintenance ---

    def squash(self, ref: str, message: str = "git-task: squash history") -> str | None:
        """Replace ref's history with a single parentless commit of its current tree."""
        commit_id = self.resolve_ref(ref)
        if commit_id is None:
            return None
        tree_id = self._out("rev-parse", f"{commit_id}^{{tree}}")
        new_id = self._out("commit-tree", tree_id, "-m", message)
        self.update_ref(ref, new_id, commit_id, message)
        return new_id
