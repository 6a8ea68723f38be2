"""GitPython-backed access to a repository for change detection.

This module is the only place that talks to git. It exposes read-only
operations (ref lookup, commit graph, tree diffs and hunk scans) and turns
every GitPython failure into BackendError so the detectors never see
library-specific exceptions.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from git import Repo
from git.exc import (
    BadName,
    BadObject,
    GitCommandError,
    InvalidGitRepositoryError,
    NoSuchPathError,
)
from git.objects import Commit, Tree

from branchscope.scm.errors import BackendError, InvariantViolation, NotARepositoryError
from branchscope.scm.models import (
    ChangeType,
    DiffComparator,
    DiffEntry,
    EditKind,
    HunkRecord,
    RefInfo,
)

logger = logging.getLogger(__name__)

DEFAULT_DIFF_ALGORITHM = "histogram"
SUPPORTED_DIFF_ALGORITHMS = frozenset({"default", "myers", "minimal", "patience", "histogram"})

# Stand-in for the working tree on the new side of a diff.
WORKING_TREE = None

_HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    r" \+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?"
    r" @@"
)

_COMMON_DIFF_OPTIONS = ("--no-color", "--no-ext-diff", "--no-textconv")

_READ_ERRORS = (BadName, BadObject, GitCommandError, ValueError, OSError)

# Keep git from opportunistically rewriting the index during diffs.
_READ_ONLY_ENV = {"GIT_OPTIONAL_LOCKS": "0", "GIT_TERMINAL_PROMPT": "0"}


def to_git_path(path: str | Path) -> str:
    """Return a repository-relative path with forward slashes."""
    return Path(path).as_posix()


def _literal(path: str | Path) -> str:
    return f":(literal){to_git_path(path)}"


class GitBackend:
    """Read-only view of a git repository with a work tree."""

    def __init__(self, repo: Repo) -> None:
        if repo.bare or repo.working_tree_dir is None:
            raise NotARepositoryError(f"Not inside a Git work tree: {repo.git_dir}")
        self.repo = repo
        self.work_tree = Path(repo.working_tree_dir)

    def close(self) -> None:
        self.repo.close()

    def __enter__(self) -> GitBackend:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Refs and commits

    def exact_ref(self, name: str) -> RefInfo | None:
        """Look up a fully-qualified ref name without any abbreviation rules."""
        status, stdout, stderr = self._git_status("show_ref", "--verify", name)
        if status != 0:
            logger.debug(f"Ref {name} not found: {stderr.strip()}")
            return None
        object_id = stdout.split()[0]
        return RefInfo(name=name, object_id=object_id)

    def head(self) -> RefInfo | None:
        """Return HEAD, or None when the current branch has no commits yet."""
        status, stdout, _ = self._git_status("rev_parse", "--verify", "--quiet", "HEAD^{commit}")
        if status != 0 or not stdout.strip():
            return None
        return RefInfo(name="HEAD", object_id=stdout.strip())

    def commit(self, object_id: str) -> Commit:
        try:
            return self.repo.commit(object_id)
        except _READ_ERRORS as exc:
            raise BackendError(f"Cannot read commit {object_id}: {exc}") from exc

    def parents_of(self, commit: Commit) -> tuple[Commit, ...]:
        try:
            return tuple(commit.parents)
        except _READ_ERRORS as exc:
            raise BackendError(f"Cannot read parents of {commit.hexsha}: {exc}") from exc

    def commit_time(self, commit: Commit) -> int:
        try:
            return commit.committed_date
        except _READ_ERRORS as exc:
            raise BackendError(f"Cannot read commit {commit.hexsha}: {exc}") from exc

    def tree_of(self, commit: Commit) -> Tree:
        try:
            return commit.tree
        except _READ_ERRORS as exc:
            raise BackendError(f"Cannot read tree of {commit.hexsha}: {exc}") from exc

    # Configuration

    def configured_diff_algorithm(self) -> str:
        """Return diff.algorithm from the merged git config, histogram if unset."""
        try:
            with self.repo.config_reader() as reader:
                value = reader.get_value("diff", "algorithm", DEFAULT_DIFF_ALGORITHM)
        except (OSError, ValueError) as exc:
            raise BackendError(f"Cannot read git configuration: {exc}") from exc
        return str(value).strip()

    # Diffs

    def diff_trees(
        self,
        old_tree: Tree,
        new_tree: Tree | None,
        comparator: DiffComparator,
        paths: Iterable[str] = (),
    ) -> list[DiffEntry]:
        """Classify every file that differs between two trees.

        Entries are classified by content identity; the comparator's
        whitespace options only apply to hunks. Pass WORKING_TREE as
        new_tree to compare against the files on disk, in which case
        untracked files that are not ignored are reported as additions.
        """
        path_args = [_literal(path) for path in paths]
        args = [
            "--name-status",
            "-z",
            "--find-renames",
            *_COMMON_DIFF_OPTIONS,
            f"--diff-algorithm={comparator.algorithm}",
            old_tree.hexsha,
        ]
        if new_tree is not WORKING_TREE:
            args.append(new_tree.hexsha)
        args.append("--")
        args.extend(path_args)

        entries = _parse_name_status(self._git_output("diff", *args))

        if new_tree is WORKING_TREE:
            untracked = self._git_output(
                "ls_files", "--others", "--exclude-standard", "-z", "--", *path_args
            )
            for path in untracked.split("\0"):
                if path:
                    entries.append(
                        DiffEntry(
                            change_type=ChangeType.ADDED,
                            old_path=None,
                            new_path=path,
                            untracked=True,
                        )
                    )
        return entries

    def format_hunks(
        self,
        old_tree: Tree,
        new_tree: Tree | None,
        entries: Iterable[DiffEntry],
        comparator: DiffComparator,
    ) -> Iterator[HunkRecord]:
        """Yield the edit regions of each entry, one git diff per entry."""
        for entry in entries:
            if entry.new_path is None:
                continue
            if entry.untracked:
                args = ["--no-index", "-U0", *_COMMON_DIFF_OPTIONS]
                args.extend(comparator.git_options())
                args.extend(["--", "/dev/null", entry.new_path])
                status, patch, stderr = self._git_status("diff", *args)
                # --no-index exits with 1 when the files differ
                if status not in (0, 1):
                    raise BackendError(
                        f"git diff failed for {entry.new_path}: {stderr.strip()}"
                    )
            else:
                args = ["-U0", "--find-renames", *_COMMON_DIFF_OPTIONS]
                args.extend(comparator.git_options())
                args.append(old_tree.hexsha)
                if new_tree is not WORKING_TREE:
                    args.append(new_tree.hexsha)
                args.append("--")
                args.extend(
                    _literal(path)
                    for path in sorted({entry.old_path, entry.new_path} - {None})
                )
                patch = self._git_output("diff", *args)

            yield from parse_hunks(entry.new_path, patch)

    # Plumbing

    def _git_output(self, command: str, *args: str) -> str:
        status, stdout, stderr = self._git_status(command, *args)
        if status != 0:
            raise BackendError(f"git {command} failed: {stderr.strip()}")
        return stdout

    def _git_status(self, command: str, *args: str) -> tuple[int, str, str]:
        logger.debug(f"Running git {command} {' '.join(args)}")
        try:
            status, stdout, stderr = getattr(self.repo.git, command)(
                *args,
                with_extended_output=True,
                with_exceptions=False,
                stdout_as_string=False,
                env=_READ_ONLY_ENV,
            )
        except (GitCommandError, OSError) as exc:
            raise BackendError(f"Failed to execute git {command}: {exc}") from exc
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        return status, stdout.decode("utf-8", errors="replace"), stderr


def _parse_name_status(output: str) -> list[DiffEntry]:
    """Parse `git diff --name-status -z` output into diff entries."""
    tokens = output.split("\0")
    entries: list[DiffEntry] = []
    i = 0
    while i < len(tokens):
        status = tokens[i].strip()
        if not status:
            i += 1
            continue
        change_type = ChangeType.from_status(status)
        if change_type in (ChangeType.RENAMED, ChangeType.COPIED):
            old_path, new_path = tokens[i + 1], tokens[i + 2]
            score = status[1:]
            entries.append(
                DiffEntry(
                    change_type=change_type,
                    old_path=old_path,
                    new_path=new_path,
                    similarity=int(score) if score.isdigit() else None,
                )
            )
            i += 3
            continue

        path = tokens[i + 1]
        if change_type == ChangeType.ADDED:
            entries.append(DiffEntry(change_type=change_type, old_path=None, new_path=path))
        elif change_type == ChangeType.DELETED:
            entries.append(DiffEntry(change_type=change_type, old_path=path, new_path=None))
        else:
            entries.append(DiffEntry(change_type=change_type, old_path=path, new_path=path))
        i += 2
    return entries


def parse_hunks(path: str, patch: str) -> Iterator[HunkRecord]:
    """Turn a zero-context patch for one file into hunk records.

    Header counts are checked against the hunk body; a disagreement means
    the patch was not produced with -U0 or was truncated.
    """
    header: re.Match[str] | None = None
    added = removed = 0

    def finish() -> HunkRecord | None:
        if header is None:
            return None
        old_start = int(header.group("old_start"))
        new_start = int(header.group("new_start"))
        old_count = int(header.group("old_count") or 1)
        new_count = int(header.group("new_count") or 1)
        if (added, removed) != (new_count, old_count):
            raise InvariantViolation(
                f"Hunk {header.group(0)} in {path} has {removed} removed and "
                f"{added} added lines"
            )
        if old_count == 0:
            kind = EditKind.INSERT
        elif new_count == 0:
            kind = EditKind.DELETE
        else:
            kind = EditKind.REPLACE
        return HunkRecord(
            path=path,
            kind=kind,
            old_start=old_start,
            old_count=old_count,
            new_start=new_start,
            new_count=new_count,
        )

    # Split on LF only: CR and form feeds are file content.
    for line in patch.split("\n"):
        if line.startswith("@@"):
            record = finish()
            if record is not None:
                yield record
            header = _HUNK_HEADER_RE.match(line)
            if header is None:
                raise InvariantViolation(f"Malformed hunk header in {path}: {line!r}")
            added = removed = 0
        elif line.startswith("diff --git "):
            record = finish()
            if record is not None:
                yield record
            header = None
        elif header is None:
            continue
        elif line.startswith("+"):
            added += 1
        elif line.startswith("-"):
            removed += 1

    record = finish()
    if record is not None:
        yield record


@contextmanager
def open_repository(path: str | Path) -> Iterator[GitBackend]:
    """Open the repository containing path and close it on exit."""
    try:
        repo = Repo(Path(path), search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError) as exc:
        raise NotARepositoryError(f"Not inside a Git work tree: {path}") from exc

    try:
        backend = GitBackend(repo)
    except NotARepositoryError:
        repo.close()
        raise

    try:
        yield backend
    finally:
        backend.close()


def find_work_tree(path: str | Path) -> Path | None:
    """Return the work tree root containing path, or None outside git."""
    try:
        with open_repository(path) as backend:
            return backend.work_tree
    except NotARepositoryError:
        return None
