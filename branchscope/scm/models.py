"""Data models shared by the change detection stages.

Diff entries and hunk records are plain immutable values produced by the
backend; the detectors only classify and count them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"

    @classmethod
    def from_status(cls, status: str) -> ChangeType:
        """Map a git name-status letter (A, M, D, R100, C075, T) to a change type."""
        letter = status[:1].upper()
        if letter not in _STATUS_LETTERS:
            raise ValueError(f"Unknown diff status: {status!r}")
        return _STATUS_LETTERS[letter]


_STATUS_LETTERS = {
    "A": ChangeType.ADDED,
    "M": ChangeType.MODIFIED,
    # Type changes (file <-> symlink) keep the path; treat as a modification.
    "T": ChangeType.MODIFIED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
    "C": ChangeType.COPIED,
}


class WhitespacePolicy(str, Enum):
    RESPECT_ALL = "respect-all"
    IGNORE_ALL = "ignore-all-whitespace"


class EditKind(str, Enum):
    INSERT = "insert"
    DELETE = "delete"
    REPLACE = "replace"


@dataclass(frozen=True)
class DiffComparator:
    """How two versions of a text are compared."""

    whitespace: WhitespacePolicy = WhitespacePolicy.RESPECT_ALL
    ignore_line_endings: bool = False
    algorithm: str = "histogram"

    def git_options(self) -> list[str]:
        options = [f"--diff-algorithm={self.algorithm}"]
        if self.whitespace == WhitespacePolicy.IGNORE_ALL:
            options.append("--ignore-all-space")
        if self.ignore_line_endings:
            options.append("--ignore-cr-at-eol")
        return options


@dataclass(frozen=True)
class RefInfo:
    """A fully-qualified ref and the commit it points to."""

    name: str
    object_id: str


@dataclass(frozen=True)
class DiffEntry:
    """One file-level change between two trees."""

    change_type: ChangeType
    old_path: str | None
    new_path: str | None
    similarity: int | None = None
    untracked: bool = False

    @property
    def is_content_change(self) -> bool:
        """Whether the new path holds content the old side did not have.

        Additions and modifications always do. A rename or copy does only
        when git scored it below 100% similarity.
        """
        if self.new_path is None:
            return False
        if self.change_type in (ChangeType.ADDED, ChangeType.MODIFIED):
            return True
        if self.change_type in (ChangeType.RENAMED, ChangeType.COPIED):
            return self.similarity is None or self.similarity < 100
        return False


@dataclass(frozen=True)
class HunkRecord:
    """A single edit region in new-file coordinates (1-based)."""

    path: str
    kind: EditKind
    old_start: int
    old_count: int
    new_start: int
    new_count: int

    @property
    def new_lines(self) -> range:
        if self.kind == EditKind.DELETE:
            return range(0)
        return range(self.new_start, self.new_start + self.new_count)


@dataclass
class BranchChanges:
    """Files and lines changed since the merge base with a target branch."""

    target_ref: str
    merge_base: str
    changed_files: set[Path] = field(default_factory=set)
    changed_lines: dict[Path, set[int]] = field(default_factory=dict)

    def to_dict(self, root: Path | None = None) -> dict[str, Any]:
        def show(path: Path) -> str:
            if root is not None and path.is_relative_to(root):
                return path.relative_to(root).as_posix()
            return path.as_posix()

        return {
            "target_ref": self.target_ref,
            "merge_base": self.merge_base,
            "changed_files": sorted(show(path) for path in self.changed_files),
            "changed_lines": {
                show(path): sorted(lines)
                for path, lines in sorted(self.changed_lines.items())
            },
        }
