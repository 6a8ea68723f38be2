"""Line-level change detection for a single file.

Compares the baseline tree with the working tree, so uncommitted edits
count. Only new-side line numbers are reported: inserted lines and the
replacement side of modified blocks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Mapping

from git.objects import Tree

from branchscope.scm.backend import WORKING_TREE, GitBackend, to_git_path
from branchscope.scm.errors import InvariantViolation
from branchscope.scm.models import (
    ChangeType,
    DiffComparator,
    DiffEntry,
    EditKind,
    HunkRecord,
    WhitespacePolicy,
)

logger = logging.getLogger(__name__)


def lines_from_hunks(entry: DiffEntry, hunks: Iterable[HunkRecord]) -> set[int]:
    """Collect new-file line numbers from the edit regions of one entry."""
    lines: set[int] = set()
    for hunk in hunks:
        if hunk.kind in (EditKind.INSERT, EditKind.REPLACE) and hunk.new_count == 0:
            raise InvariantViolation(
                f"{hunk.kind.value} edit at line {hunk.new_start} of {hunk.path} "
                "has no new lines"
            )
        if entry.change_type == ChangeType.ADDED and hunk.kind != EditKind.INSERT:
            raise InvariantViolation(
                f"Added file {hunk.path} has a {hunk.kind.value} edit"
            )
        lines.update(hunk.new_lines)
    return lines


def working_tree_entries(
    backend: GitBackend,
    baseline_tree: Tree,
    algorithm: str = "histogram",
) -> dict[str, DiffEntry]:
    """Scan the whole working tree against baseline_tree, keyed by new path.

    The scan is unfiltered so git can pair both sides of a rename.
    """
    entries = backend.diff_trees(
        baseline_tree, WORKING_TREE, DiffComparator(algorithm=algorithm)
    )
    return {entry.new_path: entry for entry in entries if entry.new_path is not None}


def changed_lines(
    backend: GitBackend,
    baseline_tree: Tree,
    path: Path,
    policy: WhitespacePolicy,
    ignore_line_endings: bool = True,
    algorithm: str = "histogram",
    entries: Mapping[str, DiffEntry] | None = None,
) -> set[int] | None:
    """Return the changed line numbers of path in the working tree.

    None means the path carries no new content (unchanged, deleted or
    renamed without edits). An empty set means the file changed but no
    line survived the comparator, e.g. a whitespace-only edit under
    IGNORE_ALL or a change that only removes lines. An edited rename
    reports the lines that differ from the old path.

    entries is a working_tree_entries() scan to reuse across files.
    """
    comparator = DiffComparator(
        whitespace=policy,
        ignore_line_endings=ignore_line_endings,
        algorithm=algorithm,
    )
    git_path = _relative_git_path(backend, path)

    if entries is None:
        entries = working_tree_entries(backend, baseline_tree, algorithm)
    entry = entries.get(git_path)
    if entry is None or not entry.is_content_change:
        logger.debug(f"No new content for {git_path}")
        return None

    hunks = backend.format_hunks(baseline_tree, WORKING_TREE, [entry], comparator)
    lines = lines_from_hunks(entry, hunks)
    logger.debug(f"{git_path}: {len(lines)} changed lines ({entry.change_type.value})")
    return lines


def _relative_git_path(backend: GitBackend, path: Path) -> str:
    if not path.is_absolute():
        return to_git_path(path)
    try:
        return to_git_path(path.relative_to(backend.work_tree))
    except ValueError:
        # the work tree may be reached through a symlinked path
        return to_git_path(path.resolve().relative_to(backend.work_tree.resolve()))
