"""File-level change detection between a baseline tree and HEAD."""

from __future__ import annotations

import logging
from pathlib import Path

from git.objects import Tree

from branchscope.scm.backend import GitBackend
from branchscope.scm.models import ChangeType, DiffComparator

logger = logging.getLogger(__name__)


def changed_files(
    backend: GitBackend,
    baseline_tree: Tree,
    current_tree: Tree,
    comparator: DiffComparator,
) -> set[Path]:
    """Return work-tree paths of files whose content changed since baseline_tree.

    Both sides are commits, so line endings are compared as committed.
    Deletions and pure renames are left out; a renamed file that was also
    edited is reported under its new path.
    """
    entries = backend.diff_trees(baseline_tree, current_tree, comparator)

    counts: dict[str, int] = {}
    for entry in entries:
        counts[entry.change_type.value] = counts.get(entry.change_type.value, 0) + 1
    logger.debug(f"Tree diff entries: {counts or 'none'}")

    files = {backend.work_tree / entry.new_path for entry in entries if entry.is_content_change}
    pure_renames = sum(
        1
        for entry in entries
        if entry.change_type == ChangeType.RENAMED and not entry.is_content_change
    )
    logger.info(
        f"{len(files)} files added or modified "
        f"({counts.get(ChangeType.DELETED.value, 0)} deleted, "
        f"{pure_renames} renamed without changes)"
    )
    return files
