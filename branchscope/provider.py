"""Branch change detection orchestrator.

Wires together the detection stages:
1. Resolve the target ref
2. Find the merge base with HEAD
3. Validate the configured diff algorithm
4. Diff files (merge base vs HEAD) and/or lines (merge base vs working tree)

Any of the first three stages can make detection unavailable. That is
reported through logging and a None result, never an exception; backend
failures still propagate.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from git.objects import Commit, Tree

from branchscope.scm.backend import GitBackend, find_work_tree, open_repository
from branchscope.scm.changed_files import changed_files
from branchscope.scm.changed_lines import changed_lines, working_tree_entries
from branchscope.scm.diff_algorithm import configured_algorithm
from branchscope.scm.errors import (
    BackendError,
    DetectionUnavailable,
    NoMergeBase,
    RefNotFound,
    UnsupportedDiffAlgorithm,
)
from branchscope.scm.merge_base import find_merge_base
from branchscope.scm.models import (
    BranchChanges,
    DiffComparator,
    DiffEntry,
    RefInfo,
    WhitespacePolicy,
)
from branchscope.scm.refs import require_target_ref

logger = logging.getLogger(__name__)

_FETCH_HINT = (
    ". You may see unexpected issues and changes. "
    "Please make sure to fetch this ref before pull request analysis."
)
_ALGORITHM_HINT = (
    ". No information regarding changes in the branch will be collected, "
    "which can lead to unexpected results."
)


@dataclass(frozen=True)
class Baseline:
    """The merge base every diff of one detection call is taken against."""

    target_ref: RefInfo
    commit: Commit
    tree: Tree
    algorithm: str


def prepare_baseline(backend: GitBackend, branch_name: str) -> Baseline:
    """Resolve ref, merge base and diff algorithm, raising DetectionUnavailable."""
    target_ref = require_target_ref(branch_name, backend)

    head = backend.head()
    if head is None:
        raise BackendError("HEAD reference not found")

    merge_base = find_merge_base(
        backend,
        backend.commit(head.object_id),
        backend.commit(target_ref.object_id),
    )
    if merge_base is None:
        raise NoMergeBase(target_ref.name)

    algorithm = configured_algorithm(backend)
    return Baseline(
        target_ref=target_ref,
        commit=merge_base,
        tree=backend.tree_of(merge_base),
        algorithm=algorithm,
    )


def _report_unavailable(exc: DetectionUnavailable) -> None:
    if isinstance(exc, RefNotFound):
        logger.warning(f"{exc}{_FETCH_HINT}")
    elif isinstance(exc, UnsupportedDiffAlgorithm):
        logger.warning(f"{exc}{_ALGORITHM_HINT}")
    else:
        logger.warning(str(exc))


class BranchChangeDetector:
    """Detect what the current branch changed relative to a target branch.

    Every public call opens its own repository handle and closes it before
    returning, whatever the outcome.
    """

    def __init__(self, root: str | Path, max_workers: int = 1) -> None:
        self.root = Path(root)
        self.max_workers = max(1, max_workers)
        self.unavailable_reason: DetectionUnavailable | None = None

    def files_changed_against(self, branch_name: str) -> set[Path] | None:
        """Files added or modified on HEAD since the merge base, None if unavailable."""
        with open_repository(self.root) as backend:
            baseline = self._baseline(backend, branch_name)
            if baseline is None:
                return None
            return self._changed_files(backend, baseline)

    def lines_changed_against(
        self,
        branch_name: str,
        files: Iterable[Path],
    ) -> dict[Path, set[int]] | None:
        """Changed working-tree lines of each file, None if unavailable.

        Files without new content (unchanged, deleted, renamed as-is) are
        left out of the map.
        """
        with open_repository(self.root) as backend:
            baseline = self._baseline(backend, branch_name)
            if baseline is None:
                return None
            return self._changed_lines(backend, baseline, files)

    def detect_changes(
        self,
        branch_name: str,
        include_lines: bool = True,
        line_filter: Callable[[Path], bool] | None = None,
    ) -> BranchChanges | None:
        """Files and lines in one pass, both against the same merge base.

        line_filter, when given, selects the changed files whose lines are
        computed; the others still appear in changed_files.
        """
        with open_repository(self.root) as backend:
            baseline = self._baseline(backend, branch_name)
            if baseline is None:
                return None
            files = self._changed_files(backend, baseline)
            lines: dict[Path, set[int]] = {}
            if include_lines:
                selected = [path for path in files if line_filter is None or line_filter(path)]
                lines = self._changed_lines(backend, baseline, selected)
            return BranchChanges(
                target_ref=baseline.target_ref.name,
                merge_base=baseline.commit.hexsha,
                changed_files=files,
                changed_lines=lines,
            )

    def _baseline(self, backend: GitBackend, branch_name: str) -> Baseline | None:
        self.unavailable_reason = None
        try:
            return prepare_baseline(backend, branch_name)
        except DetectionUnavailable as exc:
            self.unavailable_reason = exc
            _report_unavailable(exc)
            return None

    def _changed_files(self, backend: GitBackend, baseline: Baseline) -> set[Path]:
        head = backend.head()
        if head is None:
            raise BackendError("HEAD reference not found")
        current_tree = backend.tree_of(backend.commit(head.object_id))
        comparator = DiffComparator(algorithm=baseline.algorithm)
        return changed_files(backend, baseline.tree, current_tree, comparator)

    def _changed_lines(
        self,
        backend: GitBackend,
        baseline: Baseline,
        files: Iterable[Path],
    ) -> dict[Path, set[int]]:
        paths = sorted(set(files))
        result: dict[Path, set[int]] = {}
        if not paths:
            return result

        # One working tree scan serves every file and pairs renames.
        entries = working_tree_entries(backend, baseline.tree, baseline.algorithm)

        if self.max_workers == 1 or len(paths) < 2:
            for path in paths:
                lines = changed_lines(
                    backend,
                    baseline.tree,
                    path,
                    WhitespacePolicy.IGNORE_ALL,
                    ignore_line_endings=True,
                    algorithm=baseline.algorithm,
                    entries=entries,
                )
                if lines is not None:
                    result[path] = lines
        else:
            worker_count = min(self.max_workers, len(paths))
            logger.debug(f"Extracting changed lines with {worker_count} workers")
            with ThreadPoolExecutor(max_workers=worker_count) as executor:
                future_to_path = {
                    executor.submit(self._changed_lines_isolated, baseline, path, entries): path
                    for path in paths
                }
                for future in as_completed(future_to_path):
                    lines = future.result()
                    if lines is not None:
                        result[future_to_path[future]] = lines

        logger.info(f"Changed lines collected for {len(result)}/{len(paths)} files")
        return result

    def _changed_lines_isolated(
        self,
        baseline: Baseline,
        path: Path,
        entries: Mapping[str, DiffEntry],
    ) -> set[int] | None:
        # GitPython object readers are not thread-safe; each worker gets its own handle.
        with open_repository(self.root) as backend:
            tree = backend.tree_of(backend.commit(baseline.commit.hexsha))
            return changed_lines(
                backend,
                tree,
                path,
                WhitespacePolicy.IGNORE_ALL,
                ignore_line_endings=True,
                algorithm=baseline.algorithm,
                entries=entries,
            )


def supports(path: str | Path) -> bool:
    """Whether path lies inside a git work tree."""
    return find_work_tree(path) is not None


def revision_id(path: str | Path) -> str | None:
    """HEAD commit sha of the repository containing path, None if it has no commits."""
    with open_repository(path) as backend:
        head = backend.head()
        return head.object_id if head is not None else None
