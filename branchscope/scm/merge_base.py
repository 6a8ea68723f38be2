"""Merge base discovery between HEAD and the target ref.

The walk paints commits reachable from each tip, newest first, the same
way `git merge-base` does: a commit reached from both tips is a candidate,
and everything below a candidate is marked stale so older common
ancestors are not reported.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from collections import Counter

from git.objects import Commit

from branchscope.scm.backend import GitBackend

logger = logging.getLogger(__name__)

_FROM_HEAD = 1
_FROM_TARGET = 2
_STALE = 4
_BOTH = _FROM_HEAD | _FROM_TARGET


def find_merge_base(backend: GitBackend, head: Commit, target: Commit) -> Commit | None:
    """Return the nearest common ancestor of head and target, or None.

    None means the histories are disjoint. Backend errors while reading
    parents propagate; they are never reported as a missing merge base.
    """
    if head.hexsha == target.hexsha:
        return head

    flags: dict[str, int] = {}
    commits: dict[str, Commit] = {}
    parents: dict[str, tuple[Commit, ...]] = {}
    queued: Counter[str] = Counter()
    queue: list[tuple[int, int, str]] = []
    order = itertools.count()
    nonstale = 0
    candidates: list[str] = []

    def push(commit: Commit, mark: int) -> None:
        nonlocal nonstale
        sha = commit.hexsha
        before = flags.get(sha, 0)
        after = before | mark
        flags[sha] = after
        commits.setdefault(sha, commit)
        if not before & _STALE and after & _STALE:
            nonstale -= queued[sha]
        heapq.heappush(queue, (-backend.commit_time(commit), next(order), sha))
        queued[sha] += 1
        if not after & _STALE:
            nonstale += 1

    def parents_of(sha: str) -> tuple[Commit, ...]:
        if sha not in parents:
            parents[sha] = backend.parents_of(commits[sha])
        return parents[sha]

    def is_ancestor(sha: str, others: set[str]) -> bool:
        # Commit times may be skewed; only reachability decides here.
        seen = set(others)
        stack = list(others)
        while stack:
            for parent in parents_of(stack.pop()):
                if parent.hexsha == sha:
                    return True
                if parent.hexsha not in seen:
                    seen.add(parent.hexsha)
                    commits.setdefault(parent.hexsha, parent)
                    stack.append(parent.hexsha)
        return False

    push(head, _FROM_HEAD)
    push(target, _FROM_TARGET)
    processed: dict[str, int] = {}

    while nonstale > 0:
        _, _, sha = heapq.heappop(queue)
        queued[sha] -= 1
        mark = flags[sha]
        if not mark & _STALE:
            nonstale -= 1
        if processed.get(sha) == mark:
            continue
        processed[sha] = mark

        if mark & _BOTH == _BOTH:
            if sha not in candidates:
                candidates.append(sha)
            # everything below a common ancestor is an older common ancestor
            mark |= _STALE

        for parent in parents_of(sha):
            if flags.get(parent.hexsha, 0) & mark == mark:
                continue
            push(parent, mark)

    # A candidate painted stale, or reachable from another candidate, is an
    # ancestor of that candidate and not a merge base.
    bases = [sha for sha in candidates if not flags[sha] & _STALE]
    if len(bases) > 1:
        bases = [sha for sha in bases if not is_ancestor(sha, set(bases) - {sha})]
    if not bases:
        logger.debug(f"No common ancestor for {head.hexsha[:8]} and {target.hexsha[:8]}")
        return None
    if len(bases) > 1:
        logger.debug(f"{len(bases)} merge bases found, using the most recent")

    base = max(bases, key=lambda sha: (backend.commit_time(commits[sha]), sha))
    logger.info(f"Merge base sha1: {base}")
    return commits[base]
