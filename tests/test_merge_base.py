"""Tests for merge base discovery."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from branchscope.scm.backend import open_repository
from branchscope.scm.errors import BackendError
from branchscope.scm.merge_base import find_merge_base


@dataclass(eq=False)
class FakeCommit:
    hexsha: str
    time: int
    parents: list["FakeCommit"] = field(default_factory=list)


class FakeBackend:
    """Commit graph held in memory; counts parent lookups per commit."""

    def __init__(self, failing: str | None = None) -> None:
        self.failing = failing
        self.parent_reads: dict[str, int] = {}

    def commit_time(self, commit: FakeCommit) -> int:
        return commit.time

    def parents_of(self, commit: FakeCommit) -> tuple[FakeCommit, ...]:
        if commit.hexsha == self.failing:
            raise BackendError(f"Cannot read parents of {commit.hexsha}")
        self.parent_reads[commit.hexsha] = self.parent_reads.get(commit.hexsha, 0) + 1
        return tuple(commit.parents)


def _chain(prefix: str, start: int, length: int, root: FakeCommit | None = None) -> list[FakeCommit]:
    commits: list[FakeCommit] = []
    parent = root
    for i in range(length):
        commit = FakeCommit(f"{prefix}{i}", start + i, [parent] if parent else [])
        commits.append(commit)
        parent = commit
    return commits


class TestMergeBaseGraph:
    def test_same_commit(self):
        commit = FakeCommit("a", 1)
        assert find_merge_base(FakeBackend(), commit, commit) is commit

    def test_fork_point(self):
        base = FakeCommit("base", 1)
        head = _chain("h", 10, 3, base)[-1]
        target = _chain("t", 20, 2, base)[-1]

        assert find_merge_base(FakeBackend(), head, target) is base

    def test_target_is_ancestor(self):
        history = _chain("c", 1, 5)
        assert find_merge_base(FakeBackend(), history[-1], history[2]) is history[2]

    def test_head_is_ancestor(self):
        history = _chain("c", 1, 5)
        assert find_merge_base(FakeBackend(), history[1], history[-1]) is history[1]

    def test_disjoint_histories(self):
        head = _chain("h", 1, 3)[-1]
        target = _chain("t", 1, 3)[-1]
        assert find_merge_base(FakeBackend(), head, target) is None

    def test_nearest_common_ancestor(self):
        """Older common ancestors below the nearest one are not reported."""
        root = FakeCommit("root", 1)
        base = FakeCommit("base", 2, [root])
        target = FakeCommit("target", 3, [base])
        side = FakeCommit("side", 4, [base])
        head = FakeCommit("merge", 5, [side, target])

        assert find_merge_base(FakeBackend(), head, target) is target

    def test_criss_cross_picks_most_recent(self):
        root = FakeCommit("root", 1)
        a1 = FakeCommit("a1", 2, [root])
        b1 = FakeCommit("b1", 3, [root])
        a2 = FakeCommit("a2", 4, [a1, b1])
        b2 = FakeCommit("b2", 5, [b1, a1])

        assert find_merge_base(FakeBackend(), a2, b2) is b1

    def test_skewed_commit_times(self):
        """An older-dated commit between two candidates does not hide the ancestry."""
        b = FakeCommit("b", 50)
        m = FakeCommit("m", 2, [b])
        a = FakeCommit("a", 3, [m])
        head = FakeCommit("head", 10, [a, b])
        target = FakeCommit("target", 11, [a, b])

        assert find_merge_base(FakeBackend(), head, target) is a

    def test_each_commit_read_once(self):
        base = FakeCommit("base", 1, _chain("old", 0, 1))
        head = _chain("h", 10, 20, base)[-1]
        target = _chain("t", 40, 20, base)[-1]
        backend = FakeBackend()

        assert find_merge_base(backend, head, target) is base
        assert all(count == 1 for count in backend.parent_reads.values())

    def test_backend_failure_propagates(self):
        """A failed parent read is an error, not a missing merge base."""
        base = FakeCommit("base", 1)
        head = _chain("h", 10, 3, base)[-1]
        target = _chain("t", 20, 2, base)[-1]

        with pytest.raises(BackendError):
            find_merge_base(FakeBackend(failing="h1"), head, target)


class TestMergeBaseRepository:
    def test_matches_git_merge_base(self, git_repo):
        git_repo.write("feature.py", "x = 1\n")
        git_repo.commit_all("feature work")
        git_repo.checkout("main")
        git_repo.write("main_only.py", "y = 2\n")
        git_repo.commit_all("main work")
        git_repo.checkout("feature")
        expected = git_repo.git("merge-base", "HEAD", "main")

        with open_repository(git_repo.path) as backend:
            base = find_merge_base(
                backend,
                backend.commit(git_repo.git("rev-parse", "HEAD")),
                backend.commit(git_repo.git("rev-parse", "main")),
            )

        assert base.hexsha == expected

    def test_merged_target(self, git_repo):
        """After merging the target in, its tip becomes the merge base."""
        git_repo.write("feature.py", "x = 1\n")
        git_repo.commit_all("feature work")
        git_repo.checkout("main")
        git_repo.write("main_only.py", "y = 2\n")
        main_tip = git_repo.commit_all("main work")
        git_repo.checkout("feature")
        git_repo.merge("main")

        with open_repository(git_repo.path) as backend:
            base = find_merge_base(
                backend,
                backend.commit(git_repo.git("rev-parse", "HEAD")),
                backend.commit(main_tip),
            )

        assert base.hexsha == main_tip

    def test_orphan_branch(self, git_repo):
        git_repo.checkout("--orphan", "unrelated")
        git_repo.git("rm", "-rfq", ".")
        git_repo.write("other.txt", "other\n")
        git_repo.commit_all("unrelated root")

        with open_repository(git_repo.path) as backend:
            base = find_merge_base(
                backend,
                backend.commit(git_repo.git("rev-parse", "HEAD")),
                backend.commit(git_repo.git("rev-parse", "main")),
            )

        assert base is None
