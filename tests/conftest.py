from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Iterable

import pytest

# Fixed, increasing commit dates keep the commit-time ordering of every
# test history deterministic.
_EPOCH = 1_700_000_000


class GitRepo:
    """Throw-away repository driven through the git executable."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._commits = 0

    def git(self, *args: str) -> str:
        env = dict(os.environ)
        stamp = f"{_EPOCH + self._commits * 60} +0000"
        env.update(GIT_AUTHOR_DATE=stamp, GIT_COMMITTER_DATE=stamp)
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=False,
            env=env,
        )
        if result.returncode != 0:
            raise RuntimeError(
                f"git {' '.join(args)} failed: {(result.stderr or result.stdout).strip()}"
            )
        return result.stdout.strip()

    def write(self, relpath: str, text: str) -> Path:
        target = self.path / relpath
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(text.encode("utf-8"))
        return target

    def write_lines(self, relpath: str, lines: Iterable[str]) -> Path:
        return self.write(relpath, "".join(f"{line}\n" for line in lines))

    def commit_all(self, message: str) -> str:
        self._commits += 1
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def merge(self, branch: str) -> str:
        self._commits += 1
        self.git("merge", "-q", "--no-ff", "--no-edit", branch)
        return self.git("rev-parse", "HEAD")

    def checkout(self, *args: str) -> None:
        self.git("checkout", "-q", *args)

    def relative(self, paths: Iterable[Path]) -> set[str]:
        root = self.path.resolve()
        return {Path(path).resolve().relative_to(root).as_posix() for path in paths}


def init_repo(path: Path) -> GitRepo:
    path.mkdir(parents=True, exist_ok=True)
    repo = GitRepo(path)
    repo.git("init", "-q")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "user.email", "tester@example.com")
    repo.git("config", "user.name", "Branchscope Tester")
    repo.git("config", "commit.gpgsign", "false")
    repo.git("config", "core.autocrlf", "false")
    return repo


@pytest.fixture()
def empty_repo(tmp_path: Path) -> GitRepo:
    """An initialized repository on main with no commits."""
    return init_repo(tmp_path / "repo")


@pytest.fixture()
def git_repo(empty_repo: GitRepo) -> GitRepo:
    """A repository with one commit on main and a checked-out feature branch."""
    empty_repo.write_lines("app.py", [f"line{i}" for i in range(1, 11)])
    empty_repo.write_lines("docs/readme.txt", ["hello", "world"])
    empty_repo.write_lines("old_name.py", ["keep = 1", "also = 2"])
    empty_repo.commit_all("initial")
    empty_repo.checkout("-b", "feature")
    return empty_repo
