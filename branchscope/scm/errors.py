"""Exception types for branch change detection.

Reportable conditions (the target cannot be compared) derive from
DetectionUnavailable and never leave the orchestrator. Everything else
propagates to the caller.
"""

from __future__ import annotations


class BranchScopeError(Exception):
    """Base class for all branchscope errors."""


class NotARepositoryError(BranchScopeError):
    """Raised when a path is not inside a git work tree."""


class BackendError(BranchScopeError):
    """Raised when git objects, refs or the working tree cannot be read."""


class InvariantViolation(BranchScopeError):
    """Raised when a diff does not have the structure it must have."""


class DetectionUnavailable(BranchScopeError):
    """Base for conditions that make branch change detection impossible."""


class RefNotFound(DetectionUnavailable):
    """Raised when the target branch cannot be resolved to a ref."""

    def __init__(self, branch_name: str, candidates: tuple[str, ...]) -> None:
        self.branch_name = branch_name
        self.candidates = candidates
        super().__init__(
            f"Could not find ref '{branch_name}' in {', '.join(candidates)}"
        )


class NoMergeBase(DetectionUnavailable):
    """Raised when HEAD and the target ref share no history."""

    def __init__(self, target_ref: str) -> None:
        self.target_ref = target_ref
        super().__init__(f"No merge base found between HEAD and {target_ref}")


class UnsupportedDiffAlgorithm(DetectionUnavailable):
    """Raised when diff.algorithm names an algorithm git cannot run."""

    def __init__(self, algorithm: str) -> None:
        self.algorithm = algorithm
        super().__init__(
            f"The diff algorithm configured in git ({algorithm!r}) is not supported"
        )
