"""Target branch resolution."""

from __future__ import annotations

import logging

from branchscope.scm.backend import GitBackend
from branchscope.scm.errors import RefNotFound
from branchscope.scm.models import RefInfo

logger = logging.getLogger(__name__)


def candidate_ref_names(branch_name: str) -> tuple[str, ...]:
    """Return the refs a short branch name may live under, most authoritative first.

    CI checkouts often drop the local branch but keep origin's
    remote-tracking ref, so remotes are searched after refs/heads.
    """
    return (
        f"refs/heads/{branch_name}",
        f"refs/remotes/origin/{branch_name}",
        f"refs/remotes/upstream/{branch_name}",
        f"refs/remotes/{branch_name}",
    )


def resolve_target_ref(branch_name: str, backend: GitBackend) -> RefInfo | None:
    """Return the first existing candidate ref for branch_name, or None."""
    for name in candidate_ref_names(branch_name):
        ref = backend.exact_ref(name)
        if ref is not None:
            logger.info(f"Using ref: {ref.name} ({ref.object_id[:8]})")
            return ref
    return None


def require_target_ref(branch_name: str, backend: GitBackend) -> RefInfo:
    ref = resolve_target_ref(branch_name, backend)
    if ref is None:
        raise RefNotFound(branch_name, candidate_ref_names(branch_name))
    return ref
