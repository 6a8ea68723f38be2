"""Validation of the repository's configured diff algorithm."""

from __future__ import annotations

import logging

from branchscope.scm.backend import SUPPORTED_DIFF_ALGORITHMS, GitBackend
from branchscope.scm.errors import UnsupportedDiffAlgorithm

logger = logging.getLogger(__name__)


def is_supported(algorithm: str) -> bool:
    """Check a diff.algorithm value the way git parses it (case-insensitive)."""
    return algorithm.strip().lower() in SUPPORTED_DIFF_ALGORITHMS


def configured_algorithm(backend: GitBackend) -> str:
    """Return the normalized configured algorithm or raise UnsupportedDiffAlgorithm."""
    algorithm = backend.configured_diff_algorithm()
    if not is_supported(algorithm):
        raise UnsupportedDiffAlgorithm(algorithm)
    logger.debug(f"Diff algorithm: {algorithm.lower()}")
    return algorithm.strip().lower()
