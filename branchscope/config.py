"""Central configuration for branchscope."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer; using {default}")
        return default


@dataclass(frozen=True)
class Config:
    """Immutable process-wide settings, read from the environment."""

    # Branch compared against when neither the CLI nor .branchscope.yml names one
    target_branch: str = field(
        default_factory=lambda: os.getenv("BRANCHSCOPE_TARGET_BRANCH", "main")
    )

    # Parallel per-file line extraction
    max_workers: int = field(
        default_factory=lambda: _env_int("BRANCHSCOPE_MAX_WORKERS", 4)
    )

    def validate(self) -> list[str]:
        """Return list of configuration errors (empty = valid)."""
        errors = []
        if not self.target_branch.strip():
            errors.append("BRANCHSCOPE_TARGET_BRANCH is empty")
        if self.max_workers < 1:
            errors.append("BRANCHSCOPE_MAX_WORKERS must be at least 1")
        return errors


# Singleton
config = Config()
