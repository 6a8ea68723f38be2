"""Project configuration read from .branchscope.yml at the work-tree root.

Example:

    target_branch: develop
    exclude:
      paths: [generated/]
      patterns: ["*.min.js"]
    lines:
      max_workers: 8
    strict: true
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from branchscope.config import config

logger = logging.getLogger(__name__)

PROJECT_CONFIG = ".branchscope.yml"
MAX_WORKERS_LIMIT = 16


def _clamp_workers(value: int) -> int:
    return max(1, min(MAX_WORKERS_LIMIT, value))


def _read_mapping(path: Path) -> dict[str, Any] | None:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        logger.warning(f"Could not read config file {path}: {exc}")
        return None
    except yaml.YAMLError as exc:
        logger.warning(f"Malformed YAML config in {path}: {exc}")
        return None

    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Config file {path} must contain a YAML mapping; using defaults")
        return None
    return data


@dataclass
class ScopeConfig:
    target_branch: str = field(default_factory=lambda: config.target_branch)
    exclude_paths: list[str] = field(default_factory=list)
    exclude_patterns: list[str] = field(default_factory=list)
    max_workers: int = field(default_factory=lambda: _clamp_workers(config.max_workers))
    strict: bool = False

    @classmethod
    def default(cls) -> ScopeConfig:
        return cls()

    @classmethod
    def load(cls, config_path: Path | None = None, root: Path | None = None) -> ScopeConfig:
        """Read an explicit config file, else root/.branchscope.yml, else defaults.

        Only an explicit path that does not exist is worth a warning; most
        repositories carry no project file.
        """
        defaults = cls.default()

        if config_path is None:
            if root is None or not (Path(root) / PROJECT_CONFIG).is_file():
                logger.debug("No .branchscope.yml found; using built-in defaults")
                return defaults
            config_path = Path(root) / PROJECT_CONFIG
        elif not Path(config_path).is_file():
            logger.warning(f"Scope config not found at {config_path}; using defaults")
            return defaults

        data = _read_mapping(Path(config_path))
        if data is None:
            return defaults
        logger.info(f"Loaded scope config from {config_path}")
        return defaults.updated(data)

    def updated(self, data: dict[str, Any]) -> ScopeConfig:
        """Return a copy with the keys present in data applied."""
        changes: dict[str, Any] = {}

        if "target_branch" in data:
            target = data["target_branch"]
            if isinstance(target, str) and target.strip():
                changes["target_branch"] = target.strip()
            else:
                logger.warning(f"Invalid target_branch={target!r}; using {self.target_branch!r}")

        exclude = data.get("exclude") or {}
        if isinstance(exclude, dict):
            for key, attr in (("paths", "exclude_paths"), ("patterns", "exclude_patterns")):
                if isinstance(exclude.get(key), list):
                    changes[attr] = [str(item) for item in exclude[key] if str(item).strip()]

        lines = data.get("lines") or {}
        if isinstance(lines, dict) and "max_workers" in lines:
            try:
                changes["max_workers"] = _clamp_workers(int(lines["max_workers"]))
            except (TypeError, ValueError):
                logger.warning(
                    f"Invalid lines.max_workers={lines['max_workers']!r}; using {self.max_workers}"
                )

        if "strict" in data:
            # YAML already maps yes/no/true/false to booleans
            if isinstance(data["strict"], bool):
                changes["strict"] = data["strict"]
            else:
                logger.warning(f"Invalid strict={data['strict']!r}; using {self.strict}")

        return replace(self, **changes)

    def is_path_excluded(self, file_path: str) -> bool:
        """Check if a repository-relative path should be left out of line detection."""
        path = PurePosixPath(file_path.lstrip("/"))

        for excluded in self.exclude_paths:
            prefix = PurePosixPath(excluded.strip("/"))
            if prefix.parts and (path == prefix or prefix in path.parents):
                return True

        return any(
            fnmatch(path.as_posix(), pattern) or fnmatch(path.name, pattern)
            for pattern in self.exclude_patterns
        )
