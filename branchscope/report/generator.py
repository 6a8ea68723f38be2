"""Report generator.

Serializes branch change detection results to JSON for tools that filter
their findings down to the lines a branch touched.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path

from branchscope.scm.models import BranchChanges

logger = logging.getLogger(__name__)

BRANCHSCOPE_VERSION = "0.1.0"


def build_report(
    target_branch: str,
    root: Path,
    revision: str | None,
    changes: BranchChanges | None,
    unavailable_reason: str | None = None,
) -> dict:
    """Assemble the report mapping; changes=None marks detection as unavailable."""
    data: dict = {
        "tool": {"name": "branchscope", "version": BRANCHSCOPE_VERSION},
        "generated_at": datetime.now().isoformat(),
        "root": root.as_posix(),
        "revision": revision,
        "target_branch": target_branch,
    }
    if changes is None:
        data["status"] = "unavailable"
        data["reason"] = unavailable_reason
        return data

    data["status"] = "ok"
    data.update(changes.to_dict(root))
    return data


def generate_json_report(
    target_branch: str,
    root: Path,
    revision: str | None,
    changes: BranchChanges | None,
    unavailable_reason: str | None = None,
    output_path: Path | None = None,
) -> str:
    """Generate a JSON report for programmatic consumption."""
    data = build_report(target_branch, root, revision, changes, unavailable_reason)
    json_str = json.dumps(data, indent=2, default=str)

    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json_str, encoding="utf-8")
        logger.info(f"JSON report saved to {output_path}")

    return json_str
