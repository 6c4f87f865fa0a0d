"""Serialise convergence reports into YAML or JSON."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .models import AppliedChanges, FileResult


def _file_to_dict(result: FileResult, include_diff: bool) -> dict[str, Any]:
    """Flatten one file result, leaving the diff out unless asked for."""
    entry: dict[str, Any] = {"path": str(result.path), "status": result.status.value}
    if result.error:
        entry["error"] = result.error
    if include_diff and result.diff:
        entry["diff"] = result.diff
    return entry


def report_to_dict(report: AppliedChanges, include_diffs: bool = False) -> dict[str, Any]:
    """Create a dictionary describing a convergence pass."""
    return {
        "dry_run": report.dry_run,
        "changed": report.has_changes(),
        "files": [_file_to_dict(result, include_diffs) for result in report.files],
        "triggers": [
            {"name": result.name, "fired": result.fired, **({"error": result.error} if result.error else {})}
            for result in report.triggers
        ],
    }


def report_to_yaml(report: AppliedChanges, include_diffs: bool = False) -> str:
    """Return YAML representation of a report."""
    return yaml.safe_dump(report_to_dict(report, include_diffs), sort_keys=False)


def report_to_json(report: AppliedChanges, include_diffs: bool = False) -> str:
    """Return JSON representation of a report."""
    return json.dumps(report_to_dict(report, include_diffs), indent=2)


def write_report(path: Path, content: str) -> None:
    """Write content to the given path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
