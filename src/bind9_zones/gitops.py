"""Commit converged configuration when the conf dir is a git worktree."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Iterable


def _run_git(args: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    """Run git in cwd, raising CalledProcessError on failure."""
    return subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)


def is_git_repo(cwd: Path) -> bool:
    """Return True if cwd is inside a git worktree."""
    if not cwd.is_dir():
        return False
    try:
        return _run_git(["rev-parse", "--is-inside-work-tree"], cwd).stdout.strip() == "true"
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False


def auto_commit(paths: Iterable[Path], message: str, cwd: Path) -> None:
    """Stage additions and removals of the given paths and commit them."""
    path_strings = [str(path) for path in paths]
    if not path_strings:
        return
    _run_git(["add", "--all", "--", *path_strings], cwd)
    _run_git(["commit", "-m", message], cwd)
