"""Local filesystem and process primitives the engine drives."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from .models import FileMeta

LOG = logging.getLogger("bind9_zones")


@dataclass(frozen=True)
class FileState:
    """What is currently on disk for a managed path."""

    data: bytes
    owner: str | None
    group: str | None
    mode: int

    def matches(self, meta: FileMeta) -> bool:
        """Return True when ownership and mode already satisfy meta."""
        if meta.owner is not None and meta.owner != self.owner:
            return False
        if meta.group is not None and meta.group != self.group:
            return False
        return self.mode == meta.mode

    @property
    def content(self) -> str:
        """Decoded text; bytes that are not UTF-8 become U+FFFD."""
        return self.data.decode("utf-8", errors="replace")


def _lookup(getter: Callable[[], str]) -> str | None:
    """Resolve an owner or group name, or None when it has no passwd entry."""
    try:
        return getter()
    except KeyError:
        return None


class LocalHost:
    """Read, write and delete files on the local machine and run commands."""

    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        """Use runner in place of subprocess.run for every command."""
        self.runner = runner

    def read_file(self, path: Path) -> FileState | None:
        """Return the current state of a regular file, or None when missing."""
        if not path.is_file():
            return None
        mode = path.stat().st_mode & 0o7777
        return FileState(
            data=path.read_bytes(),
            owner=_lookup(path.owner),
            group=_lookup(path.group),
            mode=mode,
        )

    def exists(self, path: Path) -> bool:
        """Return True for anything at path, including dangling symlinks."""
        return path.exists() or path.is_symlink()

    def write_file(self, path: Path, content: str, meta: FileMeta) -> None:
        """Atomically replace path with content and apply metadata."""
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = path.with_name(f".{path.name}.tmp")
        try:
            staging.write_text(content, encoding="utf-8")
            self.set_metadata(staging, meta)
            os.replace(staging, path)
        finally:
            if staging.exists():
                staging.unlink()
        LOG.debug("Wrote %s", path)

    def set_metadata(self, path: Path, meta: FileMeta) -> None:
        """Apply mode, then owner and group when they are managed."""
        os.chmod(path, meta.mode)
        if meta.owner is not None or meta.group is not None:
            shutil.chown(path, user=meta.owner, group=meta.group)

    def delete_file(self, path: Path, recursive: bool = False) -> bool:
        """Remove path; return False when there was nothing to remove."""
        if path.is_dir() and not path.is_symlink():
            if not recursive:
                raise IsADirectoryError(f"{path} is a directory")
            shutil.rmtree(path)
            return True
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def run_command(self, cmd: Sequence[str]) -> None:
        """Run a command, raising CalledProcessError on failure."""
        LOG.info("Running %s", " ".join(cmd))
        self.runner(list(cmd), check=True, capture_output=True, text=True)

    def install_package(self, name: str, command_template: str) -> None:
        """Install the name server package with the configured command."""
        if not command_template:
            LOG.debug("Skipping package installation (no install command configured).")
            return
        self.run_command(shlex.split(command_template.format(package=name)))
