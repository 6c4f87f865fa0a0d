"""Core data models used by bind9-zones."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Union

PRESENT = "present"
ABSENT = "absent"


class WritePolicy(str, Enum):
    """How a standalone file is reconciled against disk."""

    ALWAYS = "always"
    CREATE_ONLY = "create_only"
    TRIGGERED = "triggered"


class TriggerKind(str, Enum):
    """Kinds of side effects a trigger can run."""

    COMMAND = "command"
    SOA = "soa"


class FileStatus(str, Enum):
    """What converging a path did, or would do in a dry run."""

    CREATED = "created"
    UPDATED = "updated"
    METADATA = "metadata"
    DELETED = "deleted"
    PENDING = "pending"
    UNCHANGED = "unchanged"
    ABSENT = "absent"
    FAILED = "failed"


# Statuses that mean the bytes of a path changed; only these feed triggers.
CONTENT_CHANGES = frozenset({FileStatus.CREATED, FileStatus.UPDATED, FileStatus.DELETED, FileStatus.PENDING})


@dataclass(frozen=True)
class Fragment:
    """A keyed piece of text contributed to a target file."""

    key: str
    content: str
    zone: str
    ensure: str = PRESENT
    triggers: frozenset[str] = frozenset()


@dataclass(frozen=True)
class FileMeta:
    """Ownership and permissions for a managed file."""

    owner: str | None
    group: str | None
    mode: int


@dataclass(frozen=True)
class TargetFileOp:
    """Contribute fragments to a concatenated target file."""

    path: Path
    fragments: tuple[Fragment, ...]
    meta: FileMeta
    force: bool = False
    triggers: frozenset[str] = frozenset()


@dataclass(frozen=True)
class StandaloneFileOp:
    """Write a whole file owned by a single zone."""

    path: Path
    content: str
    meta: FileMeta
    zone: str
    policy: WritePolicy = WritePolicy.ALWAYS
    triggers: frozenset[str] = frozenset()


@dataclass(frozen=True)
class DeleteFileOp:
    """Remove a file (or a directory when recursive)."""

    path: Path
    zone: str
    recursive: bool = False
    triggers: frozenset[str] = frozenset()


FileOp = Union[TargetFileOp, StandaloneFileOp, DeleteFileOp]


@dataclass(frozen=True)
class Trigger:
    """A named side effect fired once per pass when a dependency changed."""

    name: str
    kind: TriggerKind
    commands: tuple[tuple[str, ...], ...] = ()
    path: Path | None = None
    notifies: frozenset[str] = frozenset()


@dataclass(frozen=True)
class PlannedOps:
    """Operations and trigger definitions produced for one zone."""

    ops: tuple[FileOp, ...]
    triggers: tuple[Trigger, ...] = ()


@dataclass(frozen=True)
class MaterializedFile:
    """Final content and metadata for one path after assembly."""

    path: Path
    content: str
    digest: str
    meta: FileMeta
    policy: WritePolicy
    triggers: frozenset[str]
    contributors: tuple[str, ...]
    keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class Deletion:
    """A path that must not exist after convergence."""

    path: Path
    recursive: bool
    triggers: frozenset[str]
    contributors: tuple[str, ...]


@dataclass
class Assembly:
    """Everything the convergence engine needs for one pass."""

    files: dict[Path, MaterializedFile] = field(default_factory=dict)
    deletions: dict[Path, Deletion] = field(default_factory=dict)
    triggers: dict[str, Trigger] = field(default_factory=dict)


@dataclass(frozen=True)
class FileResult:
    """Outcome of converging a single path."""

    path: Path
    status: FileStatus
    diff: str = ""
    error: str | None = None

    @property
    def changed(self) -> bool:
        """Return True when the path was (or would be) modified."""
        return self.status in CONTENT_CHANGES or self.status is FileStatus.METADATA


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of evaluating a trigger."""

    name: str
    fired: bool
    error: str | None = None


@dataclass
class AppliedChanges:
    """Per-file and per-trigger report of a convergence pass."""

    files: list[FileResult] = field(default_factory=list)
    triggers: list[TriggerResult] = field(default_factory=list)
    dry_run: bool = False

    def changed_paths(self) -> list[Path]:
        """Return paths that were modified in this pass."""
        return [result.path for result in self.files if result.changed and result.error is None]

    def fired(self) -> list[str]:
        """Return the names of triggers that fired successfully."""
        return [result.name for result in self.triggers if result.fired and result.error is None]

    def has_changes(self) -> bool:
        """Return True when anything was written, deleted or fired."""
        return bool(self.changed_paths() or self.fired())

    def has_errors(self) -> bool:
        """Return True when any file or trigger failed."""
        return any(r.error for r in self.files) or any(r.error for r in self.triggers)


class Bind9ZonesError(Exception):
    """Base exception for bind9-zones."""


class ValidationError(Bind9ZonesError):
    """Raised when a zone declaration is invalid."""


class DefinitionConflict(Bind9ZonesError):
    """Raised when declarations produce colliding output."""


class WriteError(Bind9ZonesError):
    """Raised when a managed file cannot be written or removed."""


class TriggerError(Bind9ZonesError):
    """Raised when a trigger action fails."""
