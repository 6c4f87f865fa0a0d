"""Group, order and concatenate fragments into target files."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

from .diffing import content_digest
from .models import (
    PRESENT,
    Assembly,
    DefinitionConflict,
    DeleteFileOp,
    Deletion,
    FileMeta,
    FileOp,
    Fragment,
    MaterializedFile,
    StandaloneFileOp,
    TargetFileOp,
    Trigger,
    WritePolicy,
)


@dataclass
class _Target:
    meta: FileMeta
    force: bool = False
    fragments: dict[str, Fragment] = field(default_factory=dict)
    triggers: set[str] = field(default_factory=set)
    zones: set[str] = field(default_factory=set)


def _add_target(targets: dict[Path, _Target], op: TargetFileOp) -> None:
    """Fold a target op into the per-path arena, rejecting duplicate keys."""
    entry = targets.setdefault(op.path, _Target(meta=op.meta))
    if entry.meta != op.meta:
        raise DefinitionConflict(f"{op.path} is declared with conflicting ownership or mode")
    entry.force = entry.force or op.force
    entry.triggers.update(op.triggers)
    for fragment in op.fragments:
        entry.zones.add(fragment.zone)
        if fragment.ensure != PRESENT:
            continue
        existing = entry.fragments.get(fragment.key)
        if existing is not None:
            raise DefinitionConflict(
                f"fragment '{fragment.key}' for {op.path} is defined by zone {existing.zone} "
                f"and zone {fragment.zone}"
            )
        entry.fragments[fragment.key] = fragment


def _merge_trigger(triggers: dict[str, Trigger], trigger: Trigger) -> None:
    """Register a trigger; repeats must agree on everything but notifies."""
    existing = triggers.get(trigger.name)
    if existing is None:
        triggers[trigger.name] = trigger
        return
    if replace(existing, notifies=frozenset()) != replace(trigger, notifies=frozenset()):
        raise DefinitionConflict(f"trigger '{trigger.name}' is defined more than once with different actions")
    triggers[trigger.name] = replace(existing, notifies=existing.notifies | trigger.notifies)


def _materialize(path: Path, entry: _Target) -> MaterializedFile | None:
    """Concatenate a target's fragments in key order."""
    if not entry.fragments and not entry.force:
        return None
    ordered = [entry.fragments[key] for key in sorted(entry.fragments)]
    content = "".join(fragment.content for fragment in ordered)
    triggers = frozenset(entry.triggers).union(*(fragment.triggers for fragment in ordered))
    return MaterializedFile(
        path=path,
        content=content,
        digest=content_digest(content),
        meta=entry.meta,
        policy=WritePolicy.ALWAYS,
        triggers=triggers,
        contributors=tuple(sorted(entry.zones)),
        keys=tuple(fragment.key for fragment in ordered),
    )


def assemble(ops: Iterable[FileOp], triggers: Iterable[Trigger] = ()) -> Assembly:
    """Build the full desired state, failing before any I/O on conflicting definitions."""
    targets: dict[Path, _Target] = {}
    standalone: dict[Path, StandaloneFileOp] = {}
    deletions: dict[Path, Deletion] = {}

    for op in ops:
        if isinstance(op, TargetFileOp):
            _add_target(targets, op)
        elif isinstance(op, StandaloneFileOp):
            existing = standalone.get(op.path)
            if existing is not None:
                raise DefinitionConflict(f"{op.path} is written by zone {existing.zone} and zone {op.zone}")
            standalone[op.path] = op
        elif isinstance(op, DeleteFileOp):
            previous = deletions.get(op.path)
            if previous is None:
                deletions[op.path] = Deletion(op.path, op.recursive, op.triggers, (op.zone,))
            else:
                deletions[op.path] = Deletion(
                    op.path,
                    previous.recursive or op.recursive,
                    previous.triggers | op.triggers,
                    tuple(sorted({*previous.contributors, op.zone})),
                )
        else:
            raise TypeError(f"Unsupported file operation {op!r}")

    clashes = sorted(set(targets) & set(standalone))
    if clashes:
        path = clashes[0]
        raise DefinitionConflict(
            f"{path} is both a fragment target (zones {', '.join(sorted(targets[path].zones))}) "
            f"and a standalone file (zone {standalone[path].zone})"
        )
    for path, deletion in deletions.items():
        writers = targets[path].zones if path in targets else {standalone[path].zone} if path in standalone else None
        if writers is not None:
            raise DefinitionConflict(
                f"{path} is removed by zone {', '.join(deletion.contributors)} "
                f"and written by zone {', '.join(sorted(writers))}"
            )

    assembly = Assembly(deletions=deletions)
    for trigger in triggers:
        _merge_trigger(assembly.triggers, trigger)

    for path in sorted(targets):
        materialized = _materialize(path, targets[path])
        if materialized is not None:
            assembly.files[path] = materialized
    for path, op in standalone.items():
        assembly.files[path] = MaterializedFile(
            path=path,
            content=op.content,
            digest=content_digest(op.content),
            meta=op.meta,
            policy=op.policy,
            triggers=op.triggers,
            contributors=(op.zone,),
        )

    referenced = set().union(
        *(f.triggers for f in assembly.files.values()),
        *(d.triggers for d in deletions.values()),
        *(t.notifies for t in assembly.triggers.values()),
    )
    missing = sorted(referenced - set(assembly.triggers))
    if missing:
        raise DefinitionConflict(f"undefined trigger(s) referenced: {', '.join(missing)}")
    return assembly
