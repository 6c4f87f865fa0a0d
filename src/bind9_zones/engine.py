"""Converge managed files towards an assembly and fire triggers."""

from __future__ import annotations

import logging
import subprocess
from datetime import datetime, timezone
from graphlib import CycleError, TopologicalSorter
from pathlib import Path

from .diffing import content_digest, mask_serial, parse_serial, unified_diff
from .host import LocalHost
from .models import (
    AppliedChanges,
    Assembly,
    CONTENT_CHANGES,
    DefinitionConflict,
    Deletion,
    FileResult,
    FileStatus,
    MaterializedFile,
    Trigger,
    TriggerError,
    TriggerKind,
    TriggerResult,
    WriteError,
    WritePolicy,
)
from .renderer import SERIAL_TOKEN

LOG = logging.getLogger("bind9_zones")


def next_serial(strategy: str, current_serial: int | None, now: datetime | None = None) -> int:
    """Return a serial number that satisfies the chosen strategy."""
    now = now or datetime.now(tz=timezone.utc)
    if strategy == "epoch":
        candidate = int(now.timestamp())
    else:
        candidate = int(now.strftime("%Y%m%d00"))
    if current_serial is None:
        return candidate
    return max(candidate, current_serial + 1)


def _trigger_order(assembly: Assembly) -> tuple[list[str], dict[str, set[str]]]:
    """Order triggers so every trigger runs after those that notify it."""
    upstream: dict[str, set[str]] = {name: set() for name in assembly.triggers}
    for trigger in assembly.triggers.values():
        for name in trigger.notifies:
            upstream[name].add(trigger.name)
    try:
        order = list(TopologicalSorter(upstream).static_order())
    except CycleError as exc:
        raise DefinitionConflict(f"trigger notifications form a cycle: {exc.args[1]}") from exc
    return order, upstream


class ConvergenceEngine:
    """Applies an assembly to disk with minimal writes."""

    def __init__(self, host: LocalHost, serial_strategy: str = "date"):
        """Drive host I/O; serial_strategy picks date or epoch SOA serials."""
        self.host = host
        self.serial_strategy = serial_strategy

    def apply(self, assembly: Assembly, dry_run: bool = False) -> AppliedChanges:
        """Write, delete, then fire triggers whose dependencies changed."""
        order, upstream = _trigger_order(assembly)
        report = AppliedChanges(dry_run=dry_run)
        content_changed: set[Path] = set()

        for path in sorted(assembly.files):
            try:
                result = self._converge_file(assembly.files[path], dry_run)
            except WriteError as exc:
                LOG.error("%s", exc)
                result = FileResult(path=path, status=FileStatus.FAILED, error=str(exc))
            report.files.append(result)
            if result.status in CONTENT_CHANGES:
                content_changed.add(path)

        for path in sorted(assembly.deletions):
            try:
                result = self._converge_deletion(assembly.deletions[path], dry_run)
            except WriteError as exc:
                LOG.error("%s", exc)
                result = FileResult(path=path, status=FileStatus.FAILED, error=str(exc))
            report.files.append(result)
            if result.status in CONTENT_CHANGES:
                content_changed.add(path)

        feeders: dict[str, set[Path]] = {name: set() for name in assembly.triggers}
        for path, file in assembly.files.items():
            for name in file.triggers:
                feeders[name].add(path)
        for path, deletion in assembly.deletions.items():
            for name in deletion.triggers:
                feeders[name].add(path)

        fired: set[str] = set()
        for name in order:
            if not (feeders[name] & content_changed or upstream[name] & fired):
                continue
            if dry_run:
                fired.add(name)
                report.triggers.append(TriggerResult(name=name, fired=True))
                continue
            try:
                self._fire(assembly.triggers[name], assembly)
            except TriggerError as exc:
                LOG.error("%s", exc)
                report.triggers.append(TriggerResult(name=name, fired=True, error=str(exc)))
                continue
            fired.add(name)
            report.triggers.append(TriggerResult(name=name, fired=True))
            LOG.info("Fired trigger %s", name)
        return report

    def _converge_file(self, file: MaterializedFile, dry_run: bool) -> FileResult:
        """Bring one materialized file in line with its write policy."""
        try:
            current = self.host.read_file(file.path)
            if file.policy is WritePolicy.TRIGGERED:
                if current is None or mask_serial(current.content) != file.content:
                    before = current.content if current else None
                    return FileResult(file.path, FileStatus.PENDING, diff=unified_diff(str(file.path), before, file.content))
                return self._reconcile_metadata(file, current.matches(file.meta), dry_run)

            if current is None:
                if not dry_run:
                    self.host.write_file(file.path, file.content, file.meta)
                    LOG.info("Created %s", file.path)
                return FileResult(file.path, FileStatus.CREATED, diff=unified_diff(str(file.path), None, file.content))

            if file.policy is WritePolicy.CREATE_ONLY or content_digest(current.data) == file.digest:
                return self._reconcile_metadata(file, current.matches(file.meta), dry_run)

            if not dry_run:
                self.host.write_file(file.path, file.content, file.meta)
                LOG.info("Updated %s", file.path)
            return FileResult(file.path, FileStatus.UPDATED, diff=unified_diff(str(file.path), current.content, file.content))
        except OSError as exc:
            raise WriteError(f"failed to write {file.path}: {exc}") from exc

    def _reconcile_metadata(self, file: MaterializedFile, matches: bool, dry_run: bool) -> FileResult:
        """Fix mode and ownership of a file whose content is already right."""
        if matches:
            return FileResult(file.path, FileStatus.UNCHANGED)
        if not dry_run:
            self.host.set_metadata(file.path, file.meta)
            LOG.info("Reconciled ownership/mode of %s", file.path)
        return FileResult(file.path, FileStatus.METADATA)

    def _converge_deletion(self, deletion: Deletion, dry_run: bool) -> FileResult:
        """Remove a path that must not exist, recursively when asked to."""
        try:
            if not self.host.exists(deletion.path):
                return FileResult(deletion.path, FileStatus.ABSENT)
            if not dry_run:
                self.host.delete_file(deletion.path, recursive=deletion.recursive)
                LOG.info("Deleted %s", deletion.path)
                return FileResult(deletion.path, FileStatus.DELETED)
            current = self.host.read_file(deletion.path)
        except OSError as exc:
            raise WriteError(f"failed to delete {deletion.path}: {exc}") from exc
        before = current.content if current else ""
        return FileResult(deletion.path, FileStatus.DELETED, diff=unified_diff(str(deletion.path), before, None))

    def _fire(self, trigger: Trigger, assembly: Assembly) -> None:
        """Run a trigger, raising TriggerError when its action fails."""
        try:
            if trigger.kind is TriggerKind.SOA:
                self._regenerate_soa(trigger, assembly)
                return
            if not trigger.commands:
                LOG.warning("Trigger %s has no commands configured; skipping.", trigger.name)
            for cmd in trigger.commands:
                self.host.run_command(cmd)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
            raise TriggerError(f"trigger {trigger.name} failed: {' '.join(exc.cmd)}: {detail}") from exc
        except OSError as exc:
            raise TriggerError(f"trigger {trigger.name} failed: {exc}") from exc

    def _regenerate_soa(self, trigger: Trigger, assembly: Assembly) -> None:
        """Render the auto-serial header with a serial newer than the one on disk."""
        file = assembly.files.get(trigger.path) if trigger.path else None
        if file is None:
            raise TriggerError(f"trigger {trigger.name} has no header file to regenerate")
        current = self.host.read_file(file.path)
        previous = parse_serial(current.content) if current else None
        serial = next_serial(self.serial_strategy, previous)
        self.host.write_file(file.path, file.content.replace(SERIAL_TOKEN, str(serial)), file.meta)
        LOG.info("Regenerated %s with serial %s", file.path, serial)
