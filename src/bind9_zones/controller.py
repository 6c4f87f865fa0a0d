"""High-level orchestration for bind9-zones."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from .config import AppConfig
from .engine import ConvergenceEngine
from .fragments import assemble
from .gitops import auto_commit, is_git_repo
from .host import LocalHost
from .models import AppliedChanges, Assembly, Bind9ZonesError, FileOp, Trigger, ValidationError
from .planner import plan_include_file, plan_record_fragment, plan_zone
from .renderer import StanzaRenderer
from .validator import ZoneSpec, validate_zone
from .yaml_loader import FragmentSpec, load_desired_state

LOG = logging.getLogger("bind9_zones")


@dataclass
class PlanResult:
    """Validated zones, their assembly and a dry-run preview of applying it."""

    zones: list[ZoneSpec]
    assembly: Assembly
    preview: AppliedChanges = field(default_factory=AppliedChanges)


class ZoneController:
    """Turns zone declarations into an assembly and converges the host to it."""

    def __init__(self, config: AppConfig, host: LocalHost | None = None):
        """Bind the controller to a config and a host (local by default)."""
        self.config = config
        self.host = host or LocalHost()
        self.renderer = StanzaRenderer(config.templates_dir)
        self.engine = ConvergenceEngine(self.host, serial_strategy=config.serial_strategy)

    def build(
        self,
        zones: Iterable[Mapping[str, Any] | ZoneSpec],
        fragments: Iterable[FragmentSpec] = (),
    ) -> tuple[list[ZoneSpec], Assembly]:
        """Validate every zone, then plan and assemble the full desired state."""
        validated = [validate_zone(zone) for zone in zones]
        by_name = {zone.name: zone for zone in validated}

        include = plan_include_file(self.config)
        ops: list[FileOp] = list(include.ops)
        triggers: list[Trigger] = list(include.triggers)
        for zone in validated:
            planned = plan_zone(zone, self.config, self.renderer)
            ops.extend(planned.ops)
            triggers.extend(planned.triggers)
        for fragment in fragments:
            zone = by_name.get(fragment.zone)
            if zone is None:
                raise ValidationError(f"fragment '{fragment.key}' targets undeclared zone {fragment.zone}")
            ops.append(plan_record_fragment(zone, fragment.key, fragment.content, self.config))

        assembly = assemble(ops, triggers)
        LOG.debug("Assembled %s file(s), %s deletion(s)", len(assembly.files), len(assembly.deletions))
        return validated, assembly

    def plan(self, desired_path: Path, template_vars: dict[str, Any] | None = None) -> PlanResult:
        """Compute what a convergence pass would change, without touching disk."""
        desired = load_desired_state(desired_path, template_vars=template_vars)
        zones, assembly = self.build(desired.zones, desired.fragments)
        preview = self.engine.apply(assembly, dry_run=True)
        return PlanResult(zones=zones, assembly=assembly, preview=preview)

    def apply(self, plan_result: PlanResult, assume_yes: bool = False) -> AppliedChanges:
        """Install the package, converge files and fire triggers."""
        if not plan_result.preview.has_changes():
            LOG.info("No changes detected; only checking the package.")
            self._ensure_package()
            return AppliedChanges(files=list(plan_result.preview.files))
        if not assume_yes and not _confirm(len(plan_result.preview.changed_paths())):
            LOG.info("Apply aborted by user.")
            return AppliedChanges(files=list(plan_result.preview.files), dry_run=True)
        report = self.converge(plan_result.assembly)
        if self.config.git_auto_commit and report.changed_paths() and is_git_repo(self.config.conf_dir):
            message = self.config.git_commit_template.format(count=len(report.changed_paths()))
            try:
                auto_commit(report.changed_paths(), message, cwd=self.config.conf_dir)
            except subprocess.CalledProcessError as exc:
                raise Bind9ZonesError(f"git commit failed: {(exc.stderr or '').strip()}") from exc
        return report

    def converge(self, assembly: Assembly) -> AppliedChanges:
        """Run one convergence pass against disk."""
        self._ensure_package()
        report = self.engine.apply(assembly)
        LOG.info(
            "Convergence complete: %s changed, %s failed, triggers fired: %s",
            len(report.changed_paths()),
            sum(1 for result in report.files if result.error),
            ", ".join(report.fired()) or "none",
        )
        return report

    def _ensure_package(self) -> None:
        """Install the name server package when an install command is configured."""
        try:
            self.host.install_package(self.config.package_name, self.config.package_install_cmd)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise Bind9ZonesError(f"Failed to install {self.config.package_name}: {exc}") from exc


def configure_logging(level: str) -> None:
    """Configure logging output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _confirm(count: int) -> bool:
    """Prompt the operator to confirm apply."""
    prompt = f"Apply changes to {count} file(s)? [y/N]: "
    response = input(prompt).strip().lower()  # noqa: S322
    return response in {"y", "yes"}
