"""Command-line entry point for bind9-zones."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import load_config
from .controller import PlanResult, ZoneController, configure_logging
from .exporter import report_to_json, report_to_yaml, write_report
from .models import AppliedChanges, Bind9ZonesError


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the plan and apply subcommands."""
    parser = argparse.ArgumentParser(prog="bind9-zones", description="Converge BIND zone configuration declaratively.")
    parser.add_argument("--log-level", help="Log level for this run, overriding LOG_LEVEL.")

    subparsers = parser.add_subparsers(dest="command", required=True)
    plan_parser = subparsers.add_parser("plan", help="Show which files and triggers would change.")
    _add_desired_state_arguments(plan_parser)
    plan_parser.add_argument("--diff", action="store_true", help="Print unified diffs for changed files.")

    apply_parser = subparsers.add_parser("apply", help="Write changed files and fire triggers.")
    _add_desired_state_arguments(apply_parser)
    apply_parser.add_argument("--yes", action="store_true", help="Apply without asking for confirmation.")

    return parser


def _add_desired_state_arguments(subparser: argparse.ArgumentParser) -> None:
    """Arguments every subcommand takes: the zone declarations and where to report."""
    subparser.add_argument("--desired", required=True, type=Path, help="YAML file declaring the zones.")
    subparser.add_argument(
        "-e",
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Variable for rendering the desired-state file; repeatable.",
    )
    subparser.add_argument("--report", type=Path, help="Write the convergence report to this file.")
    subparser.add_argument("--format", choices=["yaml", "json"], default="json", help="Report format (default: json).")


def _parse_template_vars(values: list[str] | None) -> dict[str, str]:
    """Turn repeated KEY=VALUE arguments into template variables."""
    pairs = [value.partition("=") for value in values or ()]
    bad = [key for key, sep, _ in pairs if not sep]
    if bad:
        raise Bind9ZonesError(f"template variable {bad[0]!r} must look like KEY=VALUE")
    return {key: val for key, _, val in pairs}


def _emit_report(report: AppliedChanges, show_diff: bool = False) -> None:
    """Print a per-file summary of the pass."""
    verb = "Would change" if report.dry_run else "Changed"
    for result in report.files:
        marker = "!" if result.error else "~" if result.changed else " "
        line = f" {marker} {result.status.value:<9} {result.path}"
        if result.error:
            line += f" ({result.error})"
        print(line)
        if show_diff and result.diff:
            print(result.diff.rstrip("\n"))
    print(f"{verb}: {len(report.changed_paths())} file(s)")
    for trigger in report.triggers:
        status = f"failed: {trigger.error}" if trigger.error else "fired" if not report.dry_run else "would fire"
        print(f" * trigger {trigger.name} {status}")


def _write_report(report: AppliedChanges, args: argparse.Namespace) -> None:
    """Serialise the report to --report in the chosen format, if requested."""
    if not args.report:
        return
    if args.format == "yaml":
        content = report_to_yaml(report, include_diffs=report.dry_run)
    else:
        content = report_to_json(report, include_diffs=report.dry_run)
    write_report(args.report, content)
    print(f"Wrote report to {args.report}")


def _plan(controller: ZoneController, args: argparse.Namespace) -> AppliedChanges:
    """Preview the desired state and print what would change."""
    plan_result = controller.plan(args.desired, template_vars=_parse_template_vars(args.var))
    _emit_report(plan_result.preview, show_diff=args.diff)
    if not plan_result.preview.has_changes():
        print("Nothing to do.")
    return plan_result.preview


def _apply(controller: ZoneController, args: argparse.Namespace) -> AppliedChanges:
    """Preview, confirm, then converge the desired state."""
    plan_result: PlanResult = controller.plan(args.desired, template_vars=_parse_template_vars(args.var))
    _emit_report(plan_result.preview)
    report = controller.apply(plan_result, assume_yes=args.yes)
    if not report.dry_run:
        _emit_report(report)
    return report


COMMANDS = {"plan": _plan, "apply": _apply}


def main() -> None:
    """Run `bind9-zones plan|apply` and exit 1 when any file or trigger failed."""
    args = _build_parser().parse_args()
    try:
        config = load_config()
        configure_logging(args.log_level or config.log_level)
        report = COMMANDS[args.command](ZoneController(config), args)
        _write_report(report, args)
    except (Bind9ZonesError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(3)
    if report.has_errors():
        sys.exit(1)


if __name__ == "__main__":
    main()
