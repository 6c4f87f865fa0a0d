"""Turn validated zones into file operations and trigger definitions."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import AppConfig
from .models import (
    DeleteFileOp,
    FileMeta,
    FileOp,
    Fragment,
    PlannedOps,
    StandaloneFileOp,
    TargetFileOp,
    Trigger,
    TriggerKind,
    ValidationError,
    WritePolicy,
)
from .renderer import ContentPlan, HeaderPlacement, StanzaRenderer, ZoneVariant, select
from .validator import ZoneSpec

RELOAD = "reload"
# Keys under this prefix sort ahead of records and are kept for zone headers.
HEADER_KEY_PREFIX = "00."


@dataclass(frozen=True)
class ZonePaths:
    """Every on-disk location a zone can touch."""

    pointer: Path
    data: Path
    soa: Path
    dynamic: Path
    legacy_dir: Path


def zone_paths(name: str, config: AppConfig) -> ZonePaths:
    """Return the file layout for a zone."""
    return ZonePaths(
        pointer=config.zones_dir / f"{name}.conf",
        data=config.pri_dir / f"{name}.conf",
        soa=config.pri_dir / f"soa.{name}.conf",
        dynamic=config.dynamic_dir / f"{name}.conf",
        legacy_dir=config.pri_dir / f"{name}.conf.d",
    )


def soa_trigger_name(zone_name: str) -> str:
    """Name of the trigger that regenerates a zone's auto-serial header."""
    return f"soa:{zone_name}"


def reload_trigger(config: AppConfig) -> Trigger:
    """The daemon reload shared by every zone."""
    return Trigger(name=RELOAD, kind=TriggerKind.COMMAND, commands=config.reload_commands())


def _meta(config: AppConfig, mode: int | None = None) -> FileMeta:
    """Ownership from config, with an optional mode override."""
    return FileMeta(owner=config.file_owner, group=config.file_group, mode=config.file_mode if mode is None else mode)


def legacy_cleanup_ops(zone: ZoneSpec, paths: ZonePaths) -> list[FileOp]:
    """Remove the per-zone directory left over from the old layout."""
    return [DeleteFileOp(path=paths.legacy_dir, zone=zone.name, recursive=True)]


def _data_file(plan: ContentPlan, paths: ZonePaths) -> Path:
    """Path the zone stanza's file directive points at."""
    if plan.variant in {ZoneVariant.SLAVE, ZoneVariant.MASTER_DYNAMIC}:
        return paths.dynamic
    return paths.data


def _master_ops(
    zone: ZoneSpec,
    plan: ContentPlan,
    paths: ZonePaths,
    config: AppConfig,
    renderer: StanzaRenderer,
) -> tuple[list[FileOp], list[Trigger]]:
    """Header placement for the three master variants."""
    header = renderer.header(zone, plan)
    header_key = f"{HEADER_KEY_PREFIX}bind.{zone.name}"
    reload = frozenset({RELOAD})

    if plan.header_placement is HeaderPlacement.DYNAMIC_FILE:
        op = StandaloneFileOp(
            path=paths.dynamic,
            content=header,
            meta=_meta(config, config.dynamic_mode),
            zone=zone.name,
            policy=WritePolicy.CREATE_ONLY,
            triggers=reload,
        )
        return [op], []

    if plan.header_placement is HeaderPlacement.SOA_FILE:
        soa_name = soa_trigger_name(zone.name)
        soa_file = StandaloneFileOp(
            path=paths.soa,
            content=header,
            meta=_meta(config),
            zone=zone.name,
            policy=WritePolicy.TRIGGERED,
            triggers=frozenset({soa_name}),
        )
        include = Fragment(key=header_key, content=f'$INCLUDE "{paths.soa}"\n', zone=zone.name, triggers=reload)
        body = TargetFileOp(path=paths.data, fragments=(include,), meta=_meta(config), force=zone.force_concat)
        trigger = Trigger(name=soa_name, kind=TriggerKind.SOA, path=paths.soa, notifies=reload)
        return [soa_file, body], [trigger]

    fragment = Fragment(key=header_key, content=header, zone=zone.name, triggers=reload)
    return [TargetFileOp(path=paths.data, fragments=(fragment,), meta=_meta(config), force=zone.force_concat)], []


def plan_include_file(config: AppConfig) -> PlannedOps:
    """The shared include file exists even when no zone is declared."""
    reload = frozenset({RELOAD})
    op = TargetFileOp(path=config.include_file, fragments=(), meta=_meta(config), force=True, triggers=reload)
    return PlannedOps(ops=(op,), triggers=(reload_trigger(config),))


def plan_zone(zone: ZoneSpec, config: AppConfig, renderer: StanzaRenderer) -> PlannedOps:
    """Plan every file operation a single zone needs."""
    paths = zone_paths(zone.name, config)
    reload = frozenset({RELOAD})
    triggers = [reload_trigger(config)]
    include = Fragment(
        key=f"named.local.zone.{zone.name}",
        content=renderer.include(paths.pointer),
        zone=zone.name,
        ensure=zone.ensure,
        triggers=reload,
    )
    ops: list[FileOp] = [
        TargetFileOp(path=config.include_file, fragments=(include,), meta=_meta(config), force=True, triggers=reload)
    ]

    if not zone.present:
        for path in (paths.data, paths.soa, paths.pointer):
            ops.append(DeleteFileOp(path=path, zone=zone.name, triggers=reload))
        return PlannedOps(ops=tuple(ops), triggers=tuple(triggers))

    plan = select(zone)
    stanza = Fragment(
        key=f"bind.zones.{zone.name}",
        content=renderer.stanza(zone, plan, _data_file(plan, paths)),
        zone=zone.name,
        triggers=reload,
    )
    ops.append(TargetFileOp(path=paths.pointer, fragments=(stanza,), meta=_meta(config)))

    if plan.is_master:
        master_ops, master_triggers = _master_ops(zone, plan, paths, config, renderer)
        ops.extend(master_ops)
        triggers.extend(master_triggers)
        ops.extend(legacy_cleanup_ops(zone, paths))

    return PlannedOps(ops=tuple(ops), triggers=tuple(triggers))


def plan_record_fragment(zone: ZoneSpec, key: str, content: str, config: AppConfig) -> TargetFileOp:
    """Append a caller-supplied fragment to a static master zone's data file."""
    if key.startswith(HEADER_KEY_PREFIX):
        raise ValidationError(f"zone {zone.name}: fragment key '{key}' is reserved")
    if not zone.present:
        raise ValidationError(f"zone {zone.name}: fragment '{key}' targets an absent zone")
    if select(zone).header_placement not in {HeaderPlacement.EMBEDDED, HeaderPlacement.SOA_FILE}:
        raise ValidationError(f"zone {zone.name}: fragment '{key}' requires a static master zone")
    text = content if content.endswith("\n") else f"{content}\n"
    fragment = Fragment(key=key, content=text, zone=zone.name, triggers=frozenset({RELOAD}))
    return TargetFileOp(path=zone_paths(zone.name, config).data, fragments=(fragment,), meta=_meta(config))
