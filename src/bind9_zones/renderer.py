"""Select and render zone configuration stanzas via Jinja2 templates."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .validator import ZoneSpec

SERIAL_TOKEN = "@SERIAL@"


class ZoneVariant(str, Enum):
    """Content variants a zone declaration can map to."""

    SLAVE = "slave"
    FORWARD = "forward"
    MASTER_DYNAMIC = "master-dynamic"
    MASTER_AUTO_SERIAL = "master-auto-serial"
    MASTER_STATIC = "master-static"


class HeaderPlacement(str, Enum):
    """Where a master zone's SOA header is written."""

    EMBEDDED = "embedded"
    SOA_FILE = "soa-file"
    DYNAMIC_FILE = "dynamic-file"


@dataclass(frozen=True)
class ContentPlan:
    """Templates and header placement chosen for a zone."""

    variant: ZoneVariant
    stanza_template: str
    header_template: str | None = None
    header_placement: HeaderPlacement | None = None

    @property
    def is_master(self) -> bool:
        """Return True when the variant carries a zone header."""
        return self.header_placement is not None


def select(zone: ZoneSpec) -> ContentPlan:
    """Map a validated zone to the content it produces."""
    if zone.is_slave:
        return ContentPlan(ZoneVariant.SLAVE, "zone-slave.j2")
    if zone.is_forward:
        return ContentPlan(ZoneVariant.FORWARD, "zone-forward.j2")
    if zone.is_dynamic:
        return ContentPlan(
            ZoneVariant.MASTER_DYNAMIC, "zone-master.j2", "zone-header.j2", HeaderPlacement.DYNAMIC_FILE
        )
    if zone.auto_serial:
        return ContentPlan(
            ZoneVariant.MASTER_AUTO_SERIAL, "zone-master.j2", "zone-header.j2", HeaderPlacement.SOA_FILE
        )
    return ContentPlan(ZoneVariant.MASTER_STATIC, "zone-master.j2", "zone-header.j2", HeaderPlacement.EMBEDDED)


def _ensure_absolute(name: str) -> str:
    """Return a fully qualified name with a trailing dot."""
    stripped = name.strip()
    return stripped if stripped.endswith(".") else f"{stripped}."


class StanzaRenderer:
    """Render zone stanzas, headers and include lines from templates."""

    def __init__(self, templates_dir: Path):
        """Load templates from templates_dir, failing on undefined variables."""
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render(self, template_name: str, **context) -> str:
        """Render a template and normalise it to end in one newline."""
        text = self.env.get_template(template_name).render(**context)
        return text.rstrip() + "\n"

    def header(self, zone: ZoneSpec, plan: ContentPlan) -> str:
        """Render the SOA/NS header; auto-serial headers carry a serial placeholder."""
        if plan.header_template is None:
            raise ValueError(f"zone {zone.name} has no header in variant {plan.variant.value}")
        serial = SERIAL_TOKEN if plan.variant is ZoneVariant.MASTER_AUTO_SERIAL else zone.zone_serial
        nameservers = [_ensure_absolute(ns) for ns in zone.zone_ns]
        return self._render(
            plan.header_template,
            ttl=zone.zone_ttl,
            origin=zone.zone_origin,
            primary_ns=nameservers[0],
            contact=_ensure_absolute(zone.zone_contact or ""),
            serial=serial,
            refresh=zone.zone_refresh,
            retry=zone.zone_retry,
            expiracy=zone.zone_expiracy,
            nameservers=nameservers,
        )

    def stanza(self, zone: ZoneSpec, plan: ContentPlan, data_file: Path) -> str:
        """Render the ``zone "<name>" { ... };`` stanza for the pointer file."""
        return self._render(
            plan.stanza_template,
            name=zone.name,
            file=str(data_file),
            allow_update=zone.allow_update if plan.variant is ZoneVariant.MASTER_DYNAMIC else [],
            xfers=zone.zone_xfers,
            notify=zone.zone_notify,
            masters=zone.zone_masters,
            transfer_source=zone.transfer_source,
            forwarders=zone.zone_forwarders,
            forward_only=zone.is_forward_only,
        )

    def include(self, path: Path) -> str:
        """Render an include line for the shared include file."""
        return self._render("include.j2", path=str(path))
