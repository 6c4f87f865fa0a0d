"""Validate and normalise zone declarations."""

from __future__ import annotations

import re
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator
from pydantic import ValidationError as SchemaError

from .models import ABSENT, PRESENT, ValidationError

NUMERIC = re.compile(r"^\d+$")
DURATION = re.compile(r"^\d+[smhdw]?$", re.IGNORECASE)
ZONE_NAME = re.compile(r"^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*\.?$")


class ZoneSpec(BaseModel):
    """Schema for a single zone declaration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: StrictStr
    ensure: Literal["present", "absent"] = PRESENT
    is_dynamic: StrictBool = False
    is_slave: StrictBool = False
    auto_serial: StrictBool = False
    is_forward: StrictBool = False
    is_forward_only: StrictBool = False
    force_concat: StrictBool = False
    transfer_source: StrictStr | None = None
    zone_ttl: StrictStr | None = None
    zone_contact: StrictStr | None = None
    zone_serial: StrictStr | None = None
    zone_refresh: StrictStr = "3h"
    zone_retry: StrictStr = "1h"
    zone_expiracy: StrictStr = "1w"
    zone_ns: list[StrictStr] = Field(default_factory=list)
    zone_xfers: StrictStr | None = None
    zone_masters: StrictStr | None = None
    zone_origin: StrictStr | None = None
    zone_notify: StrictStr | None = None
    zone_forwarders: StrictStr | None = None
    allow_update: list[StrictStr] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        """Zone names end up in file paths and quoted named.conf strings."""
        if not ZONE_NAME.match(value):
            raise ValueError("must be a DNS name made of letters, digits, '-' and '_' labels")
        return value

    @field_validator("zone_ttl", "zone_serial", "zone_refresh", "zone_retry", "zone_expiracy", mode="before")
    @classmethod
    def _numbers_as_text(cls, value: Any) -> Any:
        """Accept integers from YAML for numeric fields."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("zone_refresh", "zone_retry", "zone_expiracy")
    @classmethod
    def _check_duration(cls, value: str) -> str:
        """SOA timers are seconds or a number with an s/m/h/d/w suffix."""
        if not DURATION.match(value):
            raise ValueError("must be a number of seconds or a BIND duration such as 3h")
        return value

    @field_validator("zone_ns", mode="before")
    @classmethod
    def _single_ns(cls, value: Any) -> Any:
        """A lone nameserver may be given as a string."""
        if isinstance(value, str):
            return [value]
        return value

    @property
    def is_master(self) -> bool:
        """Return True for zones this server is authoritative for."""
        return not (self.is_slave or self.is_forward)

    @property
    def present(self) -> bool:
        """Return True unless the zone is being removed."""
        return self.ensure == PRESENT


def _check_rules(zone: ZoneSpec) -> None:
    """Apply cross-field rules in order, failing on the first violation."""
    rules = [
        (zone.is_slave and zone.is_dynamic, "is_slave and is_dynamic are mutually exclusive"),
        (zone.is_forward and zone.is_dynamic, "is_forward and is_dynamic are mutually exclusive"),
        (zone.is_forward and zone.is_slave, "is_forward and is_slave are mutually exclusive"),
        (bool(zone.transfer_source) and not zone.is_slave, "transfer_source is only valid for slave zones"),
        (zone.is_forward and not zone.zone_forwarders, "forward zones require zone_forwarders"),
    ]
    if zone.ensure != ABSENT and zone.is_master:
        rules.extend(
            [
                (
                    not zone.auto_serial and not NUMERIC.match(zone.zone_serial or ""),
                    "zone_serial must be numeric unless auto_serial is set",
                ),
                (
                    not zone.zone_contact or bool(re.search(r"\s", zone.zone_contact)),
                    "zone_contact must be non-empty and contain no whitespace",
                ),
                (not zone.zone_ns, "zone_ns must list at least one nameserver"),
                (not NUMERIC.match(zone.zone_ttl or ""), "zone_ttl must be numeric"),
            ]
        )
    for violated, message in rules:
        if violated:
            raise ValidationError(f"zone {zone.name}: {message}")


def validate_zone(data: Mapping[str, Any] | ZoneSpec) -> ZoneSpec:
    """Return a validated zone or raise ValidationError naming the zone and rule."""
    if isinstance(data, ZoneSpec):
        zone = data
    else:
        label = data.get("name") if isinstance(data, Mapping) else None
        try:
            zone = ZoneSpec.model_validate(data)
        except SchemaError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'zone'}: {error['msg']}" for error in exc.errors()
            )
            raise ValidationError(f"zone {label or '<unnamed>'}: {problems}") from exc
    _check_rules(zone)
    return zone
