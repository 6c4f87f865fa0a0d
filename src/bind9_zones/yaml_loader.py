"""Load desired-state YAML documents."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from pydantic import ValidationError as SchemaError

from .models import ValidationError


class FragmentSpec(BaseModel):
    """Schema for an extra fragment appended to a zone's data file."""

    model_config = ConfigDict(extra="forbid")

    zone: StrictStr
    key: StrictStr = Field(min_length=1)
    content: StrictStr


class DesiredDocument(BaseModel):
    """Top level of a desired-state file: `zones` and optional `fragments`."""

    model_config = ConfigDict(extra="forbid")

    zones: list[dict[str, Any]] = Field(default_factory=list)
    fragments: list[FragmentSpec] = Field(default_factory=list)


@dataclass
class DesiredState:
    """Raw zone declarations and extra fragments from one document."""

    zones: list[dict[str, Any]]
    fragments: list[FragmentSpec]


def _render_yaml(path: Path, template_vars: dict[str, Any] | None = None) -> str:
    """Expand Jinja2 in the document; `env` exposes the process environment."""
    jinja = Environment(
        loader=FileSystemLoader(str(path.parent)),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    return jinja.get_template(path.name).render({"env": os.environ, **(template_vars or {})})


def load_desired_state(path: Path, template_vars: dict[str, Any] | None = None) -> DesiredState:
    """Load a desired-state YAML document; zones are validated separately."""
    if not path.is_file():
        raise ValidationError(f"Desired-state file not found: {path}")
    try:
        rendered = _render_yaml(path, template_vars)
    except TemplateError as exc:
        raise ValidationError(f"Failed to render {path}: {exc}") from exc
    try:
        data = yaml.safe_load(rendered) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"{path} is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"{path} must contain a mapping with a `zones` list")

    try:
        document = DesiredDocument.model_validate(data)
    except SchemaError as exc:
        raise ValidationError(f"{path}: {exc}") from exc

    return DesiredState(zones=document.zones, fragments=document.fragments)
