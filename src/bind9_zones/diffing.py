"""Change detection helpers for managed files."""

from __future__ import annotations

import difflib
import hashlib
import re

from .renderer import SERIAL_TOKEN

SERIAL_LINE = re.compile(r"^(\s*)\d+(\s+; serial)$", re.MULTILINE)


def content_digest(content: str | bytes) -> str:
    """Return a stable digest of file content, given as text or raw bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def mask_serial(text: str) -> str:
    """Replace the SOA serial number with the placeholder used in templates."""
    return SERIAL_LINE.sub(rf"\g<1>{SERIAL_TOKEN}\g<2>", text, count=1)


def parse_serial(text: str) -> int | None:
    """Return the serial number recorded in a rendered header, if any."""
    match = re.search(r"^\s*(\d+)\s+; serial$", text, re.MULTILINE)
    return int(match.group(1)) if match else None


def unified_diff(path: str, before: str | None, after: str | None) -> str:
    """Produce a unified diff between two versions of a file."""
    return "".join(
        difflib.unified_diff(
            (before or "").splitlines(keepends=True),
            (after or "").splitlines(keepends=True),
            fromfile=f"{path} (current)" if before is not None else "/dev/null",
            tofile=f"{path} (desired)" if after is not None else "/dev/null",
        )
    )
