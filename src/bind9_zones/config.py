"""Environment-driven settings for bind9-zones."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@dataclass(frozen=True)
class AppConfig:
    """Where managed BIND files live, who owns them, and how to reload named."""

    conf_dir: Path
    zones_dir: Path
    pri_dir: Path
    dynamic_dir: Path
    include_file: Path
    file_owner: str | None
    file_group: str | None
    file_mode: int
    dynamic_mode: int
    templates_dir: Path
    rndc_bin: str
    rndc_server: str
    named_checkconf_bin: str
    serial_strategy: str
    package_name: str
    package_install_cmd: str
    git_auto_commit: bool
    git_commit_template: str
    log_level: str

    def reload_commands(self) -> tuple[tuple[str, ...], ...]:
        """Return the commands run, in order, when the daemon must reload."""
        commands: list[tuple[str, ...]] = []
        if self.named_checkconf_bin:
            commands.append((self.named_checkconf_bin,))
        if self.rndc_bin:
            rndc = [self.rndc_bin]
            if self.rndc_server:
                rndc.extend(["-s", self.rndc_server])
            commands.append((*rndc, "reload"))
        return tuple(commands)


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Return a boolean parsed from a string."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_mode(name: str, value: str) -> int:
    """Parse an octal file mode such as ``0644``."""
    try:
        mode = int(value, 8)
    except ValueError as exc:
        raise ValueError(f"{name} must be an octal file mode, got '{value}'.") from exc
    if not 0 <= mode <= 0o7777:
        raise ValueError(f"{name} is out of range: '{value}'.")
    return mode


def _optional(value: str | None) -> str | None:
    """Treat empty strings as unset."""
    if value is None or not value.strip():
        return None
    return value.strip()


def load_config() -> AppConfig:
    """Build an AppConfig from environment variables, reading .env first."""
    load_dotenv()
    conf_dir = Path(os.getenv("BIND_CONF_DIR", "/etc/bind"))
    zones_dir = Path(os.getenv("BIND_ZONES_DIR") or conf_dir / "zones")
    pri_dir = Path(os.getenv("BIND_PRI_DIR") or conf_dir / "pri")
    dynamic_dir = Path(os.getenv("BIND_DYNAMIC_DIR") or conf_dir / "dynamic")
    include_file = Path(os.getenv("BIND_INCLUDE_FILE") or conf_dir / "named.conf.local")
    for label, path in (
        ("BIND_ZONES_DIR", zones_dir),
        ("BIND_PRI_DIR", pri_dir),
        ("BIND_DYNAMIC_DIR", dynamic_dir),
        ("BIND_INCLUDE_FILE", include_file),
    ):
        if not path.is_absolute():
            raise ValueError(f"{label} must be an absolute path, got '{path}'.")

    serial_strategy = os.getenv("SERIAL_STRATEGY", "date").lower()
    if serial_strategy not in {"date", "epoch"}:
        raise ValueError("SERIAL_STRATEGY must be either 'date' or 'epoch'.")

    templates_dir = Path(os.getenv("TEMPLATES_DIR") or DEFAULT_TEMPLATES_DIR).resolve()

    return AppConfig(
        conf_dir=conf_dir,
        zones_dir=zones_dir,
        pri_dir=pri_dir,
        dynamic_dir=dynamic_dir,
        include_file=include_file,
        file_owner=_optional(os.getenv("BIND_FILE_OWNER", "root")),
        file_group=_optional(os.getenv("BIND_FILE_GROUP", "bind")),
        file_mode=_parse_mode("BIND_FILE_MODE", os.getenv("BIND_FILE_MODE", "0644")),
        dynamic_mode=_parse_mode("BIND_DYNAMIC_MODE", os.getenv("BIND_DYNAMIC_MODE", "0664")),
        templates_dir=templates_dir,
        rndc_bin=os.getenv("RNDC_BIN", "rndc"),
        rndc_server=os.getenv("RNDC_SERVER", ""),
        named_checkconf_bin=os.getenv("NAMED_CHECKCONF_BIN", "named-checkconf"),
        serial_strategy=serial_strategy,
        package_name=os.getenv("BIND_PACKAGE", "bind9"),
        package_install_cmd=os.getenv("PACKAGE_INSTALL_CMD", ""),
        git_auto_commit=_parse_bool(os.getenv("GIT_AUTO_COMMIT", "false")),
        git_commit_template=os.getenv("GIT_COMMIT_TEMPLATE", "chore(bind): converge {count} file(s)"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
