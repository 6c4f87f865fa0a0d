import subprocess
from pathlib import Path

import pytest

from bind9_zones.config import DEFAULT_TEMPLATES_DIR, AppConfig
from bind9_zones.controller import ZoneController
from bind9_zones.host import LocalHost


class RecordingRunner:
    """Stands in for subprocess.run and remembers every command."""

    def __init__(self):
        self.calls: list[list[str]] = []
        self.fail_on: set[str] = set()

    def __call__(self, cmd, check=True, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] in self.fail_on:
            raise subprocess.CalledProcessError(1, cmd, output="", stderr=f"{cmd[0]} exploded")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


def make_config(root: Path, **overrides) -> AppConfig:
    conf = root / "bind"
    values = dict(
        conf_dir=conf,
        zones_dir=conf / "zones",
        pri_dir=conf / "pri",
        dynamic_dir=conf / "dynamic",
        include_file=conf / "named.conf.local",
        file_owner=None,
        file_group=None,
        file_mode=0o644,
        dynamic_mode=0o664,
        templates_dir=DEFAULT_TEMPLATES_DIR,
        rndc_bin="rndc",
        rndc_server="",
        named_checkconf_bin="",
        serial_strategy="date",
        package_name="bind9",
        package_install_cmd="",
        git_auto_commit=False,
        git_commit_template="converge {count}",
        log_level="DEBUG",
    )
    values.update(overrides)
    return AppConfig(**values)


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return make_config(tmp_path)


@pytest.fixture
def config_factory(tmp_path):
    def _factory(**overrides) -> AppConfig:
        return make_config(tmp_path, **overrides)

    return _factory


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def host(runner) -> LocalHost:
    return LocalHost(runner=runner)


@pytest.fixture
def controller(config, host) -> ZoneController:
    return ZoneController(config, host=host)


@pytest.fixture
def static_zone() -> dict:
    return {
        "name": "example.com",
        "zone_contact": "admin.example.com",
        "zone_ttl": "86400",
        "zone_serial": "2024010100",
        "zone_ns": ["ns1.example.com", "ns2.example.com"],
    }


@pytest.fixture
def auto_zone() -> dict:
    return {
        "name": "auto.example",
        "auto_serial": True,
        "zone_contact": "hostmaster.auto.example",
        "zone_ttl": "3600",
        "zone_ns": ["ns1.auto.example"],
    }


@pytest.fixture
def dynamic_zone() -> dict:
    return {
        "name": "dyn.example",
        "is_dynamic": True,
        "zone_contact": "hostmaster.dyn.example",
        "zone_ttl": "300",
        "zone_serial": "1",
        "zone_ns": ["ns1.dyn.example"],
        "allow_update": ["dhcp-key"],
    }


@pytest.fixture
def slave_zone() -> dict:
    return {
        "name": "slave.example",
        "is_slave": True,
        "zone_masters": "192.0.2.1",
        "transfer_source": "192.0.2.53",
    }
