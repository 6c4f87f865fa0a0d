"""End-to-end convergence tests driven through ZoneController"""

import pytest

from bind9_zones.controller import ZoneController
from bind9_zones.host import LocalHost
from bind9_zones.models import DefinitionConflict, ValidationError
from bind9_zones.renderer import SERIAL_TOKEN
from bind9_zones.yaml_loader import FragmentSpec


def _run(controller, zones, fragments=()):
    _, assembly = controller.build(zones, fragments)
    return controller.converge(assembly)


def test_static_master_example(controller, config, runner, static_zone):
    report = _run(controller, [static_zone])

    data = (config.pri_dir / "example.com.conf").read_text()
    pointer = (config.zones_dir / "example.com.conf").read_text()
    include = config.include_file.read_text()
    assert data.startswith("; File managed by bind9-zones")
    assert "2024010100 ; serial" in data
    assert 'zone "example.com" {' in pointer
    assert f'file "{config.pri_dir / "example.com.conf"}";' in pointer
    assert include == f'include "{config.zones_dir / "example.com.conf"}";\n'
    assert report.fired() == ["reload"]
    assert runner.calls == [["rndc", "reload"]]


def test_keys_emitted_for_static_master(controller, config, static_zone):
    _, assembly = controller.build([static_zone])

    assert assembly.files[config.pri_dir / "example.com.conf"].keys == ("00.bind.example.com",)
    assert assembly.files[config.zones_dir / "example.com.conf"].keys == ("bind.zones.example.com",)
    assert assembly.files[config.include_file].keys == ("named.local.zone.example.com",)
    assert config.pri_dir / "example.com.conf.d" in assembly.deletions


def test_second_identical_run_is_a_noop(controller, runner, static_zone, auto_zone, dynamic_zone, slave_zone):
    zones = [static_zone, auto_zone, dynamic_zone, slave_zone]
    _run(controller, zones)
    runner.calls.clear()

    report = _run(controller, zones)

    assert not report.has_changes()
    assert report.fired() == []
    assert runner.calls == []


def test_absent_zone_removes_files_and_reloads_once(controller, config, runner, static_zone):
    _run(controller, [static_zone])
    runner.calls.clear()

    report = _run(controller, [{"name": "example.com", "ensure": "absent"}])

    assert not (config.pri_dir / "example.com.conf").exists()
    assert not (config.zones_dir / "example.com.conf").exists()
    assert config.include_file.read_text() == ""
    assert report.fired() == ["reload"]
    assert runner.calls == [["rndc", "reload"]]


def test_absent_zone_files_are_removed_whatever_existed(controller, config):
    config.pri_dir.mkdir(parents=True)
    (config.pri_dir / "soa.gone.example.conf").write_text("stale")

    _run(controller, [{"name": "gone.example", "ensure": "absent"}])
    report = _run(controller, [{"name": "gone.example", "ensure": "absent"}])

    for path in (
        config.pri_dir / "gone.example.conf",
        config.pri_dir / "soa.gone.example.conf",
        config.zones_dir / "gone.example.conf",
    ):
        assert not path.exists()
    assert not report.has_changes()


@pytest.mark.parametrize(
    "flags",
    [
        {"is_slave": True, "is_dynamic": True},
        {"is_forward": True, "is_dynamic": True, "zone_forwarders": "192.0.2.1"},
        {"is_forward": True, "is_slave": True, "zone_forwarders": "192.0.2.1"},
        {"transfer_source": "192.0.2.53"},
    ],
)
def test_invalid_zone_aborts_before_any_write(controller, config, runner, static_zone, flags):
    bad = dict(static_zone, name="bad.example", **flags)

    with pytest.raises(ValidationError):
        _run(controller, [static_zone, bad])

    assert not config.conf_dir.exists()
    assert runner.calls == []


def test_colliding_zones_abort_before_any_write(controller, config, runner, static_zone):
    with pytest.raises(DefinitionConflict, match="example.com"):
        _run(controller, [static_zone, dict(static_zone)])

    assert not config.conf_dir.exists()
    assert runner.calls == []


def test_dynamic_header_is_written_once(controller, config, dynamic_zone):
    _run(controller, [dynamic_zone])
    header = config.dynamic_dir / "dyn.example.conf"
    original = header.read_text()
    assert header.stat().st_mode & 0o777 == 0o664

    report = _run(controller, [dict(dynamic_zone, zone_ttl="600", zone_serial="2")])

    assert header.read_text() == original
    assert not report.has_changes()


def test_dynamic_zone_points_at_dynamic_file(controller, config, dynamic_zone):
    _run(controller, [dynamic_zone])

    pointer = (config.zones_dir / "dyn.example.conf").read_text()
    assert f'file "{config.dynamic_dir / "dyn.example.conf"}";' in pointer
    assert "allow-update { key dhcp-key; };" in pointer
    assert not (config.pri_dir / "dyn.example.conf").exists()


def test_auto_serial_header_change_fires_soa_and_reload(controller, config, runner, auto_zone):
    first = _run(controller, [auto_zone])
    soa_file = config.pri_dir / "soa.auto.example.conf"
    data_file = config.pri_dir / "auto.example.conf"

    assert first.fired() == ["soa:auto.example", "reload"]
    assert SERIAL_TOKEN not in soa_file.read_text()
    assert data_file.read_text() == f'$INCLUDE "{soa_file}"\n'

    runner.calls.clear()
    report = _run(controller, [dict(auto_zone, zone_ttl="7200")])

    assert report.fired() == ["soa:auto.example", "reload"]
    assert "$TTL 7200" in soa_file.read_text()
    assert runner.calls == [["rndc", "reload"]]


def test_unrelated_change_does_not_regenerate_soa(controller, config, auto_zone, static_zone):
    _run(controller, [auto_zone, static_zone])
    soa_file = config.pri_dir / "soa.auto.example.conf"
    before = soa_file.read_text()

    report = _run(controller, [auto_zone, dict(static_zone, zone_serial="2024010101")])

    assert report.fired() == ["reload"]
    assert soa_file.read_text() == before


def test_legacy_directory_is_cleaned_for_master_zones(controller, config, static_zone):
    legacy = config.pri_dir / "example.com.conf.d"
    (legacy / "old").mkdir(parents=True)

    _run(controller, [static_zone])

    assert not legacy.exists()


def test_slave_and_forward_zones(controller, config, slave_zone):
    forward = {"name": "fwd.example", "is_forward": True, "zone_forwarders": "192.0.2.1"}

    _run(controller, [slave_zone, forward])

    assert "type slave;" in (config.zones_dir / "slave.example.conf").read_text()
    assert "type forward;" in (config.zones_dir / "fwd.example.conf").read_text()
    assert not (config.pri_dir / "slave.example.conf").exists()
    include = config.include_file.read_text().splitlines()
    assert include == [
        f'include "{config.zones_dir / "fwd.example.conf"}";',
        f'include "{config.zones_dir / "slave.example.conf"}";',
    ]


def test_record_fragments_follow_header(controller, config, static_zone):
    fragments = [
        FragmentSpec(zone="example.com", key="20.mail", content="@ IN MX 10 mail"),
        FragmentSpec(zone="example.com", key="10.www", content="www IN A 192.0.2.80\n"),
    ]

    _run(controller, [static_zone], fragments)

    lines = (config.pri_dir / "example.com.conf").read_text().splitlines()
    assert lines[-2:] == ["www IN A 192.0.2.80", "@ IN MX 10 mail"]
    assert lines[0].startswith("; File managed")


@pytest.mark.parametrize("key", ["00.bind.example.com", "00.aaa"])
def test_record_fragment_header_keys_are_reserved(controller, config, static_zone, key):
    fragments = [FragmentSpec(zone="example.com", key=key, content="oops")]

    with pytest.raises(ValidationError, match=f"fragment key '{key}' is reserved"):
        controller.build([static_zone], fragments)

    assert not config.conf_dir.exists()


@pytest.mark.parametrize("zone_name", ["missing.example", "slave.example"])
def test_record_fragment_needs_static_master(controller, slave_zone, zone_name):
    fragments = [FragmentSpec(zone=zone_name, key="10.www", content="www IN A 192.0.2.80")]

    with pytest.raises(ValidationError, match=zone_name):
        controller.build([slave_zone], fragments)


def test_empty_declaration_keeps_include_file(controller, config, runner, static_zone):
    _run(controller, [static_zone])
    runner.calls.clear()

    report = _run(controller, [])

    assert config.include_file.read_text() == ""
    assert report.fired() == ["reload"]


def test_plan_from_yaml_writes_nothing(controller, config, tmp_path):
    desired = tmp_path / "zones.yml"
    desired.write_text(
        "zones:\n"
        "  - name: {{ domain }}\n"
        "    zone_contact: admin.{{ domain }}\n"
        "    zone_ttl: 86400\n"
        "    zone_serial: 2024010100\n"
        "    zone_ns: ns1.{{ domain }}\n"
        "fragments:\n"
        "  - zone: {{ domain }}\n"
        "    key: 10.www\n"
        "    content: www IN A 192.0.2.80\n"
    )

    plan = controller.plan(desired, template_vars={"domain": "example.org"})

    assert [zone.name for zone in plan.zones] == ["example.org"]
    assert plan.preview.dry_run
    assert plan.preview.fired() == ["reload"]
    assert config.pri_dir / "example.org.conf" in plan.preview.changed_paths()
    assert not config.conf_dir.exists()


def test_apply_converges_planned_state(controller, config, tmp_path, runner):
    desired = tmp_path / "zones.yml"
    desired.write_text("zones:\n  - name: fwd.example\n    is_forward: true\n    zone_forwarders: 192.0.2.1\n")

    report = controller.apply(controller.plan(desired), assume_yes=True)
    again = controller.apply(controller.plan(desired), assume_yes=True)

    assert (config.zones_dir / "fwd.example.conf").exists()
    assert report.fired() == ["reload"]
    assert not again.has_changes()
    assert runner.calls == [["rndc", "reload"]]


def test_package_install_and_checkconf(config_factory, runner, static_zone):
    config = config_factory(
        package_install_cmd="apt-get install -y {package}",
        named_checkconf_bin="named-checkconf",
        rndc_server="127.0.0.1",
    )
    controller = ZoneController(config, host=LocalHost(runner=runner))

    _run(controller, [static_zone])

    assert runner.calls == [
        ["apt-get", "install", "-y", "bind9"],
        ["named-checkconf"],
        ["rndc", "-s", "127.0.0.1", "reload"],
    ]


def test_failed_checkconf_skips_reload(config_factory, runner, static_zone):
    config = config_factory(named_checkconf_bin="named-checkconf")
    runner.fail_on.add("named-checkconf")
    controller = ZoneController(config, host=LocalHost(runner=runner))

    report = _run(controller, [static_zone])

    assert report.has_errors()
    assert runner.calls == [["named-checkconf"]]


def test_absent_zone_removes_undecodable_leftovers(controller, config, runner):
    config.pri_dir.mkdir(parents=True)
    leftover = config.pri_dir / "soa.gone.example.conf"
    leftover.write_bytes(b"\xff\xfe latin-1 caf\xe9\n")

    report = _run(controller, [{"name": "gone.example", "ensure": "absent"}])

    assert not leftover.exists()
    assert not report.has_errors()
    assert report.fired() == ["reload"]


def test_undecodable_include_file_does_not_block_other_files(controller, config, static_zone):
    config.include_file.parent.mkdir(parents=True)
    config.include_file.write_bytes(b"include \"caf\xe9\";\n")

    report = _run(controller, [static_zone])

    assert not report.has_errors()
    assert (config.zones_dir / "example.com.conf").exists()
    assert config.include_file.read_text() == f'include "{config.zones_dir / "example.com.conf"}";\n'


def test_apply_without_changes_still_installs_package(config_factory, runner, tmp_path):
    config = config_factory(package_install_cmd="apt-get install -y {package}")
    controller = ZoneController(config, host=LocalHost(runner=runner))
    desired = tmp_path / "zones.yml"
    desired.write_text("zones:\n  - name: fwd.example\n    is_forward: true\n    zone_forwarders: 192.0.2.1\n")
    controller.apply(controller.plan(desired), assume_yes=True)
    runner.calls.clear()

    report = controller.apply(controller.plan(desired), assume_yes=True)

    assert not report.has_changes()
    assert runner.calls == [["apt-get", "install", "-y", "bind9"]]
