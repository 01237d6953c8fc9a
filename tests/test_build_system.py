import stat
from pathlib import Path

import pytest

from moisture_manager.core.build_system import (
    ArduinoToolchain,
    materialize_variant,
    render_config_header,
)
from moisture_manager.core.config_manager import ProvisioningConfig
from moisture_manager.utils.exceptions import ToolchainError

FQBN = "arduino:samd:nano_33_iot"


def _fake_cli(tmp_path: Path, body: str) -> Path:
    script = tmp_path / "arduino-cli"
    script.write_text("#!/bin/sh\n" + body)
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


def test_config_header_defaults_control_pin(tmp_path):
    config = ProvisioningConfig(firmware_path=tmp_path, wifi_ssid="greenhouse")
    header = render_config_header(config)

    assert '#define WIFI_SSID "greenhouse"' in header
    assert "WIFI_PASS" not in header
    assert "TARGET_IP" not in header
    assert "#define CONTROL_PIN 2" in header


def test_config_header_all_values(tmp_path):
    config = ProvisioningConfig(firmware_path=tmp_path, wifi_ssid="net", wifi_pass="pw",
                                target_ip="192.168.1.10", control_pin="7")
    assert render_config_header(config).splitlines() == [
        '#define WIFI_SSID "net"',
        '#define WIFI_PASS "pw"',
        '#define TARGET_IP "192.168.1.10"',
        "#define CONTROL_PIN 7",
    ]


def test_materialize_variant_and_cleanup(tmp_path):
    source = tmp_path / "plant_sensor"
    source.mkdir()
    (source / "plant_sensor.ino").write_text("void setup() {}\n")

    config = ProvisioningConfig(firmware_path=source, target_ip="10.0.0.2")
    variant = materialize_variant(source, config)
    try:
        assert variant.sketch_path.name == "plant_sensor"
        assert (variant.sketch_path / "plant_sensor.ino").exists()
        assert '#define TARGET_IP "10.0.0.2"' in variant.header_path.read_text()
        assert not (source / "config.h").exists()
    finally:
        variant.cleanup()

    assert not variant.root.exists()
    # second cleanup is a no-op
    variant.cleanup()


def test_materialize_missing_source(tmp_path):
    config = ProvisioningConfig(firmware_path=tmp_path / "missing", wifi_ssid="x")
    with pytest.raises(FileNotFoundError):
        materialize_variant(tmp_path / "missing", config)


def test_commands():
    toolchain = ArduinoToolchain("/usr/bin/arduino-cli", FQBN)
    assert toolchain.compile_command(Path("sketch")) == [
        "/usr/bin/arduino-cli", "compile", "--fqbn", FQBN, "sketch"]
    assert toolchain.upload_command("/dev/ttyACM0", Path("sketch")) == [
        "/usr/bin/arduino-cli", "upload", "-p", "/dev/ttyACM0", "--fqbn", FQBN, "sketch"]


def test_discover_picks_first_executable(tmp_path):
    script = _fake_cli(tmp_path, "exit 0\n")
    toolchain = ArduinoToolchain.discover([str(tmp_path / "absent"), str(script)], FQBN)

    assert toolchain is not None
    assert toolchain.cli_path == str(script)
    assert ArduinoToolchain.discover([str(tmp_path / "absent")], FQBN) is None


def test_compile_streams_output_and_returns_code(tmp_path):
    script = _fake_cli(tmp_path, 'echo "$1 $3"\necho "warning: low memory" >&2\nexit 3\n')
    toolchain = ArduinoToolchain(str(script), FQBN)
    lines = []

    rc = toolchain.compile(tmp_path, lines.append)

    assert rc == 3
    assert lines == [f"compile {FQBN}", "warning: low memory"]


def test_upload_passes_port(tmp_path):
    script = _fake_cli(tmp_path, 'echo "$1 $3"\n')
    toolchain = ArduinoToolchain(str(script), FQBN)
    lines = []

    assert toolchain.upload("/dev/ttyUSB0", tmp_path, lines.append) == 0
    assert lines == ["upload /dev/ttyUSB0"]


def test_missing_executable_raises(tmp_path):
    toolchain = ArduinoToolchain(str(tmp_path / "no-such-cli"), FQBN)
    with pytest.raises(ToolchainError, match="compile"):
        toolchain.compile(tmp_path, lambda line: None)
