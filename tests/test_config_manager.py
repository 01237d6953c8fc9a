from pathlib import Path

import pytest

from moisture_manager.core.config_manager import (
    DEFAULT_FQBN,
    DEFAULT_GATEWAY_PORT,
    GatewayConfig,
    ProvisioningConfig,
)


def test_gateway_defaults():
    config = GatewayConfig.from_env({})
    assert config.host == "0.0.0.0"
    assert config.port == DEFAULT_GATEWAY_PORT
    assert config.capacity == 32
    assert config.packet_log is None


def test_gateway_from_env():
    config = GatewayConfig.from_env({
        "GATEWAY_HOST": "127.0.0.1",
        "GATEWAY_PORT": "4000",
        "GATEWAY_PACKET_LOG": "server.log",
    })
    assert config.host == "127.0.0.1"
    assert config.port == 4000
    assert config.packet_log == Path("server.log")


def test_gateway_rejects_bad_port():
    with pytest.raises(ValueError):
        GatewayConfig(port=70000)
    with pytest.raises(ValueError):
        GatewayConfig.from_env({"GATEWAY_PORT": "not-a-port"})


def test_gateway_dict_round_trip(tmp_path):
    config = GatewayConfig(port=5000, packet_log=tmp_path / "p.log")
    data = config.to_dict()
    assert data["packet_log"] == str(tmp_path / "p.log")
    assert GatewayConfig.from_dict(data) == config


def test_provisioning_from_env_treats_empty_as_unset():
    config = ProvisioningConfig.from_env({
        "FLASH_SSID": "greenhouse",
        "FLASH_PASS": "",
        "FLASH_CONTROL_PIN": "",
        "FLASH_FQBN": "",
    })
    assert config.wifi_ssid == "greenhouse"
    assert config.wifi_pass is None
    assert config.control_pin is None
    assert config.effective_control_pin == "2"
    assert config.fqbn == DEFAULT_FQBN
    assert config.has_network_overrides


def test_provisioning_without_overrides():
    config = ProvisioningConfig.from_env({"FLASH_CONTROL_PIN": "5", "FLASH_FQBN": "esp32:esp32:esp32"})
    assert not config.has_network_overrides
    assert config.effective_control_pin == "5"
    assert config.fqbn == "esp32:esp32:esp32"


def test_provisioning_firmware_path_override():
    config = ProvisioningConfig.from_env({"FLASH_FIRMWARE_PATH": "/opt/sketches/plant_sensor"})
    assert config.firmware_path == Path("/opt/sketches/plant_sensor")


def test_provisioning_to_dict():
    config = ProvisioningConfig(firmware_path="sketch", control_pin=4)
    data = config.to_dict()
    assert data["firmware_path"] == "sketch"
    assert data["control_pin"] == "4"
    assert isinstance(data["cli_candidates"], list)
    assert ProvisioningConfig.from_dict(data) == config
