from __future__ import annotations
from dataclasses import dataclass, asdict, field
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_GATEWAY_PORT = 12345
DEFAULT_FIRMWARE_PATH = Path("firmware/plant_sensor")
DEFAULT_FQBN = "arduino:samd:nano_33_iot"
DEFAULT_CONTROL_PIN = "2"
ARDUINO_CLI_CANDIDATES = ("/usr/local/bin/arduino-cli", "/usr/bin/arduino-cli")


def _env(environ: Mapping[str, str], key: str) -> Optional[str]:
    """Return an environment value, treating unset and empty alike."""
    value = environ.get(key)
    return value if value else None


@dataclass
class GatewayConfig:
    """Telemetry gateway configuration."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_GATEWAY_PORT
    capacity: int = 32
    packet_log: Optional[Path] = None
    stop_timeout: float = 2.0

    def __post_init__(self):
        if self.packet_log is not None:
            self.packet_log = Path(self.packet_log)
        if not 0 <= int(self.port) <= 65535:
            raise ValueError(f"Invalid UDP port: {self.port!r}")
        self.port = int(self.port)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
        environ = os.environ if environ is None else environ
        config = cls()
        if _env(environ, "GATEWAY_HOST"):
            config.host = environ["GATEWAY_HOST"]
        if _env(environ, "GATEWAY_PORT"):
            config.port = int(environ["GATEWAY_PORT"])
        if _env(environ, "GATEWAY_PACKET_LOG"):
            config.packet_log = Path(environ["GATEWAY_PACKET_LOG"])
        config.__post_init__()
        return config

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['packet_log'] = str(self.packet_log) if self.packet_log else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GatewayConfig:
        return cls(**data)


@dataclass
class ProvisioningConfig:
    """Firmware provisioning configuration.

    ``wifi_ssid``, ``wifi_pass`` and ``target_ip`` are baked into a generated
    ``config.h`` when any of them is set; otherwise the sketch is built as-is.
    """
    firmware_path: Path = DEFAULT_FIRMWARE_PATH
    wifi_ssid: Optional[str] = None
    wifi_pass: Optional[str] = None
    target_ip: Optional[str] = None
    control_pin: Optional[str] = None
    fqbn: str = DEFAULT_FQBN
    registration_timeout: float = 60.0
    poll_interval: float = 0.1
    status_interval: float = 1.0
    cli_candidates: Tuple[str, ...] = field(default=ARDUINO_CLI_CANDIDATES)
    device_dir: Path = Path("/dev")

    def __post_init__(self):
        self.firmware_path = Path(self.firmware_path)
        self.device_dir = Path(self.device_dir)
        self.cli_candidates = tuple(self.cli_candidates)
        if self.control_pin is not None:
            self.control_pin = str(self.control_pin)

    @property
    def has_network_overrides(self) -> bool:
        return any(v is not None for v in (self.wifi_ssid, self.wifi_pass, self.target_ip))

    @property
    def effective_control_pin(self) -> str:
        return self.control_pin if self.control_pin is not None else DEFAULT_CONTROL_PIN

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> ProvisioningConfig:
        environ = os.environ if environ is None else environ
        config = cls(
            wifi_ssid=_env(environ, "FLASH_SSID"),
            wifi_pass=_env(environ, "FLASH_PASS"),
            target_ip=_env(environ, "FLASH_TARGET_IP"),
            control_pin=_env(environ, "FLASH_CONTROL_PIN"),
            fqbn=_env(environ, "FLASH_FQBN") or DEFAULT_FQBN,
        )
        if _env(environ, "FLASH_FIRMWARE_PATH"):
            config.firmware_path = Path(environ["FLASH_FIRMWARE_PATH"])
        logger.debug(f"Provisioning config: fqbn={config.fqbn} firmware={config.firmware_path} "
                     f"overrides={config.has_network_overrides}")
        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with paths as strings."""
        data = asdict(self)
        data['firmware_path'] = str(self.firmware_path)
        data['device_dir'] = str(self.device_dir)
        data['cli_candidates'] = list(self.cli_candidates)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ProvisioningConfig:
        return cls(**data)
