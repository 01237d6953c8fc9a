"""
Sensor Firmware Build System
============================

Prepares the plant sensor sketch for a specific network and drives
``arduino-cli`` to compile it and upload it to a board.
"""

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from dataclasses import dataclass
import logging

from moisture_manager.core.config_manager import ProvisioningConfig
from moisture_manager.utils.exceptions import ToolchainError

logger = logging.getLogger(__name__)

CONFIG_HEADER = "config.h"

LineCallback = Callable[[str], None]


@dataclass
class FirmwareVariant:
    """A private, configured copy of the sketch living in a temporary directory."""
    root: Path
    sketch_path: Path
    header_path: Path

    def cleanup(self):
        """Remove the generated files and the temporary directory."""
        if self.root.exists():
            shutil.rmtree(self.root)
            logger.debug(f"Removed firmware variant {self.root}")


def render_config_header(config: ProvisioningConfig) -> str:
    """Render the ``config.h`` defines for the supplied network settings."""
    lines = []
    if config.wifi_ssid is not None:
        lines.append(f'#define WIFI_SSID "{config.wifi_ssid}"')
    if config.wifi_pass is not None:
        lines.append(f'#define WIFI_PASS "{config.wifi_pass}"')
    if config.target_ip is not None:
        lines.append(f'#define TARGET_IP "{config.target_ip}"')
    lines.append(f"#define CONTROL_PIN {config.effective_control_pin}")
    return "\n".join(lines) + "\n"


def materialize_variant(source_dir: Path, config: ProvisioningConfig) -> FirmwareVariant:
    """Copy the sketch into a fresh temporary directory and write ``config.h``.

    The copy keeps the sketch folder name because arduino-cli requires the
    folder and the main ``.ino`` file to share it.
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Firmware source not found: {source_dir}")

    root = Path(tempfile.mkdtemp(prefix=f"{source_dir.name}_"))
    try:
        sketch_path = root / source_dir.name
        shutil.copytree(source_dir, sketch_path)

        header_path = sketch_path / CONFIG_HEADER
        header_path.write_text(render_config_header(config), encoding="utf-8")
    except Exception:
        shutil.rmtree(root, ignore_errors=True)
        raise

    logger.info(f"Materialized firmware variant at {sketch_path}")
    return FirmwareVariant(root=root, sketch_path=sketch_path, header_path=header_path)


class ArduinoToolchain:
    """Thin wrapper around the ``arduino-cli`` executable."""

    def __init__(self, cli_path: str, fqbn: str):
        self.cli_path = cli_path
        self.fqbn = fqbn

    @classmethod
    def discover(cls, candidates: Sequence[str], fqbn: str) -> Optional["ArduinoToolchain"]:
        """Return a toolchain for the first executable candidate, if any."""
        for candidate in candidates:
            if os.access(candidate, os.X_OK):
                logger.debug(f"Using arduino-cli at {candidate}")
                return cls(candidate, fqbn)
        return None

    def compile_command(self, sketch_path: Path) -> List[str]:
        return [self.cli_path, "compile", "--fqbn", self.fqbn, str(sketch_path)]

    def upload_command(self, port: str, sketch_path: Path) -> List[str]:
        return [self.cli_path, "upload", "-p", port, "--fqbn", self.fqbn, str(sketch_path)]

    def compile(self, sketch_path: Path, on_line: LineCallback) -> int:
        """Compile the sketch, streaming output; returns the exit code."""
        return self._stream(self.compile_command(sketch_path), on_line, "compile")

    def upload(self, port: str, sketch_path: Path, on_line: LineCallback) -> int:
        """Upload the sketch to ``port``, streaming output; returns the exit code."""
        return self._stream(self.upload_command(port, sketch_path), on_line, "upload")

    def _stream(self, cmd: List[str], on_line: LineCallback, action: str) -> int:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except OSError as e:
            raise ToolchainError(f"Failed to run arduino-cli {action}: {e}") from e

        with process:
            for line in process.stdout:
                on_line(line.rstrip("\r\n"))
            returncode = process.wait()

        logger.debug(f"arduino-cli {action} exited with {returncode}")
        return returncode
