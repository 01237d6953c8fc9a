"""
Firmware Provisioning
=====================

Flashes the plant sensor sketch onto the first attached USB-serial board and
waits for the board to announce its hardware identifier on the serial line.

One attempt walks a fixed sequence of states::

    SEARCH_DEVICE -> PREPARE_SOURCE -> COMPILE -> UPLOAD -> REDISCOVER_DEVICE
        -> WAIT_REGISTRATION -> FINALIZE -> CLEANUP -> DONE

Every failure is reported through the status sink and ends in FINALIZE with
an unassigned registration; the attempt always runs CLEANUP and always ends
with a ``None`` status so the sink can tell the workflow is over.
"""

from __future__ import annotations

import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional
import logging

from .build_system import ArduinoToolchain, FirmwareVariant, materialize_variant
from .config_manager import ProvisioningConfig
from .device_manager import SerialConnection, find_first_serial_port
from ..utils.exceptions import (
    CompileError,
    DeviceNotFoundError,
    ProvisioningError,
    ProvisioningStartError,
    RegistrationTimeoutError,
    SerialOpenError,
    SerialReadError,
    ToolchainError,
    UploadError,
)
from ..utils.identifiers import extract_identifier

logger = logging.getLogger(__name__)

StatusSink = Callable[[Optional[str]], None]
RegisterCallback = Callable[[Optional[str]], None]

LINE_BUFFER_SIZE = 256


class ProvisioningState(Enum):
    SEARCH_DEVICE = "search_device"
    PREPARE_SOURCE = "prepare_source"
    COMPILE = "compile"
    UPLOAD = "upload"
    REDISCOVER_DEVICE = "rediscover_device"
    WAIT_REGISTRATION = "wait_registration"
    FINALIZE = "finalize"
    CLEANUP = "cleanup"
    DONE = "done"


@dataclass
class ProvisioningAttempt:
    """Everything one provisioning run discovered and decided."""
    source_path: Path
    serial_path: Optional[str] = None
    registration_path: Optional[str] = None
    variant: Optional[FirmwareVariant] = None
    compile_rc: Optional[int] = None
    upload_rc: Optional[int] = None
    identifier: Optional[str] = None
    failure: Optional[ProvisioningError] = None
    state: ProvisioningState = ProvisioningState.SEARCH_DEVICE
    statuses: List[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    @property
    def succeeded(self) -> bool:
        return self.identifier is not None


class FirmwareProvisioner:
    """Runs provisioning attempts on a background executor."""

    def __init__(self, config: ProvisioningConfig,
                 status_sink: StatusSink,
                 register: RegisterCallback,
                 toolchain: Optional[ArduinoToolchain] = None,
                 executor: Optional[Executor] = None):
        self.config = config
        self.status_sink = status_sink
        self.register = register
        self._toolchain = toolchain
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="provision")
        self._owns_executor = executor is None

        self._handlers: Dict[ProvisioningState, Callable[[ProvisioningAttempt], ProvisioningState]] = {
            ProvisioningState.SEARCH_DEVICE: self._search_device,
            ProvisioningState.PREPARE_SOURCE: self._prepare_source,
            ProvisioningState.COMPILE: self._compile,
            ProvisioningState.UPLOAD: self._upload,
            ProvisioningState.REDISCOVER_DEVICE: self._rediscover_device,
            ProvisioningState.WAIT_REGISTRATION: self._wait_registration,
            ProvisioningState.FINALIZE: self._finalize,
            ProvisioningState.CLEANUP: self._cleanup,
        }

    # ------------------------------------------------------------------
    def start(self) -> Future:
        """Submit one attempt and return its future without waiting for it.

        Raises :class:`ProvisioningStartError` if the worker cannot be started.
        """
        try:
            future = self._executor.submit(self.run)
        except RuntimeError as e:
            message = f"Failed to start provisioning: {e}"
            self._status(message)
            raise ProvisioningStartError(message) from e
        logger.info("Provisioning attempt submitted")
        return future

    def shutdown(self, wait: bool = True):
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def run(self) -> ProvisioningAttempt:
        """Run one attempt to completion on the calling thread."""
        attempt = ProvisioningAttempt(source_path=self.config.firmware_path)
        finalized = False

        try:
            while attempt.state is not ProvisioningState.CLEANUP:
                if attempt.state is ProvisioningState.FINALIZE:
                    finalized = True
                attempt.state = self._handlers[attempt.state](attempt)
        except Exception as e:
            logger.exception("Provisioning attempt crashed")
            self._status(f"Provisioning failed: {e}", attempt)
            if not finalized:
                attempt.identifier = None
                self._notify_register(None)
        finally:
            attempt.state = ProvisioningState.CLEANUP
            self._cleanup(attempt)
            attempt.state = ProvisioningState.DONE
            attempt.finished_at = time.time()

        return attempt

    # ------------------------------------------------------------------
    def _status(self, message: Optional[str], attempt: Optional[ProvisioningAttempt] = None):
        if message is not None:
            logger.info(f"[provision] {message}")
            if attempt is not None:
                attempt.statuses.append(message)
        try:
            self.status_sink(message)
        except Exception as e:
            logger.warning(f"Status sink failed: {e}")

    def _notify_register(self, identifier: Optional[str]):
        try:
            self.register(identifier)
        except Exception as e:
            logger.warning(f"Registration consumer failed: {e}")

    def _fail(self, attempt: ProvisioningAttempt, error: ProvisioningError) -> ProvisioningState:
        attempt.failure = error
        return ProvisioningState.FINALIZE

    # ------------------------------------------------------------------
    def _search_device(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        self._status("Searching for serial device...", attempt)
        attempt.serial_path = find_first_serial_port(self.config.device_dir)
        if attempt.serial_path is None:
            self._status("No serial device found", attempt)
            return self._fail(attempt, DeviceNotFoundError("No serial device found"))
        logger.debug(f"Found serial device {attempt.serial_path}")
        return ProvisioningState.PREPARE_SOURCE

    def _prepare_source(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        if not self.config.has_network_overrides:
            return ProvisioningState.COMPILE

        try:
            attempt.variant = materialize_variant(self.config.firmware_path, self.config)
        except (OSError, ValueError) as e:
            self._status(f"Failed to prepare firmware variant ({e}); "
                         f"using {self.config.firmware_path}", attempt)
            return ProvisioningState.COMPILE

        attempt.source_path = attempt.variant.sketch_path
        self._status(f"Preparing firmware variant in {attempt.variant.root}", attempt)
        return ProvisioningState.COMPILE

    def _get_toolchain(self) -> Optional[ArduinoToolchain]:
        if self._toolchain is None:
            self._toolchain = ArduinoToolchain.discover(self.config.cli_candidates, self.config.fqbn)
        return self._toolchain

    def _compile(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        toolchain = self._get_toolchain()
        if toolchain is None:
            self._status("arduino-cli not found; skipping flash", attempt)
            return ProvisioningState.REDISCOVER_DEVICE

        self._status("Compiling sketch...", attempt)
        try:
            attempt.compile_rc = toolchain.compile(
                attempt.source_path, lambda line: self._status(line, attempt))
        except ToolchainError as e:
            logger.error(str(e))
            self._status("Failed to run arduino-cli compile", attempt)
            attempt.failure = e
        else:
            if attempt.compile_rc == 0:
                return ProvisioningState.UPLOAD
            attempt.failure = CompileError(attempt.compile_rc)
            self._status(str(attempt.failure), attempt)

        self._status("Skipping upload due to compile errors", attempt)
        return ProvisioningState.FINALIZE

    def _upload(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        toolchain = self._get_toolchain()
        self._status("Flashing device...", attempt)
        try:
            attempt.upload_rc = toolchain.upload(
                attempt.serial_path, attempt.source_path, lambda line: self._status(line, attempt))
        except ToolchainError as e:
            logger.error(str(e))
            self._status("Failed to run arduino-cli upload", attempt)
        else:
            if attempt.upload_rc != 0:
                self._status(str(UploadError(attempt.upload_rc)), attempt)

        # A board flashed by an earlier attempt can still register
        return ProvisioningState.REDISCOVER_DEVICE

    def _rediscover_device(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        attempt.registration_path = find_first_serial_port(self.config.device_dir)
        if attempt.registration_path is None:
            self._status("No serial device found after upload", attempt)
            return self._fail(attempt, DeviceNotFoundError("No serial device found after upload"))

        self._status(f"Using serial device {attempt.registration_path} for registration", attempt)
        return ProvisioningState.WAIT_REGISTRATION

    def _wait_registration(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        path = attempt.registration_path
        try:
            with SerialConnection(path) as connection:
                attempt.identifier = self._read_identifier(connection, attempt)
        except SerialOpenError as e:
            self._status(str(e), attempt)
            return self._fail(attempt, e)
        except SerialReadError as e:
            self._status(f"Serial read error: {e}", attempt)
            return self._fail(attempt, e)

        if attempt.identifier is None:
            return self._fail(attempt, RegistrationTimeoutError(path, self.config.registration_timeout))
        return ProvisioningState.FINALIZE

    def _read_identifier(self, connection: SerialConnection,
                         attempt: ProvisioningAttempt) -> Optional[str]:
        """Read lines until one carries an identifier or the deadline passes."""
        deadline = time.monotonic() + self.config.registration_timeout
        next_status = time.monotonic() + self.config.status_interval
        buffer = bytearray()

        while True:
            now = time.monotonic()
            if now >= deadline:
                return None
            if now >= next_status:
                self._status("Waiting for serial registration...", attempt)
                next_status = now + self.config.status_interval

            byte = connection.read_byte(min(self.config.poll_interval, deadline - now))
            if byte is None:
                continue

            if byte in (b"\n", b"\r"):
                line = buffer.decode("ascii", errors="replace")
                buffer.clear()
                identifier = extract_identifier(line)
                if identifier:
                    return identifier
                if line:
                    logger.debug(f"Serial: {line}")
            else:
                buffer += byte
                if len(buffer) >= LINE_BUFFER_SIZE - 1:
                    buffer.clear()

    def _finalize(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        if attempt.identifier:
            self._status(f"Registered {attempt.identifier}", attempt)
            self._notify_register(attempt.identifier)
        else:
            self._status("No registration received; adding unassigned plot", attempt)
            self._notify_register(None)
        return ProvisioningState.CLEANUP

    def _cleanup(self, attempt: ProvisioningAttempt) -> ProvisioningState:
        if attempt.variant is not None:
            try:
                attempt.variant.cleanup()
            except OSError as e:
                logger.warning(f"Failed to remove {attempt.variant.root}: {e}")
        self._status(None)
        return ProvisioningState.DONE
