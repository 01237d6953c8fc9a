"""
Telemetry & Command Gateway
===========================

Receives UDP datagrams from provisioned sensors, keeps a session per device
in a :class:`DeviceSessionRegistry`, forwards validated moisture readings to
a consumer callback and pushes commands back to devices by identifier.
"""

import socket
import threading
from typing import Callable, List, Optional, Tuple
import logging

from .config_manager import GatewayConfig
from .registry import Address, DeviceSessionRegistry, OutputState
from ..utils.exceptions import SendFailedError, SocketBindError, UnknownIdentifierError
from ..utils.identifiers import looks_like_identifier
from ..utils.packet_log import PacketLog
from ..utils.packet_parser import Reading, parse_output_state, parse_telemetry

logger = logging.getLogger(__name__)

MAX_DATAGRAM_SIZE = 8192
DIGITAL_PIN = "D0"

ReadingCallback = Callable[[str, float], None]


def digital_command(activate: bool) -> str:
    """Command string that drives the sensor's digital output."""
    return f"{DIGITAL_PIN} {1 if activate else 0}"


def _leading_token(text: str) -> str:
    token = text.split(None, 1)[0]
    return token.split(",", 1)[0]


class TelemetryGateway:
    """UDP receive loop plus command/query operations on device sessions."""

    def __init__(self, config: Optional[GatewayConfig] = None,
                 on_reading: Optional[ReadingCallback] = None,
                 registry: Optional[DeviceSessionRegistry] = None):
        self.config = config or GatewayConfig()
        self.on_reading = on_reading
        self.registry = registry if registry is not None else DeviceSessionRegistry(self.config.capacity)
        self.packet_log = PacketLog(self.config.packet_log) if self.config.packet_log else None

        self._sock: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()

    # ------------------------------------------------------------------
    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """Bound ``(host, port)`` while running."""
        return self._address

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Bind the socket and start the receive thread.

        Raises :class:`SocketBindError` synchronously if the port is unavailable.
        """
        if self.is_running:
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.config.host, self.config.port))
        except OSError as e:
            sock.close()
            raise SocketBindError(self.config.host, self.config.port, e) from e

        self._sock = sock
        self._address = sock.getsockname()
        self._running.set()
        self._thread = threading.Thread(
            target=self._receive_loop,
            name="telemetry-gateway",
            daemon=True
        )
        self._thread.start()
        logger.info(f"Gateway listening on UDP {self._address[0]}:{self._address[1]}")

    def stop(self):
        """Stop the receive loop and wait for its thread to exit."""
        if self._thread is None:
            return

        self._running.clear()
        self._wake()
        self._thread.join(timeout=self.config.stop_timeout)
        if self._thread.is_alive():
            logger.warning("Gateway receive thread did not exit in time")
        self._thread = None
        self._address = None
        logger.info("Gateway stopped")

    def _wake(self):
        """Unblock ``recvfrom`` by sending ourselves a one-byte datagram."""
        host, port = self._address
        if host in ("", "0.0.0.0"):
            host = "127.0.0.1"
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.sendto(b"\0", (host, port))
        except OSError as e:
            logger.warning(f"Failed to wake gateway receive loop: {e}")

    def _receive_loop(self):
        sock = self._sock
        try:
            while self._running.is_set():
                try:
                    payload, address = sock.recvfrom(MAX_DATAGRAM_SIZE + 1)
                except OSError as e:
                    if self._running.is_set():
                        logger.error(f"Gateway receive failed: {e}")
                    break

                if not self._running.is_set():
                    break

                try:
                    self.handle_packet(payload, address)
                except Exception as e:
                    logger.exception(f"Failed to handle packet from {address}: {e}")
        finally:
            sock.close()
            self._sock = None
            if self.packet_log:
                self.packet_log.close()

    # ------------------------------------------------------------------
    def handle_packet(self, payload: bytes, address: Address) -> Optional[Reading]:
        """Process one datagram; returns the forwarded reading, if any."""
        if not payload or len(payload) > MAX_DATAGRAM_SIZE:
            logger.debug(f"Dropping {len(payload)} byte packet from {address}")
            return None

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Dropping undecodable packet from {address}")
            return None

        text = text.replace("\0", "").strip()
        if not text:
            return None

        if self.packet_log:
            self.packet_log.write(address, text)

        self._attribute_line(text, address)

        reading = parse_telemetry(text)
        if reading is None:
            return None

        self.registry.touch(reading.identifier, address)
        self._forward(reading)
        return reading

    def _attribute_line(self, text: str, address: Address) -> Optional[str]:
        report = parse_output_state(text)
        state = None
        if report is not None:
            state = OutputState.HIGH if report.high else OutputState.LOW

        token = _leading_token(text)
        if looks_like_identifier(token) and self.registry.record_line(token, text, address, state):
            return token

        identifier = self.registry.record_line_by_address(address, text, state)
        if identifier is None:
            logger.debug(f"Unattributed line from {address}: {text!r}")
        return identifier

    def _forward(self, reading: Reading):
        if self.on_reading is None:
            return
        try:
            self.on_reading(reading.identifier, reading.value)
        except Exception as e:
            logger.warning(f"Reading consumer failed: {e}")

    # ------------------------------------------------------------------
    def send_digital_command(self, identifier: str, activate: bool):
        """Switch the device's digital output on or off."""
        self.send_text(identifier, digital_command(activate))

    def send_text(self, identifier: str, text: str):
        """Send ``text`` verbatim to the device's last known address."""
        address = self.registry.address_of(identifier)
        if address is None:
            raise UnknownIdentifierError(identifier)

        data = text.encode("utf-8")
        try:
            sock = self._sock
            if sock is not None:
                sock.sendto(data, address)
            else:
                with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                    s.sendto(data, address)
        except OSError as e:
            raise SendFailedError(identifier, e) from e

        logger.info(f"Sent {text!r} to {identifier} at {address[0]}:{address[1]}")

    def get_recent_lines(self, identifier: str) -> List[str]:
        return self.registry.recent_lines(identifier)

    def get_live_text(self, identifier: str) -> str:
        return self.registry.live_text(identifier)

    def get_output_state(self, identifier: str) -> OutputState:
        return self.registry.output_state(identifier)

    def list_devices(self) -> List[str]:
        return self.registry.identifiers()

    def __enter__(self) -> "TelemetryGateway":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
