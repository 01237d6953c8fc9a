"""Exception hierarchy shared by the provisioning and gateway subsystems."""
from __future__ import annotations

from typing import Optional


class MoistureManagerError(Exception):
    """Base class for all moisture manager errors."""


class ProvisioningError(MoistureManagerError):
    """Failure inside a firmware provisioning attempt."""


class DeviceNotFoundError(ProvisioningError):
    """No USB serial node was found."""


class SerialOpenError(ProvisioningError):
    """The serial node could not be opened or configured."""


class SerialReadError(ProvisioningError):
    """Unrecoverable error while reading from the serial node."""


class ToolchainError(ProvisioningError):
    """The build/upload executable is missing or could not be started."""


class CompileError(ProvisioningError):
    def __init__(self, returncode: int):
        super().__init__(f"Compile failed (rc={returncode})")
        self.returncode = returncode


class UploadError(ProvisioningError):
    def __init__(self, returncode: int):
        super().__init__(f"Upload failed (rc={returncode})")
        self.returncode = returncode


class RegistrationTimeoutError(ProvisioningError):
    def __init__(self, port: str, timeout: float):
        super().__init__(f"No registration received on {port} within {timeout:g}s")
        self.port = port
        self.timeout = timeout


class ProvisioningStartError(ProvisioningError):
    """The background provisioning worker could not be started."""


class GatewayError(MoistureManagerError):
    """Failure inside the telemetry gateway."""


class SocketBindError(GatewayError):
    def __init__(self, host: str, port: int, reason: Optional[BaseException] = None):
        message = f"Failed to bind UDP socket on {host}:{port}"
        if reason is not None:
            message += f": {reason}"
        super().__init__(message)
        self.host = host
        self.port = port


class UnknownIdentifierError(GatewayError, KeyError):
    def __init__(self, identifier: str):
        super().__init__(identifier)
        self.identifier = identifier

    def __str__(self) -> str:
        return f"Unknown device identifier: {self.identifier}"


class SendFailedError(GatewayError):
    def __init__(self, identifier: str, reason: BaseException):
        super().__init__(f"Failed to send to {identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason
