from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from moisture_manager.core.gateway import TelemetryGateway
from moisture_manager.core.provisioner import FirmwareProvisioner
from moisture_manager.utils.exceptions import (
    ProvisioningStartError,
    SendFailedError,
    UnknownIdentifierError,
)


# Request / response models
class DigitalCommandRequest(BaseModel):
    activate: bool

class TextCommandRequest(BaseModel):
    text: str

class DeviceSummary(BaseModel):
    id: str
    output_state: str
    live_text: str

class DeviceLogs(BaseModel):
    id: str
    lines: List[str]

class DeviceStatus(BaseModel):
    id: str
    live_text: str

class DeviceOutput(BaseModel):
    id: str
    output_state: str


def create_app(
        gateway: TelemetryGateway,
        provisioner: Optional[FirmwareProvisioner] = None,
) -> FastAPI:
    """Create the FastAPI application over a running gateway."""
    app = FastAPI(title="Moisture Manager", version="1.0.0")

    def _unknown(identifier: str) -> HTTPException:
        return HTTPException(status_code=404, detail=f"Unknown device: {identifier}")

    @app.get("/api/devices", response_model=List[DeviceSummary])
    async def list_devices():
        devices = []
        for identifier in gateway.list_devices():
            try:
                devices.append(DeviceSummary(
                    id=identifier,
                    output_state=gateway.get_output_state(identifier).value,
                    live_text=gateway.get_live_text(identifier),
                ))
            except UnknownIdentifierError:
                continue
        return devices

    @app.get("/api/devices/{identifier}/logs", response_model=DeviceLogs)
    async def device_logs(identifier: str):
        try:
            return DeviceLogs(id=identifier, lines=gateway.get_recent_lines(identifier))
        except UnknownIdentifierError:
            raise _unknown(identifier)

    @app.get("/api/devices/{identifier}/status", response_model=DeviceStatus)
    async def device_status(identifier: str):
        try:
            return DeviceStatus(id=identifier, live_text=gateway.get_live_text(identifier))
        except UnknownIdentifierError:
            raise _unknown(identifier)

    @app.get("/api/devices/{identifier}/output", response_model=DeviceOutput)
    async def device_output(identifier: str):
        try:
            return DeviceOutput(id=identifier,
                                output_state=gateway.get_output_state(identifier).value)
        except UnknownIdentifierError:
            raise _unknown(identifier)

    @app.post("/api/devices/{identifier}/digital")
    async def digital_command(identifier: str, request: DigitalCommandRequest):
        try:
            gateway.send_digital_command(identifier, request.activate)
        except UnknownIdentifierError:
            raise _unknown(identifier)
        except SendFailedError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"sent": True}

    @app.post("/api/devices/{identifier}/text")
    async def text_command(identifier: str, request: TextCommandRequest):
        try:
            gateway.send_text(identifier, request.text)
        except UnknownIdentifierError:
            raise _unknown(identifier)
        except SendFailedError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return {"sent": True}

    @app.post("/api/provision", status_code=202)
    async def provision():
        if provisioner is None:
            raise HTTPException(status_code=503, detail="Provisioning is not available")
        try:
            provisioner.start()
        except ProvisioningStartError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"started": True}

    return app
