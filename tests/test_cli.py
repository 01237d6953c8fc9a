import io

from rich.console import Console

from moisture_manager.core.config_manager import GatewayConfig
from moisture_manager.core.gateway import TelemetryGateway
from moisture_manager.interfaces.cli import ConsoleConsumer


def _consumer():
    buffer = io.StringIO()
    return ConsoleConsumer(Console(file=buffer, width=120, color_system=None)), buffer


def test_status_lines_and_end_marker():
    consumer, buffer = _consumer()

    consumer.status("Compiling sketch...")
    consumer.status(None)

    assert consumer.statuses == ["Compiling sketch..."]
    output = buffer.getvalue()
    assert "Compiling sketch..." in output
    assert "Provisioning finished" in output


def test_register_tracks_unassigned_plots():
    consumer, buffer = _consumer()

    consumer.register(None)
    consumer.register("70:55:88:11:22:33")
    consumer.register(None)

    assert consumer.registrations == [None, "70:55:88:11:22:33", None]
    output = buffer.getvalue()
    assert "unassigned plot #2" in output
    assert "70:55:88:11:22:33" in output


def test_print_devices_table():
    consumer, buffer = _consumer()
    gateway = TelemetryGateway(GatewayConfig(host="127.0.0.1", port=0), on_reading=consumer.reading)

    gateway.handle_packet(b"70:55:88:11:22:33 1.25", ("10.0.0.7", 4210))
    consumer.print_devices(gateway)

    assert consumer.readings == {"70:55:88:11:22:33": 1.25}
    output = buffer.getvalue()
    assert "Sensors" in output
    assert "1.25" in output
    assert "unknown" in output
