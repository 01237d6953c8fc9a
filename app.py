import argparse
import logging
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional

from moisture_manager.core.config_manager import GatewayConfig, ProvisioningConfig
from moisture_manager.core.device_manager import list_serial_ports
from moisture_manager.core.gateway import TelemetryGateway
from moisture_manager.core.provisioner import FirmwareProvisioner
from moisture_manager.interfaces.cli import ConsoleConsumer
from moisture_manager.utils.exceptions import MoistureManagerError


class MoistureManagerApp:
    """Main application controller wiring gateway, provisioner and console."""

    def __init__(self, gateway_config: Optional[GatewayConfig] = None,
                 provisioning_config: Optional[ProvisioningConfig] = None,
                 consumer: Optional[ConsoleConsumer] = None):
        self.gateway_config = gateway_config or GatewayConfig.from_env()
        self.provisioning_config = provisioning_config or ProvisioningConfig.from_env()
        self.consumer = consumer or ConsoleConsumer()
        self.logger = logging.getLogger(__name__)

        self.gateway = TelemetryGateway(self.gateway_config, on_reading=self.consumer.reading)
        self.provisioner = FirmwareProvisioner(
            self.provisioning_config,
            status_sink=self.consumer.status,
            register=self.consumer.register,
        )

        self.logger.info("Moisture manager initialized")

    def run_cli(self, args: argparse.Namespace) -> bool:
        """Handle CLI commands."""
        try:
            if args.command == 'serve':
                return self._serve(getattr(args, 'table_interval', 0.0))

            elif args.command == 'web':
                return self.run_web(args.host, args.port)

            elif args.command == 'flash':
                return self._flash(getattr(args, 'timeout', None))

            elif args.command == 'ports':
                return self._list_ports()

            else:
                self.logger.error(f"Unknown command: {args.command}")
                return False

        except MoistureManagerError as e:
            self.logger.error(f"Command failed: {e}")
            return False

    def _serve(self, table_interval: float = 0.0) -> bool:
        """Run the gateway until interrupted."""
        try:
            self.gateway.start()
            host, port = self.gateway.address
            print(f"📡 Listening for sensors on UDP {host}:{port} (Ctrl+C to stop)")

            last_table = time.monotonic()
            while True:
                time.sleep(0.5)
                if table_interval and time.monotonic() - last_table >= table_interval:
                    self.consumer.print_devices(self.gateway)
                    last_table = time.monotonic()
        except KeyboardInterrupt:
            print("\n🛑 Stopping gateway")
        finally:
            self.cleanup()
        return True

    def _flash(self, timeout: Optional[float] = None) -> bool:
        """Run one provisioning attempt and wait for it to finish."""
        try:
            future = self.provisioner.start()
            try:
                attempt = future.result(timeout=timeout)
            except FutureTimeoutError:
                self.logger.error(f"Provisioning did not finish within {timeout:g}s")
                print(f"⏱️  Provisioning still running after {timeout:g}s; giving up")
                return False
        finally:
            self.cleanup()

        if attempt.succeeded:
            print(f"✅ Sensor {attempt.identifier} provisioned")
        else:
            reason = attempt.failure or "no identifier received"
            print(f"❌ Provisioning did not register a sensor: {reason}")
        return attempt.succeeded

    def _list_ports(self) -> bool:
        ports = list_serial_ports()
        if not ports:
            print("🔌 No USB serial devices found")
            return True

        print(f"\n🔌 Serial devices ({len(ports)} found):")
        print("-" * 60)
        for port in ports:
            print(f"{port.device:<20} {port.description}")
        return True

    def run_web(self, host: str = "127.0.0.1", port: int = 8000) -> bool:
        """Run the gateway together with the web API."""
        try:
            from moisture_manager.interfaces.web_app import create_app
            import uvicorn

            self.gateway.start()
            fastapi_app = create_app(self.gateway, self.provisioner)
            uvicorn.run(fastapi_app, host=host, port=port)
            return True
        except MoistureManagerError as e:
            self.logger.error(f"Web interface failed: {e}")
            return False
        finally:
            self.cleanup()

    def cleanup(self):
        """Clean up resources."""
        self.gateway.stop()
        self.provisioner.shutdown(wait=False)
        self.logger.info("Application cleanup completed")
