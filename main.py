import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from app import MoistureManagerApp
from moisture_manager.core.config_manager import GatewayConfig, ProvisioningConfig
from moisture_manager.utils.logger import setup_logging


def udp_port(value: str) -> int:
    """argparse type for a UDP port number."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a port number: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="Moisture Manager - sensor provisioning and telemetry gateway",
        epilog="""
Examples:
    %(prog)s serve                          # Receive sensor telemetry
    %(prog)s serve --packet-log server.log  # ... and log every packet
    %(prog)s web --port 8000                # Gateway plus HTTP API
    %(prog)s flash                          # Flash and register the attached sensor
    %(prog)s ports                          # List USB serial devices

Provisioning reads FLASH_SSID, FLASH_PASS, FLASH_TARGET_IP, FLASH_CONTROL_PIN
and FLASH_FQBN from the environment.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Global options
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--log-file', help='Log file path')
    parser.add_argument('--packet-debug', action='store_true',
                        help='Log every received packet at DEBUG')
    parser.add_argument('--udp-port', type=udp_port,
                        help='Gateway UDP port (default: GATEWAY_PORT or 12345)')
    parser.add_argument('--packet-log', type=Path,
                        help='Append every received packet to this file')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    serve_parser = subparsers.add_parser('serve', help='Run the telemetry gateway')
    serve_parser.add_argument('--table-interval', type=float, default=0.0,
                              help='Print a device table every N seconds')

    web_parser = subparsers.add_parser('web', help='Run the gateway with the web API')
    web_parser.add_argument('--host', default='127.0.0.1', help='Host address')
    web_parser.add_argument('--port', '-p', type=int, default=8000, help='Port number')

    flash_parser = subparsers.add_parser('flash', help='Flash and register the attached sensor')
    flash_parser.add_argument('--firmware', type=Path, help='Sketch directory')
    flash_parser.add_argument('--fqbn', help='Board FQBN')
    flash_parser.add_argument('--timeout', type=float,
                              help='Give up waiting for the workflow after N seconds')

    subparsers.add_parser('ports', help='List USB serial devices')

    return parser


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Set up logging
    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level, args.log_file, packet_debug=args.packet_debug)

    logger = logging.getLogger(__name__)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        gateway_config = GatewayConfig.from_env()
        if args.udp_port is not None:
            gateway_config = replace(gateway_config, port=args.udp_port)
        if args.packet_log:
            gateway_config = replace(gateway_config, packet_log=args.packet_log)

        provisioning_config = ProvisioningConfig.from_env()
        if getattr(args, 'firmware', None):
            provisioning_config.firmware_path = args.firmware
        if getattr(args, 'fqbn', None):
            provisioning_config.fqbn = args.fqbn

        app = MoistureManagerApp(gateway_config, provisioning_config)
        success = app.run_cli(args)
        sys.exit(0 if success else 1)
    except KeyboardInterrupt:
        print("\n👋 Goodbye!")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Application failed: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
