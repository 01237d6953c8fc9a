"""Console consumer for the gateway and the provisioning workflow.

:class:`ConsoleConsumer` implements the three callbacks the core calls out
to (status sink, registration, readings) and renders them with Rich.  All
callbacks may arrive from the gateway thread and a provisioning worker at
the same time, so output and state are guarded by one lock.
"""
from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich import box

from moisture_manager.core.gateway import TelemetryGateway
from moisture_manager.utils.exceptions import UnknownIdentifierError


class ConsoleConsumer:
    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.readings: Dict[str, float] = {}
        self.registrations: List[Optional[str]] = []
        self.statuses: List[str] = []
        self._lock = threading.Lock()
        self._unassigned = 0

    # ------------------------------------------------------------------
    def status(self, message: Optional[str]) -> None:
        """Provisioning status sink; ``None`` marks the end of the workflow."""
        with self._lock:
            if message is None:
                self.console.print("[bold]Provisioning finished[/bold]")
                return
            self.statuses.append(message)
            self.console.print(f"[cyan]flash[/cyan] {message}", markup=True, highlight=False)

    def register(self, identifier: Optional[str]) -> None:
        with self._lock:
            self.registrations.append(identifier)
            if identifier is None:
                self._unassigned += 1
                self.console.print(f"⚠️  Added unassigned plot #{self._unassigned}", style="yellow")
            else:
                self.console.print(f"✅ Registered sensor {identifier}", style="green")

    def reading(self, identifier: str, value: float) -> None:
        with self._lock:
            self.readings[identifier] = value
            timestamp = datetime.now().strftime("%H:%M:%S")
            self.console.print(f"[dim]{timestamp}[/dim] {identifier} [bold]{value:.2f}[/bold]")

    # ------------------------------------------------------------------
    def print_devices(self, gateway: TelemetryGateway) -> None:
        """Render a table of known sessions."""
        table = Table(title="Sensors", box=box.ROUNDED)
        table.add_column("Identifier")
        table.add_column("Last reading")
        table.add_column("Output")
        table.add_column("Status")

        for identifier in gateway.list_devices():
            try:
                state = gateway.get_output_state(identifier).value
                live = gateway.get_live_text(identifier)
            except UnknownIdentifierError:
                continue
            with self._lock:
                value = self.readings.get(identifier)
            table.add_row(
                identifier,
                f"{value:.2f}" if value is not None else "-",
                state,
                live,
            )

        with self._lock:
            self.console.print(table)
